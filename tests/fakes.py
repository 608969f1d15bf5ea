"""テスト用の差し替え部品（仮想タイマー、同期／手動の TaskRunner、台本どおりに応答するAPI）。"""
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from models.exam_models import Option, Question
from services.timer_service import TickSource
from utils.api_utils import ApiError
from utils.task_runner import TaskRunner


def make_question(question_id: int, option_ids: Tuple[int, ...] = (1, 2, 3, 4)) -> Question:
    labels = "ABCDEFGH"
    return Question(
        id=question_id,
        text=f"Question {question_id}",
        options=[
            Option(id=option_id, label=labels[i], text=f"Option {option_id}")
            for i, option_id in enumerate(option_ids)
        ],
    )


class FakeTickSource(TickSource):
    """advance() で仮想的に時間を進める TickSource。"""

    def __init__(self) -> None:
        self.callback: Optional[Callable[[], None]] = None
        self.active = False
        self.start_count = 0
        self.interval_ms: Optional[int] = None

    def start(self, interval_ms: int, callback: Callable[[], None]) -> None:
        self.interval_ms = interval_ms
        self.callback = callback
        self.active = True
        self.start_count += 1

    def stop(self) -> None:
        self.active = False
        self.callback = None

    @property
    def is_active(self) -> bool:
        return self.active

    def advance(self, seconds: int) -> None:
        for _ in range(seconds):
            if not self.active or self.callback is None:
                break
            self.callback()


def _run(fn: Callable[[], Any], on_success: Callable[[Any], None], on_error: Callable[[ApiError], None]) -> None:
    try:
        result = fn()
    except ApiError as e:
        on_error(e)
        return
    on_success(result)


class ImmediateRunner(TaskRunner):
    """呼び出しをその場で同期的に実行する。"""

    def submit(self, fn, on_success, on_error) -> None:
        _run(fn, on_success, on_error)


class ManualRunner(TaskRunner):
    """run_next() が呼ばれるまで呼び出しを保留する。応答の到着順を制御するために使う。"""

    def __init__(self) -> None:
        self.pending: Deque[Tuple[Callable[[], Any], Callable, Callable]] = deque()

    def submit(self, fn, on_success, on_error) -> None:
        self.pending.append((fn, on_success, on_error))

    def run_next(self) -> None:
        fn, on_success, on_error = self.pending.popleft()
        _run(fn, on_success, on_error)

    def run_all(self) -> None:
        while self.pending:
            self.run_next()


class FakeTestApi:
    """メソッドごとに用意した応答（値または例外）を順に返すAPI。"""

    def __init__(self) -> None:
        self.calls: List[Tuple[Any, ...]] = []
        self.scripts: Dict[str, List[Any]] = defaultdict(list)

    def script(self, method: str, *outcomes: Any) -> "FakeTestApi":
        self.scripts[method].extend(outcomes)
        return self

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def _next(self, method: str, *args: Any) -> Any:
        self.calls.append((method,) + args)
        if not self.scripts[method]:
            raise AssertionError(f"unexpected call {method}{args}")
        outcome = self.scripts[method].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def start(self, test_id):
        return self._next("start", test_id)

    def resume(self, session_id):
        return self._next("resume", session_id)

    def submit_answer(self, session_id, question_id, selected_option_id):
        return self._next("submit_answer", session_id, question_id, selected_option_id)

    def next_question(self, session_id):
        return self._next("next_question", session_id)

    def finish(self, session_id):
        return self._next("finish", session_id)

    def list_tests(self):
        return self._next("list_tests")
