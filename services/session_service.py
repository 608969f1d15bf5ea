# services/session_service.py
"""
時間制限付きテストの受験セッションを管理する状態機械を提供します。

SessionLifecycleManager は、開始／再開の判定、解答送信と次の設問取得の順序付け、
終了処理をセッションあたり1回に限定すること、ローカルのチェックポイントと
サーバーの状態との突き合わせを担当します。

状態遷移:
    UNINITIALIZED -> INITIALIZING -> AWAITING_ANSWER <-> SUBMITTING
    SUBMITTING -> EXAM_COMPLETE -> FINISHING -> FINISHED
    AWAITING_ANSWER / SUBMITTING -> FINISHING（時間切れ・終了操作）
    終端以外の任意の状態 -> FAILED

すべての処理はUIスレッド上で動き、ネットワーク呼び出しは TaskRunner に委ねられます。
呼び出し中に状態が変わった場合（時間切れ、dispose など）、その応答は破棄されます。
"""
import logging
from typing import Any, Callable, Optional

from models.exam_models import ExamComplete, FinishResult, Question, ResumeResult, StartResult
from models.session_models import (
    SessionCheckpoint,
    SessionFailure,
    SessionPhase,
    SessionView,
)
from services.api_service import TestApiService
from services.checkpoint_service import CheckpointService
from services.timer_service import CountdownTimer, TickSource
from utils.api_utils import (
    ApiError,
    ApiErrorKind,
    InvalidQuestionFormatError,
    SessionFinishedError,
    SessionNotFoundError,
)
from utils.task_runner import TaskRunner

logger = logging.getLogger(__name__)

DEFAULT_EXIT_DELAY_MS = 3000

FAILURE_MESSAGES = {
    ApiErrorKind.SESSION_NOT_FOUND: "セッションが見つかりません。テスト一覧に戻ります。",
    ApiErrorKind.SESSION_FINISHED: "このテストは既に終了しています。",
    ApiErrorKind.INVALID_QUESTION_FORMAT: "テストの読み込み中に問題が発生しました。",
    ApiErrorKind.NETWORK: "サーバーとの通信に失敗しました。再読み込みして再開してください。",
    ApiErrorKind.UNAUTHORIZED: "認証の有効期限が切れました。再度ログインしてください。",
    ApiErrorKind.REJECTED: "リクエストが受け付けられませんでした。",
    ApiErrorKind.UNEXPECTED: "予期せぬエラーが発生しました。再読み込みしてください。",
}
RESTORE_FAILED_MESSAGE = "セッションを復元できませんでした。テスト一覧に戻ります。"
ALREADY_TAKEN_MESSAGE = "このテストは既に受験済みです。"

# セッションが恒久的に無効であることを示すため、チェックポイントを削除する失敗
_CHECKPOINT_INVALIDATING = {
    ApiErrorKind.SESSION_NOT_FOUND,
    ApiErrorKind.SESSION_FINISHED,
    ApiErrorKind.INVALID_QUESTION_FORMAT,
}
# 再読み込みで再開できる一時的な失敗
_RETRYABLE = {ApiErrorKind.NETWORK, ApiErrorKind.UNEXPECTED}

# finish を発行してよい状態。FINISHING に入ること自体が二重終了の防止になる
_FINISHABLE = {SessionPhase.AWAITING_ANSWER, SessionPhase.SUBMITTING, SessionPhase.EXAM_COMPLETE}


class SessionLifecycleManager:
    """1つのテストの受験セッションを管理するクラス。

    画面（Presentation Adapter）からの操作は select_option / submit /
    request_finish で受け取り、状態が変わるたびに on_change へ SessionView を渡します。
    テスト一覧へ戻るべきときは on_exit に待ち時間（ミリ秒）を渡します。

    Attributes:
        test_id (int): 受験するテストのID。
        api (TestApiService): テストサービスのクライアント。
        checkpoints (CheckpointService): チェックポイントの保存先。
        runner (TaskRunner): ネットワーク呼び出しの実行役。
        timer (CountdownTimer): 残り時間のカウントダウン。
    """

    def __init__(
        self,
        test_id: int,
        api: TestApiService,
        checkpoints: CheckpointService,
        runner: TaskRunner,
        tick_source: TickSource,
        on_change: Optional[Callable[[SessionView], None]] = None,
        on_exit: Optional[Callable[[int], None]] = None,
        exit_delay_ms: int = DEFAULT_EXIT_DELAY_MS
    ) -> None:
        if not isinstance(test_id, int) or test_id <= 0:
            raise ValueError(f"test_id must be a positive integer, got {test_id!r}")
        self.test_id = test_id
        self.api = api
        self.checkpoints = checkpoints
        self.runner = runner
        self.timer = CountdownTimer(tick_source, self._on_tick, self._on_expire)
        self.on_change = on_change
        self.on_exit = on_exit
        self.exit_delay_ms = exit_delay_ms

        self._phase = SessionPhase.UNINITIALIZED
        self._epoch = 0
        self._disposed = False
        self._initial_session_id: Optional[int] = None
        self._session_id: Optional[int] = None
        self._question: Optional[Question] = None
        self._selected_option_id: Optional[int] = None
        self._current_index = 0
        self._total_questions = 0
        self._remaining_seconds = 0
        self._finish_after_submit = False
        self._result: Optional[FinishResult] = None
        self._failure: Optional[SessionFailure] = None

    # ---- 読み取り専用プロパティ ----

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def session_id(self) -> Optional[int]:
        return self._session_id

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def view(self) -> SessionView:
        return SessionView(
            phase=self._phase,
            question=self._question,
            current_index=self._current_index,
            total_questions=self._total_questions,
            remaining_seconds=self._remaining_seconds,
            selected_option_id=self._selected_option_id,
            result=self._result,
            failure=self._failure,
        )

    # ---- 画面からの操作 ----

    def initialize(self, session_id: Optional[int] = None) -> None:
        """受験を開始または再開する。

        判定の優先順位:
            1. 引数で渡されたセッションIDがあれば resume
            2. 妥当なチェックポイントがあれば、そのセッションIDで resume
            3. どちらも無ければ start

        Args:
            session_id (Optional[int]): 画面遷移元から渡されたセッションID。
        """
        if self._disposed or self._phase != SessionPhase.UNINITIALIZED:
            logger.warning("Test %s: initialize() ignored in phase %s", self.test_id, self._phase.value)
            return
        self._initial_session_id = session_id if session_id and session_id > 0 else None
        self._begin_initialization()

    def select_option(self, option_id: int) -> bool:
        """現在の設問の選択肢を選ぶ。受け付けた場合はTrueを返す。"""
        if self._phase != SessionPhase.AWAITING_ANSWER or self._question is None:
            return False
        if not self._question.has_option(option_id):
            logger.warning("Session %s: option %s is not part of question %s",
                           self._session_id, option_id, self._question.id)
            return False
        self._selected_option_id = option_id
        self._notify()
        return True

    def submit(self) -> bool:
        """選択中の解答を送信し、次の設問を取得する。"""
        if self._phase != SessionPhase.AWAITING_ANSWER or self._selected_option_id is None:
            return False
        self._begin_submit()
        return True

    def request_finish(self) -> bool:
        """利用者の操作で受験を終了する。

        選択中の解答があれば先に送信し、送信の完了後に終了します。
        送信中に呼ばれた場合も、送信の完了を待ってから終了します。
        """
        if self._phase == SessionPhase.AWAITING_ANSWER:
            if self._selected_option_id is not None:
                self._finish_after_submit = True
                self._begin_submit()
            else:
                self._begin_finish()
            return True
        if self._phase == SessionPhase.SUBMITTING:
            self._finish_after_submit = True
            return True
        return False

    def reload(self) -> bool:
        """一時的な失敗の後、チェックポイントを使って初期化をやり直す。"""
        if self._disposed or self._phase != SessionPhase.FAILED:
            return False
        if self._failure is None or not self._failure.retryable:
            return False
        logger.info("Test %s: reloading after %s", self.test_id, self._failure.kind.value)
        self._failure = None
        self._question = None
        self._selected_option_id = None
        self._finish_after_submit = False
        self._begin_initialization()
        return True

    def dispose(self) -> None:
        """画面の破棄時に呼ぶ。以後に届いた応答はすべて破棄される。"""
        if self._disposed:
            return
        self._disposed = True
        self._epoch += 1
        self.timer.disarm()
        logger.debug("Test %s: manager disposed in phase %s", self.test_id, self._phase.value)

    # ---- 内部処理: 共通 ----

    def _set_phase(self, phase: SessionPhase) -> None:
        logger.info("Session %s (test %s): %s -> %s",
                    self._session_id, self.test_id, self._phase.value, phase.value)
        self._phase = phase
        self._epoch += 1

    def _notify(self) -> None:
        if not self._disposed and self.on_change is not None:
            self.on_change(self.view)

    def _request_exit(self) -> None:
        if not self._disposed and self.on_exit is not None:
            self.on_exit(self.exit_delay_ms)

    def _call(
        self,
        fn: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_error: Callable[[ApiError], None]
    ) -> None:
        """TaskRunner 経由で呼び出し、状態が変わっていれば応答を破棄する。"""
        epoch = self._epoch

        def deliver(handler: Callable[[Any], None], value: Any) -> None:
            if self._disposed or epoch != self._epoch:
                logger.debug("Session %s: discarding stale response %r", self._session_id, value)
                return
            handler(value)

        self.runner.submit(
            fn,
            lambda result: deliver(on_success, result),
            lambda error: deliver(on_error, error),
        )

    def _save_checkpoint(self) -> None:
        if self._session_id is None:
            return
        self.checkpoints.save(
            self.test_id,
            SessionCheckpoint(
                session_id=self._session_id,
                remaining_seconds=self._remaining_seconds,
                current_index=self._current_index,
            ),
        )

    # ---- 内部処理: 初期化 ----

    def _begin_initialization(self) -> None:
        self._set_phase(SessionPhase.INITIALIZING)
        self._notify()

        if self._initial_session_id is not None:
            self._resume(self._initial_session_id)
            return

        checkpoint = self.checkpoints.load(self.test_id)
        if checkpoint is not None and checkpoint.is_plausible():
            # サーバーの応答までの表示用。正しい値は resume の応答で上書きされる
            self._remaining_seconds = checkpoint.remaining_seconds
            self._current_index = checkpoint.current_index
            self._resume(checkpoint.session_id)
            return
        if checkpoint is not None:
            logger.warning("Test %s: ignoring implausible checkpoint %s", self.test_id, checkpoint)
            self.checkpoints.clear(self.test_id)

        self._call(lambda: self.api.start(self.test_id), self._on_started, self._on_start_failed)

    def _resume(self, session_id: int) -> None:
        self._session_id = session_id
        self._call(lambda: self.api.resume(session_id), self._on_resumed, self._on_resume_failed)

    def _on_started(self, result: StartResult) -> None:
        self._session_id = result.session_id
        if result.resume and result.first_question is None:
            # 既存セッションが返された。現在の設問は resume で取得する
            self._resume(result.session_id)
            return
        self._apply_position(
            result.first_question,
            result.total_questions,
            result.current_index,
            result.remaining_seconds,
        )

    def _on_start_failed(self, error: ApiError) -> None:
        if isinstance(error, SessionFinishedError):
            self._fail(error, ALREADY_TAKEN_MESSAGE)
        else:
            self._fail(error)

    def _on_resumed(self, result: ResumeResult) -> None:
        self._apply_position(
            result.current_question,
            result.total_questions,
            result.current_index,
            result.remaining_seconds,
        )

    def _on_resume_failed(self, error: ApiError) -> None:
        if isinstance(error, SessionNotFoundError):
            self._fail(error, RESTORE_FAILED_MESSAGE)
        else:
            self._fail(error)

    def _apply_position(
        self,
        question: Optional[Question],
        total_questions: int,
        current_index: int,
        remaining_seconds: int
    ) -> None:
        """start / resume の応答を反映する。チェックポイントよりサーバーの値を優先する。"""
        self._total_questions = total_questions
        self._remaining_seconds = max(0, remaining_seconds)
        self._current_index = current_index

        if question is None:
            if total_questions > 0 and current_index >= total_questions:
                # 全問解答済みだが未終了のセッション
                self._set_phase(SessionPhase.EXAM_COMPLETE)
                self._notify()
                self._begin_finish()
            else:
                self._fail(InvalidQuestionFormatError("Session has no current question"))
            return
        if current_index < 1 or (total_questions > 0 and current_index > total_questions):
            self._fail(InvalidQuestionFormatError(
                f"current_index {current_index} is outside 1..{total_questions}"))
            return

        self._enter_awaiting_answer(question)
        self.timer.arm(self._remaining_seconds)

    def _enter_awaiting_answer(self, question: Question) -> None:
        self._question = question
        self._selected_option_id = None
        self._set_phase(SessionPhase.AWAITING_ANSWER)
        self._save_checkpoint()
        self._notify()

    # ---- 内部処理: 解答送信 ----

    def _begin_submit(self) -> None:
        session_id = self._session_id
        question_id = self._question.id
        option_id = self._selected_option_id
        self._set_phase(SessionPhase.SUBMITTING)
        self._notify()
        self._call(
            lambda: self.api.submit_answer(session_id, question_id, option_id),
            self._on_answer_accepted,
            self._on_submit_failed,
        )

    def _on_answer_accepted(self, _ack: Any) -> None:
        self._selected_option_id = None
        session_id = self._session_id
        self._call(lambda: self.api.next_question(session_id), self._on_next_question, self._on_submit_failed)

    def _on_next_question(self, result: Any) -> None:
        if isinstance(result, ExamComplete):
            self._set_phase(SessionPhase.EXAM_COMPLETE)
            self._notify()
            self._begin_finish()
            return

        next_index = self._current_index + 1
        if self._total_questions > 0 and next_index > self._total_questions:
            self._fail(InvalidQuestionFormatError(
                f"Received question {next_index} of {self._total_questions}"))
            return
        self._current_index = next_index
        if self._finish_after_submit:
            self._begin_finish()
            return
        self._enter_awaiting_answer(result)

    def _on_submit_failed(self, error: ApiError) -> None:
        if isinstance(error, SessionFinishedError):
            # 時間切れなどでサーバー側が先に終了していた
            logger.info("Session %s was finished by the server during submission", self._session_id)
            self._begin_finish()
            return
        self._fail(error)

    # ---- 内部処理: 終了 ----

    def _on_tick(self, remaining_seconds: int) -> None:
        self._remaining_seconds = remaining_seconds
        self._notify()

    def _on_expire(self) -> None:
        if self._disposed or self._phase not in (SessionPhase.AWAITING_ANSWER, SessionPhase.SUBMITTING):
            return
        if self._selected_option_id is not None:
            logger.info("Session %s: time is up, unsent answer dropped", self._session_id)
        self._selected_option_id = None
        self._remaining_seconds = 0
        self._begin_finish()

    def _begin_finish(self) -> None:
        if self._phase not in _FINISHABLE:
            logger.debug("Session %s: finish already handled (phase %s)", self._session_id, self._phase.value)
            return
        self._finish_after_submit = False
        self.timer.disarm()
        self._set_phase(SessionPhase.FINISHING)
        self._notify()
        session_id = self._session_id
        self._call(lambda: self.api.finish(session_id), self._complete, self._on_finish_failed)

    def _on_finish_failed(self, error: ApiError) -> None:
        if isinstance(error, SessionFinishedError):
            result = FinishResult.from_dict(error.payload) if FinishResult.can_parse(error.payload) else None
            logger.info("Session %s was already finished; treating as completed", self._session_id)
            self._complete(result)
            return
        self._fail(error)

    def _complete(self, result: Optional[FinishResult]) -> None:
        self.timer.disarm()
        self.checkpoints.clear(self.test_id)
        self._result = result
        self._question = None
        self._selected_option_id = None
        self._set_phase(SessionPhase.FINISHED)
        self._notify()
        self._request_exit()

    def _fail(self, error: ApiError, message: Optional[str] = None) -> None:
        kind = error.kind
        self.timer.disarm()
        cleared = kind in _CHECKPOINT_INVALIDATING
        if cleared:
            self.checkpoints.clear(self.test_id)
        retryable = kind in _RETRYABLE
        if message is None:
            message = FAILURE_MESSAGES[kind]
            if kind == ApiErrorKind.REJECTED and error.detail:
                message = error.detail
        logger.warning("Session %s (test %s) failed: %s (%s)",
                       self._session_id, self.test_id, kind.value, error.detail or error)
        self._failure = SessionFailure(
            kind=kind,
            message=message,
            retryable=retryable,
            checkpoint_cleared=cleared,
        )
        self._set_phase(SessionPhase.FAILED)
        self._notify()
        if not retryable:
            self._request_exit()
