# models/exam_models.py
"""テストサービスとやり取りするデータのモデル群。

サーバーのJSONレスポンスからの変換（from_dict）もここで行い、
形式が不正な場合は InvalidQuestionFormatError を送出します。
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from utils.api_utils import InvalidQuestionFormatError

# 一覧に表示する獲得点の満点
POINTS_SCALE = 4


def _require_int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuestionFormatError(f"'{key}' must be an integer, got {value!r}", payload=data)
    return value


def _optional_int(data: Dict[str, Any], key: str, default: int = 0) -> int:
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidQuestionFormatError(f"'{key}' must be a number, got {value!r}", payload=data)
    return int(value)


@dataclass
class TestDefinition:
    """受験可能なテストの定義（サーバー所有、読み取り専用）。

    Attributes:
        id (int): テストID。
        title (str): テスト名。
        total_questions (int): 問題数。
        time_limit_seconds (int): 制限時間（秒）。
    """
    __test__ = False

    id: int
    title: str
    total_questions: int
    time_limit_seconds: int


class TestStatus(str, Enum):
    """テスト一覧に表示される受験状況。値はサーバーの表記そのもの。"""
    __test__ = False

    NOT_STARTED = "ishlanmagan"
    IN_PROGRESS = "ishlanmoqda"
    FINISHED = "ishlangan"


@dataclass
class Option:
    """選択肢。

    Attributes:
        id (int): 選択肢ID。
        label (str): 表示用ラベル（例: "A"）。
        text (str): 選択肢の本文。
    """
    id: int
    label: str
    text: str

    @classmethod
    def from_dict(cls, data: Any) -> "Option":
        if not isinstance(data, dict):
            raise InvalidQuestionFormatError(f"Option must be an object, got {data!r}")
        return cls(
            id=_require_int(data, "id"),
            label=str(data.get("label") or ""),
            text=str(data.get("text") or ""),
        )


@dataclass
class Question:
    """サーバーから1問ずつ配信される設問。

    Attributes:
        id (int): 設問ID。
        text (str): 問題文。
        options (List[Option]): 表示順に並んだ選択肢。
    """
    id: int
    text: str
    options: List[Option] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "Question":
        """JSONオブジェクトから設問を生成する。

        Raises:
            InvalidQuestionFormatError: options が無い、または要素が不正な場合。
        """
        if not isinstance(data, dict) or not isinstance(data.get("options"), list):
            raise InvalidQuestionFormatError(f"Invalid question format: {data!r}")
        return cls(
            id=_require_int(data, "id"),
            text=str(data.get("text") or ""),
            options=[Option.from_dict(item) for item in data["options"]],
        )

    def has_option(self, option_id: int) -> bool:
        return any(option.id == option_id for option in self.options)


def _optional_question(data: Dict[str, Any], key: str) -> Optional[Question]:
    raw = data.get(key)
    return None if raw is None else Question.from_dict(raw)


@dataclass(frozen=True)
class ExamComplete:
    """「これ以上設問はない」ことを表す正常応答のマーカー。"""


EXAM_COMPLETE = ExamComplete()


@dataclass
class StartResult:
    """POST /test/start/ のレスポンス。

    resume が True の場合、既存の受験中セッションが返されたことを示します。
    """
    session_id: int
    duration_seconds: int
    first_question: Optional[Question]
    total_questions: int
    resume: bool
    current_index: int
    remaining_seconds: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StartResult":
        return cls(
            session_id=_require_int(data, "session_id"),
            duration_seconds=_optional_int(data, "duration"),
            first_question=_optional_question(data, "first_question"),
            total_questions=_require_int(data, "total_questions"),
            resume=bool(data.get("resume", False)),
            current_index=_optional_int(data, "current_index", 1),
            remaining_seconds=_optional_int(data, "remaining_seconds"),
        )


@dataclass
class ResumeResult:
    """GET /test/{id}/resume/ のレスポンス。"""
    current_question: Optional[Question]
    total_questions: int
    remaining_seconds: int
    current_index: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResumeResult":
        return cls(
            current_question=_optional_question(data, "current_question"),
            total_questions=_require_int(data, "total_questions"),
            remaining_seconds=_optional_int(data, "remaining_seconds"),
            current_index=_optional_int(data, "current_index", 1),
        )


@dataclass
class FinishResult:
    """採点結果の要約。

    Attributes:
        correct_answers (int): 正解数。
        total_questions (int): 問題数。
        score (float): 得点（%）。
    """
    correct_answers: int
    total_questions: int
    score: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FinishResult":
        """finish レスポンス（correct_answers/total_questions）と
        一覧の result（correct/total）のどちらの形式も受け付ける。"""
        correct_key = "correct_answers" if "correct_answers" in data else "correct"
        total_key = "total_questions" if "total_questions" in data else "total"
        score = data.get("score", 0)
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise InvalidQuestionFormatError(f"'score' must be a number, got {score!r}", payload=data)
        return cls(
            correct_answers=_optional_int(data, correct_key),
            total_questions=_optional_int(data, total_key),
            score=score,
        )

    @staticmethod
    def can_parse(data: Dict[str, Any]) -> bool:
        return "score" in data and ("correct_answers" in data or "correct" in data)

    @property
    def points(self) -> float:
        """獲得点。得点（%）を POINTS_SCALE 点満点に換算した値。"""
        return self.score * POINTS_SCALE / 100

    def summary(self) -> str:
        return (
            f"テストが終了しました。{self.correct_answers}/{self.total_questions} 問正解、"
            f"得点: {self.score}%"
        )


@dataclass
class TestListItem:
    """テスト一覧の1行分。

    Attributes:
        definition (TestDefinition): テストの定義。
        status (TestStatus): 受験状況。
        session_id (Optional[int]): 受験中・受験済みセッションのID。
        result (Optional[FinishResult]): 受験済みの場合の結果。
        start_time (Optional[str]): 受験を開始した日時（ISO 8601）。未受験の場合はNone。
    """
    __test__ = False

    definition: TestDefinition
    status: TestStatus
    session_id: Optional[int] = None
    result: Optional[FinishResult] = None
    start_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "TestListItem":
        if not isinstance(data, dict):
            raise InvalidQuestionFormatError(f"Test entry must be an object, got {data!r}")
        try:
            status = TestStatus(data.get("status"))
        except ValueError:
            status = TestStatus.NOT_STARTED
        total = data.get("total_questions") or data.get("question_count") or 0
        raw_result = data.get("result")
        session_id = data.get("session_id")
        start_time = data.get("start_time")
        return cls(
            definition=TestDefinition(
                id=_require_int(data, "id"),
                title=str(data.get("title") or ""),
                total_questions=int(total),
                time_limit_seconds=_optional_int(data, "time_limit"),
            ),
            status=status,
            session_id=session_id if isinstance(session_id, int) and session_id > 0 else None,
            result=FinishResult.from_dict(raw_result) if isinstance(raw_result, dict) else None,
            start_time=start_time if isinstance(start_time, str) and start_time else None,
        )
