# models/session_models.py
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from models.exam_models import FinishResult, Question
from utils.api_utils import ApiErrorKind


def _stored_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' must be an integer, got {value!r}")
    return value


@dataclass
class SessionCheckpoint:
    """リロード後に受験を再開するためにローカルへ保存する最小限の状態。

    サーバーの応答と食い違う場合は、常にサーバーの値が優先されます。

    Attributes:
        session_id (int): サーバーが発行したセッションID。
        remaining_seconds (int): 保存時点の残り時間（秒単位）。
        current_index (int): 保存時点の問題番号（1始まり）。
    """
    session_id: int
    remaining_seconds: int
    current_index: int

    def is_plausible(self) -> bool:
        """セッションIDが正の整数であればTrue。"""
        return (
            isinstance(self.session_id, int)
            and not isinstance(self.session_id, bool)
            and self.session_id > 0
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "sessionId": self.session_id,
            "remainingSeconds": self.remaining_seconds,
            "currentIndex": self.current_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionCheckpoint":
        """保存形式の辞書から復元する。

        Raises:
            KeyError: sessionId が無い場合。
            ValueError: remainingSeconds / currentIndex が整数でない場合。
        """
        return cls(
            session_id=data["sessionId"],
            remaining_seconds=_stored_int(data, "remainingSeconds", 0),
            current_index=_stored_int(data, "currentIndex", 1),
        )


class SessionPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    AWAITING_ANSWER = "awaiting_answer"
    SUBMITTING = "submitting"
    EXAM_COMPLETE = "exam_complete"
    FINISHING = "finishing"
    FINISHED = "finished"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionPhase.FINISHED, SessionPhase.FAILED)


@dataclass
class SessionFailure:
    """画面に表示する失敗情報。

    Attributes:
        kind (ApiErrorKind): 失敗の分類。
        message (str): 利用者向けのメッセージ。
        retryable (bool): 再読み込みで再開できる一時的な失敗かどうか。
        checkpoint_cleared (bool): チェックポイントを削除したかどうか。
    """
    kind: ApiErrorKind
    message: str
    retryable: bool
    checkpoint_cleared: bool


@dataclass
class SessionView:
    """状態が変わるたびに画面へ渡されるスナップショット。"""
    phase: SessionPhase
    question: Optional[Question]
    current_index: int
    total_questions: int
    remaining_seconds: int
    selected_option_id: Optional[int] = None
    result: Optional[FinishResult] = None
    failure: Optional[SessionFailure] = None

    @property
    def is_last_question(self) -> bool:
        return self.total_questions > 0 and self.current_index >= self.total_questions

    @property
    def can_submit(self) -> bool:
        return self.phase == SessionPhase.AWAITING_ANSWER and self.selected_option_id is not None
