# services/api_service.py
import logging
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from models.exam_models import (
    EXAM_COMPLETE,
    ExamComplete,
    FinishResult,
    Question,
    ResumeResult,
    StartResult,
    TestListItem,
)
from utils.api_utils import (
    APIUtils,
    InvalidQuestionFormatError,
    RequestRejectedError,
    SessionFinishedError,
)

logger = logging.getLogger(__name__)


class TestApiService:
    """テストサービス（受験セッションAPI）との通信を担うサービスクラス。

    各メソッドはネットワーク往復を1回だけ行い、型付きの結果を返します。
    再試行は行わず、失敗は utils.api_utils の例外として送出されます。
    UIスレッドから直接呼ばず、TaskRunner 経由で実行してください。
    """
    __test__ = False

    def __init__(
        self,
        api_base_url: str,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = 15,
        http: Optional[requests.Session] = None
    ) -> None:
        """TestApiServiceのコンストラクタ。

        Args:
            api_base_url (str): 接続先APIのベースURL（例: "https://example.com/api"）。
            token_provider (Optional[Callable[[], Optional[str]]]):
                Bearerトークンを返す関数。認証の更新は呼び出し側の責務です。
            timeout (float): リクエストのタイムアウト秒数。
            http (Optional[requests.Session]): 使用するHTTPセッション。
        """
        self.api_config: Dict[str, Any] = {"base_url": api_base_url.rstrip("/"), "timeout": timeout}
        self.token_provider = token_provider
        self.http = http or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.api_config['base_url']}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self._url(path)
        logger.debug("%s %s", method, url)
        return APIUtils.make_api_request(
            self.http,
            url,
            method=method,
            data=data,
            headers=self._headers(),
            timeout=self.api_config["timeout"],
        )

    def start(self, test_id: int) -> StartResult:
        """テストの受験を開始する。

        受験中のセッションが既にある場合、サーバーはそのセッションを
        resume=True として返します。

        Args:
            test_id (int): テストID。

        Returns:
            StartResult: 開始（または再開）したセッションの情報。

        Raises:
            SessionFinishedError: このテストが既に受験済みの場合（session_id 付き）。
        """
        try:
            payload = self._request("POST", "test/start/", {"test_id": test_id})
        except RequestRejectedError as e:
            if e.payload.get("session_id"):
                raise SessionFinishedError(e.detail, status_code=e.status_code, payload=e.payload) from e
            raise
        result = StartResult.from_dict(payload)
        logger.info("Test %s: session %s (resume=%s)", test_id, result.session_id, result.resume)
        return result

    def resume(self, session_id: int) -> ResumeResult:
        """受験中のセッションを再開する。

        Raises:
            SessionNotFoundError: セッションが存在しない、期限切れ、または終了済みの場合。
        """
        return ResumeResult.from_dict(self._request("GET", f"test/{session_id}/resume/"))

    def submit_answer(self, session_id: int, question_id: int, selected_option_id: int) -> None:
        """現在の設問への解答を送信する。

        Raises:
            SessionFinishedError: 設問の配信後にセッションが終了していた場合。
        """
        self._request(
            "POST",
            f"test/{session_id}/answer/",
            {"question_id": question_id, "selected_option_id": selected_option_id},
        )

    def next_question(self, session_id: int) -> Union[Question, ExamComplete]:
        """次の設問を取得する。

        Returns:
            Union[Question, ExamComplete]: 次の設問。全問解答済みの場合は EXAM_COMPLETE。
        """
        payload = self._request("GET", f"test/{session_id}/next/")
        if "options" not in payload and APIUtils.is_finished_detail(payload):
            return EXAM_COMPLETE
        return Question.from_dict(payload)

    def finish(self, session_id: int) -> FinishResult:
        """セッションを終了し、採点結果を取得する。

        Raises:
            SessionFinishedError: 既に終了済みの場合。呼び出し側では完了と同等に扱います。
        """
        payload = self._request("POST", f"test/{session_id}/finish/")
        result = FinishResult.from_dict(payload)
        logger.info("Session %s finished: %s/%s", session_id, result.correct_answers, result.total_questions)
        return result

    def list_tests(self) -> List[TestListItem]:
        """受験可能なテストの一覧を取得する。"""
        response = APIUtils.send(
            self.http,
            self._url("tests/"),
            headers=self._headers(),
            timeout=self.api_config["timeout"],
        )
        try:
            body = response.json()
        except ValueError as e:
            raise InvalidQuestionFormatError("Test list is not valid JSON") from e
        if not isinstance(body, list):
            raise InvalidQuestionFormatError(f"Test list must be an array, got {type(body).__name__}")
        return [TestListItem.from_dict(item) for item in body]
