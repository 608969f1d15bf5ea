# utils/api_utils.py
"""テストサービスAPIとの通信で共通して使うエラー定義とリクエスト処理を提供します。"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

# サーバーが返す detail 文字列のうち、意味を持つもの
FINISHED_MARKER = "yakunlangan"
NOT_FOUND_MARKER = "No TestSession"


class ApiErrorKind(str, Enum):
    SESSION_NOT_FOUND = "session_not_found"
    SESSION_FINISHED = "session_finished"
    INVALID_QUESTION_FORMAT = "invalid_question_format"
    NETWORK = "network"
    UNAUTHORIZED = "unauthorized"
    REJECTED = "rejected"
    UNEXPECTED = "unexpected"


class ApiError(Exception):
    """テストサービス呼び出しの失敗を表す基底例外。

    Attributes:
        kind (ApiErrorKind): エラーの分類。
        status_code (Optional[int]): HTTPステータスコード。通信自体が失敗した場合はNone。
        detail (str): サーバーまたはクライアントが付与したエラー詳細。
        payload (Dict[str, Any]): デコード済みのレスポンスボディ（取得できた場合）。
    """
    kind: ApiErrorKind = ApiErrorKind.UNEXPECTED

    def __init__(
        self,
        detail: str = "",
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(detail or self.kind.value)
        self.detail = detail
        self.status_code = status_code
        self.payload: Dict[str, Any] = payload or {}


class SessionNotFoundError(ApiError):
    kind = ApiErrorKind.SESSION_NOT_FOUND


class SessionFinishedError(ApiError):
    kind = ApiErrorKind.SESSION_FINISHED

    @property
    def session_id(self) -> Optional[int]:
        """競合レスポンスに含まれていたセッションID。"""
        value = self.payload.get("session_id")
        return value if isinstance(value, int) and not isinstance(value, bool) else None


class InvalidQuestionFormatError(ApiError):
    kind = ApiErrorKind.INVALID_QUESTION_FORMAT


class NetworkError(ApiError):
    kind = ApiErrorKind.NETWORK


class UnauthorizedError(ApiError):
    kind = ApiErrorKind.UNAUTHORIZED


class RequestRejectedError(ApiError):
    kind = ApiErrorKind.REJECTED


class UnexpectedError(ApiError):
    kind = ApiErrorKind.UNEXPECTED


class APIUtils:
    """API連携に関する共通処理を提供するユーティリティクラス。"""

    @staticmethod
    def make_api_request(
        http: requests.Session,
        url: str,
        method: str = "POST",
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 15
    ) -> Dict[str, Any]:
        """指定されたURLにAPIリクエストを1回だけ送信し、JSONレスポンスを返す。

        再試行は行いません。失敗はすべて ApiError のサブクラスに変換されます。

        Args:
            http (requests.Session): リクエストに使用するHTTPセッション。
            url (str): リクエストを送信するAPIエンドポイントのURL。
            method (str): HTTPメソッド（例: "GET", "POST"）。
            data (Optional[Dict[str, Any]]): リクエストボディとして送信するデータ（JSON）。
            headers (Optional[Dict[str, str]]): 追加のリクエストヘッダー。
            timeout (float): タイムアウト秒数。

        Returns:
            Dict[str, Any]: APIからのJSONレスポンス。

        Raises:
            ApiError: 通信エラー、HTTPエラーステータス、不正なレスポンス形式の場合。
        """
        response = APIUtils.send(http, url, method=method, data=data, headers=headers, timeout=timeout)
        payload = APIUtils.decode_body(response)
        if payload is None:
            raise InvalidQuestionFormatError(
                f"Response from {url} is not a JSON object",
                status_code=response.status_code,
            )
        return payload

    @staticmethod
    def send(
        http: requests.Session,
        url: str,
        method: str = "GET",
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 15
    ) -> requests.Response:
        """リクエストを送信し、2xx のレスポンスだけを返す。

        Raises:
            NetworkError: 通信自体に失敗した場合。
            ApiError: 2xx 以外のステータスの場合（classify_error による分類）。
        """
        try:
            response = http.request(method, url, json=data, headers=headers, timeout=timeout)
        except requests.exceptions.RequestException as e:
            logger.warning("API request to %s failed: %s", url, e)
            raise NetworkError(str(e)) from e
        if not response.ok:
            error = APIUtils.classify_error(response.status_code, APIUtils.decode_body(response))
            logger.warning("API request to %s returned %s: %s", url, response.status_code, error.detail)
            raise error
        return response

    @staticmethod
    def decode_body(response: requests.Response) -> Optional[Dict[str, Any]]:
        """レスポンスボディをJSONオブジェクトとしてデコードする。オブジェクトでなければNone。"""
        try:
            body = response.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    @staticmethod
    def classify_error(status_code: int, payload: Optional[Dict[str, Any]]) -> ApiError:
        """エラーレスポンスを ApiError のサブクラスに分類する。

        Args:
            status_code (int): HTTPステータスコード。
            payload (Optional[Dict[str, Any]]): デコード済みのレスポンスボディ。

        Returns:
            ApiError: 分類済みの例外インスタンス（送出はしない）。
        """
        body = payload or {}
        detail = str(body.get("detail") or "")

        if status_code == 401:
            cls: type = UnauthorizedError
        elif status_code >= 500:
            cls = NetworkError
        elif NOT_FOUND_MARKER in detail or status_code == 404:
            cls = SessionNotFoundError
        elif FINISHED_MARKER in detail or status_code == 409:
            cls = SessionFinishedError
        else:
            cls = RequestRejectedError
        return cls(detail, status_code=status_code, payload=body)

    @staticmethod
    def is_finished_detail(payload: Dict[str, Any]) -> bool:
        """正常レスポンスが「試験終了」を意味するかどうかを判定する。"""
        if payload.get("finished") is True:
            return True
        return FINISHED_MARKER in str(payload.get("detail") or "")
