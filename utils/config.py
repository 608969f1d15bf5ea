# utils/config.py
import logging
import os

from dotenv import load_dotenv

# .env があれば読み込む（既存の環境変数は上書きしない）
load_dotenv()

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid value for %s: %r, using %s", name, raw, default)
        return default


class Settings:
    """
    アプリケーションの設定。

    環境変数 / .env から読み込みます。
      - CBT_API_BASE_URL       テストサービスのベースURL
      - CBT_ACCESS_TOKEN       ストレージに "access" が無い場合に使うBearerトークン
      - CBT_DATA_DIR           チェックポイント等を保存するディレクトリ
      - CBT_REQUEST_TIMEOUT    リクエストのタイムアウト（秒）
      - CBT_REDIRECT_DELAY_MS  終了後にテスト一覧へ戻るまでの待ち時間（ミリ秒）
      - CBT_LOG_LEVEL          ログレベル
    """

    def __init__(self) -> None:
        self.API_BASE_URL = os.getenv("CBT_API_BASE_URL", "http://127.0.0.1:8000/api")
        self.ACCESS_TOKEN = os.getenv("CBT_ACCESS_TOKEN") or None
        self.DATA_DIR = os.getenv("CBT_DATA_DIR", "data")
        self.REQUEST_TIMEOUT = _int_env("CBT_REQUEST_TIMEOUT", 15)
        self.REDIRECT_DELAY_MS = _int_env("CBT_REDIRECT_DELAY_MS", 3000)
        self.LOG_LEVEL = os.getenv("CBT_LOG_LEVEL", "INFO").upper()


# 全体で共有する設定オブジェクト
settings = Settings()
