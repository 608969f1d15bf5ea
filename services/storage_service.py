# services/storage_service.py
import json
import logging
import os
import re
import tempfile
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class StorageService:
    """ローカルファイルシステム上のキー・バリューストア。

    ブラウザの localStorage に相当し、1キーにつき1ファイルとして
    文字列（通常はJSONテキスト）を保存します。書き込みは同期的で、
    メソッドから戻った時点でディスクへの反映が完了しています。
    """

    def __init__(self, base_path: str = "data") -> None:
        """StorageServiceのコンストラクタ。

        Args:
            base_path (str): データを保存する基準ディレクトリのパス。
                             存在しない場合は自動的に作成されます。
        """
        self.base_path = base_path
        os.makedirs(self.base_path, exist_ok=True)

    def get_path(self, key: str) -> str:
        """キーに対応するファイルの完全なパスを取得する。

        Args:
            key (str): 保存キー。

        Returns:
            str: 完全なファイルパス。
        """
        safe_key = _UNSAFE_KEY_CHARS.sub("_", key)
        return os.path.join(self.base_path, f"{safe_key}.json")

    def get_item(self, key: str) -> Optional[str]:
        """キーに保存された文字列を返す。存在しない場合はNone。"""
        file_path = self.get_path(key)
        if not os.path.exists(file_path):
            return None
        with open(file_path, "r", encoding="utf-8") as f:
            return f.read()

    def set_item(self, key: str, value: str) -> None:
        """文字列を保存する。

        一時ファイルに書き込んで fsync した後に置き換えるため、
        途中でプロセスが終了しても古い値か新しい値のどちらかが残ります。

        Args:
            key (str): 保存キー。
            value (str): 保存する文字列。
        """
        file_path = self.get_path(key)
        fd, tmp_path = tempfile.mkstemp(dir=self.base_path, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, file_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug("Saved %s", file_path)

    def remove_item(self, key: str) -> None:
        """キーを削除する。存在しない場合は何もしない。"""
        file_path = self.get_path(key)
        try:
            os.remove(file_path)
        except FileNotFoundError:
            return
        logger.debug("Removed %s", file_path)

    def save_json(self, key: str, data: Dict[str, Any]) -> None:
        """辞書をJSONテキストとして保存する。"""
        self.set_item(key, json.dumps(data, ensure_ascii=False))

    def load_json(self, key: str) -> Optional[Any]:
        """JSONテキストを読み込んでデコードする。

        Raises:
            json.JSONDecodeError: 保存内容がJSONとして不正な場合。
        """
        raw = self.get_item(key)
        if raw is None:
            return None
        return json.loads(raw)


class MemoryStorageService(StorageService):
    """プロセス内の辞書に保存する StorageService。ディスクには書き込みません。"""

    def __init__(self) -> None:
        self.base_path = ""
        self.items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)
