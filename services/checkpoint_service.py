# services/checkpoint_service.py
import json
import logging
from typing import Optional

from models.session_models import SessionCheckpoint
from .base_service import BaseService

logger = logging.getLogger(__name__)


class CheckpointService(BaseService[SessionCheckpoint]):
    """テストIDごとの受験チェックポイントを管理するサービスクラス。

    書き込み手はアクティブな SessionLifecycleManager ただ1つで、
    読み込みは初期化時のみ行われます。
    """

    KEY_PREFIX = "testSession_"

    def key_for(self, test_id: int) -> str:
        return f"{self.KEY_PREFIX}{test_id}"

    def load(self, test_id: int) -> Optional[SessionCheckpoint]:
        """チェックポイントを読み込む。

        壊れたレコードは削除し、存在しないものとして扱います。

        Args:
            test_id (int): テストID。

        Returns:
            Optional[SessionCheckpoint]: 保存されていたチェックポイント。無い場合はNone。
        """
        key = self.key_for(test_id)
        try:
            data = self.storage_service.load_json(key)
        except json.JSONDecodeError as e:
            logger.warning("Discarding unreadable checkpoint %s: %s", key, e)
            self.storage_service.remove_item(key)
            return None
        if data is None:
            return None
        if not isinstance(data, dict) or "sessionId" not in data:
            logger.warning("Discarding malformed checkpoint %s: %r", key, data)
            self.storage_service.remove_item(key)
            return None
        try:
            return SessionCheckpoint.from_dict(data)
        except ValueError as e:
            logger.warning("Discarding malformed checkpoint %s: %s", key, e)
            self.storage_service.remove_item(key)
            return None

    def save(self, test_id: int, checkpoint: SessionCheckpoint) -> None:
        self.storage_service.save_json(self.key_for(test_id), checkpoint.to_dict())
        logger.debug("Checkpoint for test %s saved: %s", test_id, checkpoint)

    def clear(self, test_id: int) -> None:
        self.storage_service.remove_item(self.key_for(test_id))
        logger.debug("Checkpoint for test %s cleared", test_id)
