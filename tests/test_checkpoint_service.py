"""StorageService と CheckpointService のテスト。"""
import json
import os

import pytest

from models.session_models import SessionCheckpoint
from services.checkpoint_service import CheckpointService
from services.storage_service import MemoryStorageService, StorageService


class TestStorageService:
    def test_creates_base_directory(self, tmp_path):
        base = tmp_path / "nested" / "data"
        StorageService(str(base))
        assert base.is_dir()

    def test_set_get_remove(self, tmp_path):
        storage = StorageService(str(tmp_path))
        assert storage.get_item("access") is None

        storage.set_item("access", "token-1")
        assert storage.get_item("access") == "token-1"

        storage.set_item("access", "token-2")
        assert storage.get_item("access") == "token-2"

        storage.remove_item("access")
        assert storage.get_item("access") is None

    def test_remove_missing_key(self, tmp_path):
        StorageService(str(tmp_path)).remove_item("missing")

    def test_no_temporary_files_left(self, tmp_path):
        storage = StorageService(str(tmp_path))
        storage.save_json("testSession_1", {"sessionId": 1})
        assert os.listdir(tmp_path) == ["testSession_1.json"]

    def test_unsafe_key_characters(self, tmp_path):
        storage = StorageService(str(tmp_path))
        storage.set_item("../escape", "x")
        assert os.path.dirname(storage.get_path("../escape")) == str(tmp_path)
        assert storage.get_item("../escape") == "x"


class TestCheckpointService:
    def test_round_trip_on_disk(self, tmp_path):
        service = CheckpointService(StorageService(str(tmp_path)))
        checkpoint = SessionCheckpoint(session_id=7, remaining_seconds=120, current_index=3)

        service.save(3, checkpoint)

        reloaded = CheckpointService(StorageService(str(tmp_path)))
        assert reloaded.load(3) == checkpoint

    def test_serialized_format(self, tmp_path):
        storage = StorageService(str(tmp_path))
        CheckpointService(storage).save(3, SessionCheckpoint(session_id=7, remaining_seconds=120, current_index=3))

        raw = storage.get_item("testSession_3")
        assert json.loads(raw) == {"sessionId": 7, "remainingSeconds": 120, "currentIndex": 3}

    def test_keys_are_per_test(self):
        service = CheckpointService(MemoryStorageService())
        service.save(1, SessionCheckpoint(session_id=10, remaining_seconds=5, current_index=1))
        service.save(2, SessionCheckpoint(session_id=20, remaining_seconds=5, current_index=1))

        service.clear(1)

        assert service.load(1) is None
        assert service.load(2).session_id == 20

    def test_missing_checkpoint(self):
        assert CheckpointService(MemoryStorageService()).load(1) is None

    def test_unreadable_checkpoint_is_removed(self):
        storage = MemoryStorageService()
        storage.set_item("testSession_1", "{broken")
        service = CheckpointService(storage)

        assert service.load(1) is None
        assert storage.get_item("testSession_1") is None

    def test_checkpoint_without_session_id_is_removed(self):
        storage = MemoryStorageService()
        storage.set_item("testSession_1", json.dumps({"remainingSeconds": 10}))

        assert CheckpointService(storage).load(1) is None
        assert storage.items == {}

    @pytest.mark.parametrize("record", [
        {"sessionId": 7, "remainingSeconds": "120", "currentIndex": 3},
        {"sessionId": 7, "remainingSeconds": 120, "currentIndex": "3"},
        {"sessionId": 7, "remainingSeconds": True, "currentIndex": 3},
        {"sessionId": 7, "remainingSeconds": 12.5, "currentIndex": 3},
    ])
    def test_non_integer_values_are_removed(self, record):
        storage = MemoryStorageService()
        storage.set_item("testSession_1", json.dumps(record))

        assert CheckpointService(storage).load(1) is None
        assert storage.items == {}

    def test_defaults_for_missing_fields(self):
        storage = MemoryStorageService()
        storage.set_item("testSession_1", json.dumps({"sessionId": 4}))

        checkpoint = CheckpointService(storage).load(1)
        assert checkpoint == SessionCheckpoint(session_id=4, remaining_seconds=0, current_index=1)
        assert checkpoint.is_plausible()
