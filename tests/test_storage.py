from __future__ import annotations

import json

import pytest

from nanogen.services.storage import JsonFileStorage, StorageQuotaExceeded


def test_set_get_remove_persist(tmp_path) -> None:
    path = tmp_path / "nested" / "storage.json"
    storage = JsonFileStorage(path, quota_bytes=10_000)

    storage.set("theme", "dark")
    storage.set("ratio", "square")
    storage.remove("theme")
    storage.remove("never-set")

    assert storage.get("theme") is None
    assert json.loads(path.read_text(encoding="utf-8")) == {"ratio": "square"}
    assert JsonFileStorage(path, quota_bytes=10_000).get("ratio") == "square"


def test_quota_rejects_write_and_keeps_previous_state(tmp_path) -> None:
    path = tmp_path / "storage.json"
    storage = JsonFileStorage(path, quota_bytes=200)
    storage.set("small", "value")

    with pytest.raises(StorageQuotaExceeded):
        storage.set("big", "x" * 500)

    assert storage.get("big") is None
    assert storage.get("small") == "value"
    assert "big" not in json.loads(path.read_text(encoding="utf-8"))


def test_corrupt_file_is_ignored(tmp_path) -> None:
    path = tmp_path / "storage.json"
    path.write_text("{broken", encoding="utf-8")

    storage = JsonFileStorage(path, quota_bytes=1000)

    assert storage.get("anything") is None
    storage.set("key", "value")
    assert storage.get("key") == "value"


def test_update_applies_all_changes_or_none(tmp_path) -> None:
    path = tmp_path / "storage.json"
    storage = JsonFileStorage(path, quota_bytes=200)
    storage.set("theme", "dark")
    storage.set("token", "old")

    storage.update({"theme": "light", "token": None})
    assert storage.get("theme") == "light"
    assert storage.get("token") is None

    with pytest.raises(StorageQuotaExceeded):
        storage.update({"theme": "dark", "big": "x" * 500})

    assert storage.get("theme") == "light"
    assert json.loads(path.read_text(encoding="utf-8")) == {"theme": "light"}
