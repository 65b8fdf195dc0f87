"""Tests for the device-local key-value stores."""

import os

import pytest

from app.services.keystore import FileKeyStore, MemoryKeyStore, StorageUnavailable


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryKeyStore()
    return FileKeyStore(str(tmp_path / "keys"))


def test_get_missing_returns_none(store):
    assert store.get("device_encryption_key") is None


def test_set_get_remove(store):
    store.set("entry", "one")
    assert store.get("entry") == "one"
    store.set("entry", "two")
    assert store.get("entry") == "two"
    store.remove("entry")
    assert store.get("entry") is None
    store.remove("entry")  # removing twice is fine


def test_set_if_absent_keeps_first_value(store):
    assert store.set_if_absent("entry", "first") == "first"
    assert store.set_if_absent("entry", "second") == "first"
    assert store.get("entry") == "first"


def test_file_store_leaves_no_temp_files(tmp_path):
    store = FileKeyStore(str(tmp_path))
    store.set("a", "1")
    store.set_if_absent("b", "2")
    store.set_if_absent("b", "3")
    assert sorted(os.listdir(tmp_path)) == ["a", "b"]


def test_file_store_rejects_path_like_names(tmp_path):
    store = FileKeyStore(str(tmp_path))
    with pytest.raises(ValueError):
        store.get("../escape")


def test_file_store_unusable_directory(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("occupied")
    store = FileKeyStore(str(blocker))

    with pytest.raises(StorageUnavailable):
        store.get("entry")
    with pytest.raises(StorageUnavailable):
        store.set("entry", "value")
    with pytest.raises(StorageUnavailable):
        store.set_if_absent("entry", "value")
