"""Tests for the file-backed credential store."""

from __future__ import annotations

import json

from wagate.credentials import FileCredentialStore


def test_load_missing_file(tmp_path):
    assert FileCredentialStore(tmp_path / "auth" / "session.json").load() is None


def test_save_creates_directory_and_merges(tmp_path):
    store = FileCredentialStore(tmp_path / "auth" / "session.json")
    store.save({"id": "15550001111@s.whatsapp.net"})
    store.save({"platform": "android"})
    assert store.load() == {"id": "15550001111@s.whatsapp.net", "platform": "android"}
    assert json.loads(store.path.read_text())["platform"] == "android"


def test_later_update_wins(tmp_path):
    store = FileCredentialStore(tmp_path / "session.json")
    store.save({"id": "old"})
    store.save({"id": "new"})
    assert store.load() == {"id": "new"}


def test_corrupt_file_is_ignored(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json")
    store = FileCredentialStore(path)
    assert store.load() is None
    store.save({"id": "fresh"})
    assert store.load() == {"id": "fresh"}


def test_non_object_is_ignored(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("[1, 2, 3]")
    assert FileCredentialStore(path).load() is None
