"""Tests for the generation store and its registry."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from cachegen.exceptions import StoreIOError
from cachegen.models import ResourceRecord, ResponseType
from cachegen.store import GenerationStore, StoreRegistry


KEY = "https://app.example.com/index.html"


def _record(body: bytes = b"<html>", status: int = 200) -> ResourceRecord:
    return ResourceRecord(
        url=KEY,
        status=status,
        reason="OK",
        headers={"content-type": "text/html"},
        body=body,
        response_type=ResponseType.BASIC,
    )


@pytest.fixture()
def store(registry: StoreRegistry) -> GenerationStore:
    return registry.open("app-shell-v1")


# ------------------------------------------------------------------ #
# GenerationStore
# ------------------------------------------------------------------ #


class TestGenerationStore:
    def test_put_then_get(self, store: GenerationStore) -> None:
        store.put(KEY, _record())
        result = store.get(KEY)
        assert result is not None
        assert result.body == b"<html>"
        assert result.content_type == "text/html"

    def test_miss_returns_none(self, store: GenerationStore) -> None:
        assert store.get("https://app.example.com/missing") is None

    def test_put_overwrites(self, store: GenerationStore) -> None:
        store.put(KEY, _record(b"old"))
        store.put(KEY, _record(b"new"))
        assert store.get(KEY).body == b"new"
        assert len(store) == 1

    def test_put_many_commits_all(self, store: GenerationStore) -> None:
        other = "https://app.example.com/app.js"
        store.put_many([(KEY, _record()), (other, _record(b"js"))])
        assert store.keys() == sorted([KEY, other])
        assert other in store

    def test_contains(self, store: GenerationStore) -> None:
        assert KEY not in store
        store.put(KEY, _record())
        assert KEY in store

    def test_corrupt_record_reads_as_absent(self, store: GenerationStore) -> None:
        store._cache.set(KEY, {"not": "a record"})
        assert store.get(KEY) is None

    def test_len(self, store: GenerationStore) -> None:
        assert len(store) == 0
        store.put(KEY, _record())
        assert len(store) == 1

    def test_len_failure_raises_store_error(
        self, store: GenerationStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("database disk image is malformed")

        monkeypatch.setattr(type(store._cache), "__len__", broken)
        with pytest.raises(StoreIOError):
            len(store)


# ------------------------------------------------------------------ #
# StoreRegistry
# ------------------------------------------------------------------ #


class TestStoreRegistry:
    def test_open_creates_and_lists(self, registry: StoreRegistry) -> None:
        assert registry.list_names() == set()
        registry.open("app-shell-v1")
        registry.open("app-shell-v2")
        assert registry.list_names() == {"app-shell-v1", "app-shell-v2"}

    def test_open_is_memoised(self, registry: StoreRegistry) -> None:
        assert registry.open("app-shell-v1") is registry.open("app-shell-v1")

    @pytest.mark.parametrize("name", ["", "..", "a/b", "a\\b"])
    def test_invalid_name_rejected(self, registry: StoreRegistry, name: str) -> None:
        with pytest.raises(StoreIOError):
            registry.open(name)

    def test_delete_removes_only_that_generation(self, registry: StoreRegistry) -> None:
        registry.open("app-shell-v1").put(KEY, _record(b"v1"))
        registry.open("app-shell-v2").put(KEY, _record(b"v2"))

        assert registry.delete("app-shell-v1") is True
        assert registry.list_names() == {"app-shell-v2"}
        assert registry.open("app-shell-v2").get(KEY).body == b"v2"

    def test_delete_missing_returns_false(self, registry: StoreRegistry) -> None:
        assert registry.delete("nope") is False

    def test_reopen_after_delete_is_empty(self, registry: StoreRegistry) -> None:
        registry.open("app-shell-v1").put(KEY, _record())
        registry.delete("app-shell-v1")
        assert len(registry.open("app-shell-v1")) == 0

    def test_records_survive_reopen(self, tmp_path: Path) -> None:
        first = StoreRegistry(tmp_path)
        first.open("app-shell-v1").put(KEY, _record(b"persisted"))
        first.close()

        second = StoreRegistry(tmp_path)
        try:
            assert second.open("app-shell-v1").get(KEY).body == b"persisted"
        finally:
            second.close()


class TestActivePointer:
    def test_unset_is_none(self, registry: StoreRegistry) -> None:
        assert registry.get_active() is None

    def test_set_and_get(self, registry: StoreRegistry) -> None:
        registry.set_active("app-shell-v2")
        assert registry.get_active() == "app-shell-v2"
        data = json.loads((registry.root / "active.json").read_text())
        assert data == {"generation": "app-shell-v2"}

    def test_pointer_is_not_a_generation(self, registry: StoreRegistry) -> None:
        registry.set_active("app-shell-v1")
        assert registry.list_names() == set()

    def test_unreadable_pointer_is_ignored(self, registry: StoreRegistry) -> None:
        registry.root.mkdir(parents=True, exist_ok=True)
        (registry.root / "active.json").write_text("{broken")
        assert registry.get_active() is None
