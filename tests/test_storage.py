"""Tests for the record and asset stores."""

from unittest.mock import MagicMock

import pytest
from supabase import PostgrestAPIError

from storage import (
    JsonFileStore,
    LocalAssetStore,
    MemoryStore,
    StoreError,
    SupabaseStore,
    create_asset_store,
    create_store,
)


class TestMemoryStore:
    def test_insert_assigns_id_and_timestamp(self):
        store = MemoryStore()
        row = store.insert("gadgets", {"title": "Acme"})
        assert row["id"]
        assert row["created_at"]
        assert store.select("gadgets") == [row]

    def test_insert_keeps_given_id(self):
        store = MemoryStore()
        assert store.insert("gadgets", {"id": "g1"})["id"] == "g1"

    def test_duplicate_id_rejected(self):
        store = MemoryStore()
        store.insert("gadgets", {"id": "g1"})
        with pytest.raises(StoreError) as exc_info:
            store.insert("gadgets", {"id": "g1"})
        assert exc_info.value.code == "23505"
        assert exc_info.value.to_dict()["details"] == "Key (id)=(g1) already exists."

    def test_select_filters_on_every_column(self):
        store = MemoryStore()
        store.insert("t", {"id": "a", "status": "pending"})
        store.insert("t", {"id": "b", "status": "approved"})
        assert [r["id"] for r in store.select("t", {"status": "pending"})] == ["a"]
        assert store.select("t", {"id": "a", "status": "approved"}) == []
        assert store.select("missing") == []

    def test_update_returns_matched_rows(self):
        store = MemoryStore()
        store.insert("t", {"id": "a", "status": "pending"})
        updated = store.update("t", {"id": "a", "status": "pending"}, {"status": "approved"})
        assert [r["status"] for r in updated] == ["approved"]
        # Second compare-and-swap finds nothing to update
        assert store.update("t", {"id": "a", "status": "pending"}, {"status": "approved"}) == []

    def test_delete(self):
        store = MemoryStore()
        store.insert("t", {"id": "a"})
        store.insert("t", {"id": "b"})
        store.delete("t", {"id": "a"})
        assert [r["id"] for r in store.select("t")] == ["b"]

    def test_rows_are_copies(self):
        store = MemoryStore()
        row = store.insert("t", {"id": "a", "tags": ["x"]})
        row["tags"].append("y")
        store.select("t")[0]["tags"].append("z")
        assert store.select("t")[0]["tags"] == ["x"]


class TestJsonFileStore:
    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "db" / "catalog.json"
        JsonFileStore(path).insert("gadgets", {"id": "g1", "title": "Acme"})

        reopened = JsonFileStore(path)
        assert reopened.select("gadgets", {"id": "g1"})[0]["title"] == "Acme"
        assert not path.with_suffix(".json.tmp").exists()

    def test_missing_file_starts_empty(self, tmp_path):
        assert JsonFileStore(tmp_path / "none.json").select("gadgets") == []


class TestSupabaseStore:
    def _client(self, data=None, error=None):
        query = MagicMock()
        query.select.return_value = query
        query.eq.return_value = query
        if error is not None:
            query.execute.side_effect = error
        else:
            query.execute.return_value = MagicMock(data=data)
        client = MagicMock()
        client.table.return_value = query
        return client, query

    def test_select_applies_filters(self):
        client, query = self._client(data=[{"id": "a"}])
        rows = SupabaseStore(client).select("scraped_data", {"id": "a", "status": "pending"})
        assert rows == [{"id": "a"}]
        client.table.assert_called_once_with("scraped_data")
        query.eq.assert_any_call("id", "a")
        query.eq.assert_any_call("status", "pending")

    def test_update_with_no_match_returns_empty(self):
        client, query = self._client(data=[])
        query.update.return_value = query
        assert SupabaseStore(client).update("scraped_data", {"id": "a"}, {"status": "approved"}) == []

    def test_api_error_becomes_store_error(self):
        error = PostgrestAPIError(
            {"message": "column does not exist", "code": "42703", "details": "gadgets.foo", "hint": None}
        )
        client, query = self._client(error=error)
        query.insert.return_value = query
        with pytest.raises(StoreError) as exc_info:
            SupabaseStore(client).insert("gadgets", {"foo": 1})
        assert exc_info.value.code == "42703"
        assert exc_info.value.details == "gadgets.foo"


class TestLocalAssetStore:
    def test_upload_and_public_url(self, tmp_path):
        store = LocalAssetStore(tmp_path, "https://cdn.test/assets/")
        path = store.upload("images/1-abc.jpg", b"data", "image/webp")
        assert (tmp_path / "images" / "1-abc.jpg").read_bytes() == b"data"
        assert (tmp_path / "images" / "1-abc.jpg.content-type").read_text() == "image/webp"
        assert store.public_url(path) == "https://cdn.test/assets/images/1-abc.jpg"
        assert store.locate(path) == ((tmp_path / "images" / "1-abc.jpg").resolve(), "image/webp")

    def test_locate_stays_inside_base(self, tmp_path):
        (tmp_path / "secret.txt").write_text("x")
        store = LocalAssetStore(tmp_path / "assets", "https://cdn.test/assets")
        with pytest.raises(StoreError):
            store.locate("../secret.txt")
        with pytest.raises(StoreError):
            store.locate("images/missing.jpg")


class TestFactories:
    def test_memory_backend(self, settings):
        assert type(create_store(settings)) is MemoryStore

    def test_json_backend(self, settings, tmp_path):
        settings = settings.model_copy(update={"store_backend": "json", "store_path": tmp_path / "c.json"})
        assert isinstance(create_store(settings), JsonFileStore)

    def test_supabase_requires_credentials(self, settings):
        settings = settings.model_copy(update={"store_backend": "supabase"})
        with pytest.raises(ValueError, match="CATALOG_SUPABASE_URL"):
            create_store(settings)

    def test_local_asset_backend(self, settings):
        store = create_asset_store(settings)
        assert isinstance(store, LocalAssetStore)
        assert store.public_url("images/a.jpg").startswith(settings.asset_base_url)
