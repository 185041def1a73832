"""
Storage backends for records and relocated images.

Record stores expose four table primitives (select / insert / update / delete)
and never span a transaction across two tables. Asset stores take bytes and
hand back a durable public URL. Both are constructed once at startup and
passed to the components that need them.
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import orjson

from settings import Settings

logger = logging.getLogger(__name__)

Row = dict[str, Any]
Filters = dict[str, Any]


class StoreError(Exception):
    """A store operation was rejected.

    ``code``/``details``/``hint`` mirror what the backend reported, which
    usually points at a schema mismatch rather than a transient fault.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: str | None = None,
        hint: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint

    def to_dict(self) -> dict[str, str | None]:
        return {"message": self.message, "code": self.code, "details": self.details, "hint": self.hint}


# ---------------------------------------------------------------------------
# Record stores
# ---------------------------------------------------------------------------


class Store(ABC):
    """Abstract table store."""

    @abstractmethod
    def select(self, table: str, filters: Filters | None = None) -> list[Row]:
        """Return all rows whose columns equal every value in ``filters``."""

    @abstractmethod
    def insert(self, table: str, row: Row) -> Row:
        """Insert a row and return it as stored (with generated columns)."""

    @abstractmethod
    def update(self, table: str, filters: Filters, patch: Row) -> list[Row]:
        """Apply ``patch`` to every matching row and return the updated rows.

        An empty result means nothing matched, which callers use as a
        compare-and-swap signal.
        """

    @abstractmethod
    def delete(self, table: str, filters: Filters) -> None:
        """Delete every matching row."""


def _matches(row: Row, filters: Filters | None) -> bool:
    if not filters:
        return True
    return all(row.get(key) == value for key, value in filters.items())


class MemoryStore(Store):
    """In-process table store. Rows get an ``id`` and ``created_at`` if missing."""

    def __init__(self, tables: dict[str, list[Row]] | None = None):
        self._tables: dict[str, list[Row]] = tables or {}
        self._lock = threading.RLock()

    def select(self, table: str, filters: Filters | None = None) -> list[Row]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._tables.get(table, []) if _matches(r, filters)]

    def insert(self, table: str, row: Row) -> Row:
        with self._lock:
            stored = copy.deepcopy(row)
            if not stored.get("id"):
                stored["id"] = str(uuid.uuid4())
            if not stored.get("created_at"):
                stored["created_at"] = datetime.now(timezone.utc).isoformat()
            rows = self._tables.setdefault(table, [])
            if any(r.get("id") == stored["id"] for r in rows):
                raise StoreError(
                    f"Duplicate key in {table}",
                    code="23505",
                    details=f"Key (id)=({stored['id']}) already exists.",
                )
            rows.append(stored)
            self._changed()
            return copy.deepcopy(stored)

    def update(self, table: str, filters: Filters, patch: Row) -> list[Row]:
        with self._lock:
            updated = []
            for row in self._tables.get(table, []):
                if _matches(row, filters):
                    row.update(copy.deepcopy(patch))
                    updated.append(copy.deepcopy(row))
            if updated:
                self._changed()
            return updated

    def delete(self, table: str, filters: Filters) -> None:
        with self._lock:
            rows = self._tables.get(table, [])
            kept = [r for r in rows if not _matches(r, filters)]
            if len(kept) != len(rows):
                self._tables[table] = kept
                self._changed()

    def _changed(self) -> None:
        """Hook called after every mutation."""


class JsonFileStore(MemoryStore):
    """MemoryStore persisted to a single JSON document after every mutation."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        tables: dict[str, list[Row]] = {}
        if self.path.exists():
            tables = orjson.loads(self.path.read_bytes())
        super().__init__(tables)

    def _changed(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_bytes(orjson.dumps(self._tables, option=orjson.OPT_INDENT_2))
        tmp.replace(self.path)


class SupabaseStore(Store):
    """PostgREST tables through the Supabase client."""

    def __init__(self, client):
        self.client = client

    def _run(self, query) -> list[Row]:
        from supabase import PostgrestAPIError

        try:
            return query.execute().data or []
        except PostgrestAPIError as exc:
            raise StoreError(exc.message or str(exc), code=exc.code, details=exc.details, hint=exc.hint) from exc

    @staticmethod
    def _filtered(query, filters: Filters | None):
        for key, value in (filters or {}).items():
            query = query.eq(key, value)
        return query

    def select(self, table: str, filters: Filters | None = None) -> list[Row]:
        return self._run(self._filtered(self.client.table(table).select("*"), filters))

    def insert(self, table: str, row: Row) -> Row:
        rows = self._run(self.client.table(table).insert(row))
        if not rows:
            raise StoreError(f"Insert into {table} returned no row")
        return rows[0]

    def update(self, table: str, filters: Filters, patch: Row) -> list[Row]:
        return self._run(self._filtered(self.client.table(table).update(patch), filters))

    def delete(self, table: str, filters: Filters) -> None:
        self._run(self._filtered(self.client.table(table).delete(), filters))


# ---------------------------------------------------------------------------
# Asset stores
# ---------------------------------------------------------------------------


class AssetStore(ABC):
    """Abstract durable blob storage for relocated images."""

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """
        Store a blob.

        Args:
            path: Destination path inside the store (e.g. 'images/123-ab12.jpg')
            data: Binary content
            content_type: MIME type recorded alongside the blob

        Returns:
            The stored path
        """

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Return the public URL for a stored path."""


class LocalAssetStore(AssetStore):
    """Local filesystem storage served from ``base_url``."""

    def __init__(self, base_path: str | Path, base_url: str):
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self.base_path.mkdir(parents=True, exist_ok=True)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        filepath = self.base_path / path
        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)
            filepath.write_bytes(data)
            # Content type sidecar so the original metadata survives the fixed .jpg name
            filepath.with_name(filepath.name + ".content-type").write_text(content_type)
        except OSError as exc:
            raise StoreError(f"Failed to write {filepath}: {exc}") from exc
        return path

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def locate(self, path: str) -> tuple[Path, str]:
        """Return the file and its recorded content type for a stored path."""
        base = self.base_path.resolve()
        filepath = (base / path).resolve()
        if not filepath.is_relative_to(base) or not filepath.is_file():
            raise StoreError(f"No stored asset at {path}", code="404")
        sidecar = filepath.with_name(filepath.name + ".content-type")
        content_type = sidecar.read_text() if sidecar.exists() else "image/jpeg"
        return filepath, content_type


class SupabaseAssetStore(AssetStore):
    """Supabase Storage bucket."""

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        from supabase import StorageException

        try:
            self.client.storage.from_(self.bucket).upload(
                path, data, {"content-type": content_type, "upsert": "false"}
            )
        except StorageException as exc:
            raise StoreError(f"Upload of {path} failed: {exc}") from exc
        return path

    def public_url(self, path: str) -> str:
        from supabase import StorageException

        try:
            return self.client.storage.from_(self.bucket).get_public_url(path)
        except StorageException as exc:
            raise StoreError(f"No public URL for {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def create_supabase_client(settings: Settings):
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError("Supabase backends require CATALOG_SUPABASE_URL and CATALOG_SUPABASE_KEY")
    from supabase import create_client

    return create_client(settings.supabase_url, settings.supabase_key)


def create_store(settings: Settings) -> Store:
    """Build the record store selected by ``settings.store_backend``."""
    if settings.store_backend == "supabase":
        return SupabaseStore(create_supabase_client(settings))
    if settings.store_backend == "memory":
        return MemoryStore()
    logger.info(f"Using JSON file store at {settings.store_path}")
    return JsonFileStore(settings.store_path)


def create_asset_store(settings: Settings) -> AssetStore:
    """Build the asset store selected by ``settings.asset_backend``."""
    if settings.asset_backend == "supabase":
        return SupabaseAssetStore(create_supabase_client(settings), settings.asset_bucket)
    return LocalAssetStore(settings.asset_path, settings.asset_base_url)
