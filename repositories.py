"""
Typed repositories for submissions and catalog entries.

Rows cross the store boundary as JSON-ready dicts and come back as pydantic
models, so every record written or read is checked against the canonical
schema.
"""

from typing import Any

from models import CATALOG_WRITE_FIELDS, CatalogEntry, ScrapedSubmission, SubmissionStatus
from storage import Store


class SubmissionRepository:
    """Pending-review submissions (``scraped_data`` table by default)."""

    def __init__(self, store: Store, table: str = "scraped_data"):
        self.store = store
        self.table = table

    def add(self, submission: ScrapedSubmission) -> ScrapedSubmission:
        row = self.store.insert(self.table, submission.model_dump(mode="json"))
        return ScrapedSubmission.model_validate(row)

    def get(self, submission_id: str) -> ScrapedSubmission | None:
        rows = self.store.select(self.table, {"id": submission_id})
        return ScrapedSubmission.model_validate(rows[0]) if rows else None

    def list_all(self) -> list[ScrapedSubmission]:
        rows = self.store.select(self.table)
        return [ScrapedSubmission.model_validate(r) for r in rows]

    def update(self, submission_id: str, patch: dict[str, Any]) -> ScrapedSubmission | None:
        """Patch a submission while it is still pending."""
        rows = self.store.update(
            self.table,
            {"id": submission_id, "status": SubmissionStatus.PENDING.value},
            patch,
        )
        return ScrapedSubmission.model_validate(rows[0]) if rows else None

    def mark_approved(self, submission_id: str) -> bool:
        """Flip pending -> approved. Returns False if the row was not pending."""
        rows = self.store.update(
            self.table,
            {"id": submission_id, "status": SubmissionStatus.PENDING.value},
            {"status": SubmissionStatus.APPROVED.value},
        )
        return len(rows) == 1

    def delete(self, submission_id: str) -> None:
        self.store.delete(self.table, {"id": submission_id})


class CatalogRepository:
    """Canonical catalog entries (``gadgets`` table by default)."""

    def __init__(self, store: Store, table: str = "gadgets"):
        self.store = store
        self.table = table

    def add(self, entry: CatalogEntry) -> CatalogEntry:
        row = entry.model_dump(mode="json", include=set(CATALOG_WRITE_FIELDS))
        return CatalogEntry.model_validate(self.store.insert(self.table, row))

    def find_by_submission(self, submission_id: str) -> list[CatalogEntry]:
        rows = self.store.select(self.table, {"source_submission_id": submission_id})
        return [CatalogEntry.model_validate(r) for r in rows]

    def list_all(self) -> list[CatalogEntry]:
        return [CatalogEntry.model_validate(r) for r in self.store.select(self.table)]

    def delete(self, entry_id: str) -> None:
        self.store.delete(self.table, {"id": entry_id})
