"""
Review queue and promotion into the catalog.

Loading the queue consolidates submissions that share a title (compared
case-insensitively after trimming): the oldest pending submission keeps its
id and status and shows the freshest field values from the group. This is a
view; nothing is written until a reviewer saves or approves.

Approval writes two tables without a transaction:
  1. insert the catalog entry (or reuse one left by an interrupted approve)
  2. flip the submission pending -> approved with a compare-and-swap update
Between the two a catalog entry can exist while its submission still reads
pending; ``sweep()`` finishes such promotions.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from models import (
    CATALOG_WRITE_FIELDS,
    EDITABLE_SUBMISSION_FIELDS,
    CatalogEntry,
    ReviewEntry,
    ScrapedSubmission,
    SubmissionStatus,
    SweepReport,
)
from repositories import CatalogRepository, SubmissionRepository

logger = logging.getLogger(__name__)

# Identity and bookkeeping columns that a merge never copies from another submission
_IDENTITY_FIELDS = {"id", "status", "added_by", "created_at"}


class ReviewError(Exception):
    """Base class for review workflow errors."""


class SubmissionNotFound(ReviewError):
    def __init__(self, submission_id: str):
        super().__init__(f"Submission {submission_id} not found")
        self.submission_id = submission_id


class AlreadyApproved(ReviewError):
    def __init__(self, submission_id: str):
        super().__init__(f"Submission {submission_id} is already approved")
        self.submission_id = submission_id


class SubmissionLocked(ReviewError):
    def __init__(self, submission_id: str):
        super().__init__(f"Submission {submission_id} is approved and can no longer be edited")
        self.submission_id = submission_id


def title_key(title: str) -> str:
    return title.strip().lower()


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _as_utc(created: datetime | None) -> datetime:
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def _sort_key(submission: ScrapedSubmission) -> datetime:
    return _as_utc(submission.created_at)


def _entry_order(entry: CatalogEntry) -> tuple[datetime, str]:
    # The earliest linked entry is the canonical one for its submission
    return (_as_utc(entry.created_at), entry.id or "")


def consolidate(submissions: list[ScrapedSubmission]) -> list[ReviewEntry]:
    """Build the review queue from every fetched submission (any status).

    For each title group that has pending members, one entry is produced:
    the oldest pending submission, carrying the field values of the most
    recently created submission in the group.
    """
    groups: dict[str, list[ScrapedSubmission]] = {}
    for submission in submissions:
        groups.setdefault(title_key(submission.title), []).append(submission)

    entries: list[ReviewEntry] = []
    for members in groups.values():
        members.sort(key=_sort_key)
        pending = [m for m in members if m.status == SubmissionStatus.PENDING]
        if not pending:
            continue

        anchor = pending[0]
        freshest = members[-1]
        duplicates = [m.id for m in pending[1:]]

        if freshest.id == anchor.id:
            entries.append(ReviewEntry(submission=anchor, duplicate_ids=duplicates))
            continue

        merged = freshest.model_copy(
            update={name: getattr(anchor, name) for name in _IDENTITY_FIELDS},
            deep=True,
        )
        entries.append(ReviewEntry(submission=merged, merged_from=freshest.id, duplicate_ids=duplicates))

    entries.sort(key=lambda e: _sort_key(e.submission))
    return entries


def build_catalog_entry(submission: ScrapedSubmission, edited_fields: dict[str, Any] | None = None) -> CatalogEntry:
    """Project a submission (plus reviewer edits) onto the catalog schema.

    Submission-only bookkeeping (source_url, status, added_by, extra_fields)
    is dropped; image_urls collapses to its first element.
    """
    data = submission.model_dump()
    for name, value in (edited_fields or {}).items():
        if name in EDITABLE_SUBMISSION_FIELDS:
            data[name] = value

    image_urls = data.get("image_urls") or []
    values = {name: data[name] for name in CATALOG_WRITE_FIELDS if name in data}
    values["image_url"] = image_urls[0] if image_urls else None
    values["created_by"] = submission.added_by
    values["source_submission_id"] = submission.id
    return CatalogEntry(**values)


class ReviewReconciler:
    """Review queue operations over the submission and catalog repositories."""

    def __init__(self, submissions: SubmissionRepository, catalog: CatalogRepository):
        self.submissions = submissions
        self.catalog = catalog

    def load_queue(self) -> list[ReviewEntry]:
        return consolidate(self.submissions.list_all())

    def _queue_view(self, submission: ScrapedSubmission) -> ScrapedSubmission:
        """The submission as the review queue shows it, merged with its title group."""
        key = title_key(submission.title)
        group = [s for s in self.submissions.list_all() if title_key(s.title) == key]
        for entry in consolidate(group):
            if entry.submission.id == submission.id:
                return entry.submission
        return submission

    def _require(self, submission_id: str) -> ScrapedSubmission:
        submission = self.submissions.get(submission_id)
        if submission is None:
            raise SubmissionNotFound(submission_id)
        return submission

    def update(self, submission_id: str, patch: dict[str, Any]) -> ScrapedSubmission:
        """Save reviewer edits to a pending submission."""
        submission = self._require(submission_id)
        if submission.is_approved:
            raise SubmissionLocked(submission_id)

        unknown = set(patch) - EDITABLE_SUBMISSION_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {sorted(unknown)}")

        # Validate the edited record before writing it
        candidate = submission.model_copy(update=patch)
        ScrapedSubmission.model_validate(candidate.model_dump())
        updated = self.submissions.update(submission_id, candidate.model_dump(mode="json", include=set(patch)))
        if updated is None:
            # Approved between our read and the write
            raise SubmissionLocked(submission_id)
        return updated

    def approve(self, submission_id: str, edited_fields: dict[str, Any] | None = None) -> CatalogEntry:
        """Promote a pending submission into the catalog exactly once.

        The entry is built from the submission as the queue shows it, so
        values merged in from a newer same-title submission are kept;
        ``edited_fields`` are applied on top.
        """
        submission = self._require(submission_id)
        if submission.is_approved:
            raise AlreadyApproved(submission_id)

        linked = self.catalog.find_by_submission(submission_id)
        inserted: CatalogEntry | None = None
        if linked:
            entry = min(linked, key=_entry_order)
            logger.info(f"Resuming promotion of {submission_id} with catalog entry {entry.id}")
        else:
            inserted = self.catalog.add(build_catalog_entry(self._queue_view(submission), edited_fields))
            entry = inserted

        if not self.submissions.mark_approved(submission_id):
            # Another approver flipped the status first
            if inserted is not None:
                self._back_out(submission_id, inserted)
            raise AlreadyApproved(submission_id)

        logger.info(f"Approved submission {submission_id} as catalog entry {entry.id}")
        return entry

    def _back_out(self, submission_id: str, inserted: CatalogEntry) -> None:
        """Delete our losing insert unless the winner resumed with it."""
        linked = self.catalog.find_by_submission(submission_id)
        if linked and min(linked, key=_entry_order).id != inserted.id:
            logger.info(f"Backing out catalog entry {inserted.id} for {submission_id}")
            self.catalog.delete(inserted.id)

    def discard(self, submission_id: str) -> None:
        """Delete a pending submission from the queue."""
        submission = self._require(submission_id)
        if submission.is_approved:
            raise SubmissionLocked(submission_id)
        self.submissions.delete(submission_id)

    def sweep(self) -> SweepReport:
        """Finish interrupted promotions and report inconsistent records."""
        report = SweepReport()
        submissions = {s.id: s for s in self.submissions.list_all()}
        by_submission: dict[str, list[CatalogEntry]] = {}
        for entry in self.catalog.list_all():
            if entry.source_submission_id:
                by_submission.setdefault(entry.source_submission_id, []).append(entry)

        for source_id, linked in by_submission.items():
            linked.sort(key=_entry_order)
            canonical = linked[0]
            for extra in linked[1:]:
                if extra.id:
                    self.catalog.delete(extra.id)
                    report.duplicate_entries.append(extra.id)

            submission = submissions.get(source_id)
            if submission is None:
                report.orphaned_entries.append(canonical.id or "")
            elif submission.status == SubmissionStatus.PENDING and self.submissions.mark_approved(source_id):
                report.completed.append(source_id)

        for submission in submissions.values():
            if submission.is_approved and submission.id not in by_submission:
                report.approved_without_entry.append(submission.id)

        if any(report.model_dump().values()):
            logger.warning(
                f"Sweep: completed={report.completed} duplicates={report.duplicate_entries} "
                f"orphaned={report.orphaned_entries} approved_without_entry={report.approved_without_entry}"
            )
        return report
