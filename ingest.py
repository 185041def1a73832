"""
Ingestion: source URL -> pending submission.

Stages:
  A) Fetch and parse the spec page
  B) Validate title and image presence (before spending uploads)
  C) Relocate images to durable storage
  D) Normalize spec rows onto the canonical fields
  E) Persist a pending submission

No stage retries. Every expected failure comes back as an IngestFailure with
a reason precise enough for an operator to decide whether to re-submit.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx

from models import FailureReason, IngestFailure, IngestResult, IngestSuccess, ScrapedSubmission
from normalizer import normalize_specs
from parser import FetchError, scrape_page
from relocator import AssetRelocator
from repositories import SubmissionRepository
from settings import Settings
from storage import StoreError

logger = logging.getLogger(__name__)


def is_supported_url(url: object, domain: str) -> bool:
    """True for http(s) URLs whose host is ``domain`` or one of its subdomains."""
    if not isinstance(url, str) or not url.strip():
        return False
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https"):
        return False
    host = (parsed.hostname or "").lower()
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


@dataclass
class IngestMetrics:
    """Per-ingestion timings and counts, logged once the run ends."""

    source_url: str = ""
    fetch_time: float = 0.0
    relocate_time: float = 0.0
    total_time: float = 0.0
    rows_found: int = 0
    images_found: int = 0
    images_relocated: int = 0
    fields_filled: list[str] = field(default_factory=list)
    unmapped_labels: list[str] = field(default_factory=list)
    outcome: str = ""


class IngestionCoordinator:
    """Runs one scrape from URL to pending submission."""

    def __init__(
        self,
        submissions: SubmissionRepository,
        relocator: AssetRelocator,
        client: httpx.AsyncClient,
        settings: Settings,
    ):
        self.submissions = submissions
        self.relocator = relocator
        self.client = client
        self.settings = settings

    async def ingest(self, source_url: str, actor_id: str) -> IngestResult:
        metrics = IngestMetrics(source_url=source_url)
        t_start = time.monotonic()
        try:
            result = await self._run(source_url, actor_id, metrics)
        finally:
            metrics.total_time = time.monotonic() - t_start
        metrics.outcome = "ok" if result.success else result.reason.value
        logger.info(
            f"Ingest {source_url} by {actor_id}: {metrics.outcome} | "
            f"rows={metrics.rows_found} images={metrics.images_relocated}/{metrics.images_found} "
            f"fields={len(metrics.fields_filled)} unmapped={len(metrics.unmapped_labels)} "
            f"fetch={metrics.fetch_time:.2f}s relocate={metrics.relocate_time:.2f}s "
            f"total={metrics.total_time:.2f}s"
        )
        return result

    async def _run(self, source_url: str, actor_id: str, metrics: IngestMetrics) -> IngestResult:
        # The API boundary checks this too; repeat it so no other caller can skip it.
        if not is_supported_url(source_url, self.settings.source_domain):
            return _failure(
                FailureReason.INVALID_URL,
                f"Only {self.settings.source_domain} URLs are supported",
                {"url": source_url},
            )

        # Stage A: fetch + parse
        t0 = time.monotonic()
        try:
            parsed = await scrape_page(self.client, source_url, timeout=self.settings.page_timeout)
        except FetchError as exc:
            logger.warning(f"Scrape of {source_url} failed: {exc}")
            return _failure(
                FailureReason.SOURCE_UNAVAILABLE,
                f"Scraping failed: {exc}",
                {"url": exc.url, "status_code": exc.status_code},
            )
        finally:
            metrics.fetch_time = time.monotonic() - t0
        metrics.rows_found = len(parsed.rows)
        metrics.images_found = len(parsed.image_urls)

        # Stage B: validation that needs no uploads
        if not parsed.title:
            return _failure(
                FailureReason.MISSING_TITLE,
                "No product title found on the page; it may not be a spec page",
                {"url": source_url, "rows_found": len(parsed.rows)},
            )
        if not parsed.image_urls:
            return _failure(
                FailureReason.NO_IMAGES_FOUND,
                "No product images found on the page",
                {"url": source_url, "title": parsed.title},
            )

        # Stage C: relocate images
        t0 = time.monotonic()
        image_urls = await self.relocator.relocate(parsed.image_urls)
        metrics.relocate_time = time.monotonic() - t0
        metrics.images_relocated = len(image_urls)
        if not image_urls:
            return _failure(
                FailureReason.IMAGES_NOT_RELOCATED,
                f"None of the {len(parsed.image_urls)} product images could be copied to storage",
                {"url": source_url, "images_found": len(parsed.image_urls)},
            )

        # Stage D: normalize
        specs = normalize_specs(parsed.rows, keep_unmapped=self.settings.keep_unmapped_fields)
        metrics.fields_filled = specs.filled_fields
        metrics.unmapped_labels = sorted(specs.extra_fields)
        if specs.is_empty:
            logger.warning(f"No spec fields recognised on {source_url}")

        # Stage E: persist as pending
        submission = ScrapedSubmission(
            id=str(uuid.uuid4()),
            source_url=source_url,
            title=parsed.title,
            category=self.settings.default_category,
            image_urls=image_urls,
            extra_fields=specs.extra_fields,
            added_by=actor_id,
            **specs.fields,
        )
        try:
            stored = await asyncio.to_thread(self.submissions.add, submission)
        except StoreError as exc:
            logger.error(f"Storing submission for {source_url} failed: {exc}")
            return _failure(
                FailureReason.PERSISTENCE_ERROR,
                f"Could not save the scraped data: {exc.message}",
                exc.to_dict(),
            )

        return IngestSuccess(data=stored)


def _failure(reason: FailureReason, message: str, details: dict | None = None) -> IngestFailure:
    return IngestFailure(message=message, reason=reason, error_details=details)
