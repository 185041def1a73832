"""
FastAPI server for scraping and review.

Endpoints:
- POST   /scrape                    → scrape a spec page into a pending submission
- GET    /review                    → consolidated review queue
- PATCH  /review/{id}               → save reviewer edits
- POST   /review/{id}/approve       → promote into the catalog
- DELETE /review/{id}               → discard a pending submission
- POST   /review/sweep              → finish interrupted promotions
- GET    /catalog                   → catalog entries
- GET    /assets/{path}             → relocated images (local asset backend)
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import Body, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse, ORJSONResponse, Response

from ingest import IngestionCoordinator, is_supported_url
from models import CatalogEntry, FailureReason, ReviewEntry, ScrapedSubmission, SweepReport
from parser import build_headers
from relocator import AssetRelocator
from repositories import CatalogRepository, SubmissionRepository
from review import AlreadyApproved, ReviewReconciler, SubmissionLocked, SubmissionNotFound
from settings import Settings, get_settings
from storage import AssetStore, LocalAssetStore, Store, StoreError, create_asset_store, create_store

logger = logging.getLogger("server")

DEFAULT_ACTOR = "api-user"

# Failure reasons caused by the request itself rather than by upstream or storage
_CLIENT_FAILURES = {
    FailureReason.INVALID_URL,
    FailureReason.MISSING_TITLE,
    FailureReason.NO_IMAGES_FOUND,
}

# Transient runtime failures that a plain retry usually fixes
_RETRYABLE_ERROR = re.compile(
    r"(event loop is closed|client has been closed|cannot send a request|pool timeout|connection reset)",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@dataclass
class Services:
    """Components shared by all requests, built once per process."""

    settings: Settings
    client: httpx.AsyncClient
    asset_store: AssetStore
    coordinator: IngestionCoordinator
    reconciler: ReviewReconciler


def build_services(
    settings: Settings,
    store: Store | None = None,
    asset_store: AssetStore | None = None,
    client: httpx.AsyncClient | None = None,
) -> Services:
    store = store or create_store(settings)
    asset_store = asset_store or create_asset_store(settings)
    client = client or httpx.AsyncClient(headers=build_headers(settings.user_agent))

    submissions = SubmissionRepository(store, settings.submissions_table)
    catalog = CatalogRepository(store, settings.catalog_table)
    relocator = AssetRelocator(
        asset_store,
        client,
        timeout=settings.image_timeout,
        concurrency=settings.relocation_concurrency,
        prefix=settings.asset_prefix,
    )
    return Services(
        settings=settings,
        client=client,
        asset_store=asset_store,
        coordinator=IngestionCoordinator(submissions, relocator, client, settings),
        reconciler=ReviewReconciler(submissions, catalog),
    )


def _error(status_code: int, message: str, **extra: Any) -> ORJSONResponse:
    return ORJSONResponse(status_code=status_code, content={"error": message, **extra})


def _friendly_message(exc: Exception) -> str:
    if _RETRYABLE_ERROR.search(str(exc)):
        return "The service was briefly unavailable, please retry the request"
    return "Internal server error"


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------


def create_app(services: Services | None = None, settings: Settings | None = None) -> FastAPI:
    settings = services.settings if services else (settings or get_settings())

    app = FastAPI(
        title="Spec Catalog API",
        default_response_class=ORJSONResponse,
    )
    app.state.services = services

    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
        max_age=86400,
    )

    @app.on_event("startup")
    async def startup() -> None:
        if app.state.services is None:
            app.state.services = build_services(settings)

    @app.on_event("shutdown")
    async def shutdown() -> None:
        await app.state.services.client.aclose()

    @app.exception_handler(SubmissionNotFound)
    async def not_found(request: Request, exc: SubmissionNotFound):
        return _error(404, str(exc))

    @app.exception_handler(AlreadyApproved)
    async def already_approved(request: Request, exc: AlreadyApproved):
        return _error(409, str(exc))

    @app.exception_handler(SubmissionLocked)
    async def locked(request: Request, exc: SubmissionLocked):
        return _error(409, str(exc))

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error(500, _friendly_message(exc))

    def _services() -> Services:
        return app.state.services

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    @app.post("/scrape", response_model=ScrapedSubmission)
    async def scrape(request: Request):
        """Scrape a spec page and store it as a pending submission."""
        try:
            payload = await request.json()
        except ValueError:
            return _error(400, "Request body must be JSON")
        if not isinstance(payload, dict):
            return _error(400, "Request body must be a JSON object")

        url = payload.get("url")
        if not url or not isinstance(url, str):
            return _error(400, "Invalid URL provided")
        services = _services()
        domain = services.settings.source_domain
        if not is_supported_url(url, domain):
            return _error(400, f"Only {domain} URLs are supported")

        user = payload.get("user")
        actor = user if isinstance(user, str) and user else DEFAULT_ACTOR

        result = await services.coordinator.ingest(url, actor)
        if not result.success:
            status = 400 if result.reason in _CLIENT_FAILURES else 500
            return _error(status, result.message, reason=result.reason.value, details=result.error_details)
        return result.data

    # The store calls below block, so these handlers are plain functions and
    # FastAPI runs them in its threadpool.

    @app.get("/review", response_model=list[ReviewEntry])
    def review_queue():
        """Return the consolidated pending-review queue."""
        return _services().reconciler.load_queue()

    @app.patch("/review/{submission_id}", response_model=ScrapedSubmission)
    def update_submission(submission_id: str, patch: dict[str, Any] = Body(...)):
        try:
            return _services().reconciler.update(submission_id, patch)
        except ValueError as exc:
            return _error(400, str(exc))

    @app.post("/review/sweep", response_model=SweepReport)
    def sweep():
        return _services().reconciler.sweep()

    @app.post("/review/{submission_id}/approve", response_model=CatalogEntry)
    def approve(submission_id: str, body: dict[str, Any] | None = Body(default=None)):
        """Promote a submission; ``fields`` carries the reviewer's edited values."""
        fields = (body or {}).get("fields")
        if fields is not None and not isinstance(fields, dict):
            return _error(400, "'fields' must be an object")
        return _services().reconciler.approve(submission_id, fields)

    @app.delete("/review/{submission_id}", status_code=204)
    def discard(submission_id: str):
        _services().reconciler.discard(submission_id)
        return Response(status_code=204)

    @app.get("/catalog", response_model=list[CatalogEntry])
    def list_catalog():
        return _services().reconciler.catalog.list_all()

    @app.get("/assets/{path:path}")
    def asset(path: str):
        """Serve images relocated to the local asset store."""
        asset_store = _services().asset_store
        if not isinstance(asset_store, LocalAssetStore):
            return _error(404, "Assets are not served by this instance")
        try:
            filepath, content_type = asset_store.locate(path)
        except StoreError as exc:
            return _error(404, exc.message)
        return FileResponse(filepath, media_type=content_type)

    return app
