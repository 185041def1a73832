"""Shared fixtures: in-memory stores, a fake upstream site and a sample spec page."""

from pathlib import Path

import httpx
import pytest

from repositories import CatalogRepository, SubmissionRepository
from review import ReviewReconciler
from settings import Settings
from storage import LocalAssetStore, MemoryStore

FIXTURES = Path(__file__).parent / "fixtures"

PAGE_URL = "https://www.gsmarena.com/acme_phone_x-12345.php"
IMAGE_URLS = [
    "https://fdn2.gsmarena.com/vv/bigpic/acme-phone-x.jpg",
    "https://fdn.gsmarena.com/imgroot/reviews/acme-phone-x/lifestyle/-1024w2/gsmarena_001.jpg",
    "https://fdn.gsmarena.com/imgroot/reviews/acme-phone-x/lifestyle/-1024w2/gsmarena_002.jpg",
]
ASSET_BASE_URL = "https://cdn.test/assets"


class FakeUpstream:
    """Routes requests by absolute URL and records every request made.

    A route is either an exception to raise or a ``(status, content_type, body)``
    tuple; a fresh response is built per request. Unknown URLs get a 404.
    """

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.requests: list[str] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, request=request)
        if isinstance(route, Exception):
            raise route
        status, content_type, body = route
        headers = {"content-type": content_type} if content_type else {}
        return httpx.Response(status, headers=headers, content=body, request=request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))


def html_route(html: str, status: int = 200) -> tuple:
    return (status, "text/html; charset=utf-8", html.encode("utf-8"))


def image_route(body: bytes, content_type: str = "image/jpeg") -> tuple:
    return (200, content_type, body)


class RecordingStore(MemoryStore):
    """MemoryStore that remembers every insert."""

    def __init__(self):
        super().__init__()
        self.inserts: list[tuple[str, dict]] = []

    def insert(self, table, row):
        self.inserts.append((table, row))
        return super().insert(table, row)


@pytest.fixture
def page_html() -> str:
    return (FIXTURES / "phone_page.html").read_text(encoding="utf-8")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        store_backend="memory",
        asset_backend="local",
        asset_path=tmp_path / "assets",
        asset_base_url=ASSET_BASE_URL,
    )


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def asset_store(tmp_path) -> LocalAssetStore:
    return LocalAssetStore(tmp_path / "assets", ASSET_BASE_URL)


@pytest.fixture
def upstream(page_html) -> FakeUpstream:
    """The sample page plus all three of its images."""
    routes = {PAGE_URL: html_route(page_html)}
    for i, url in enumerate(IMAGE_URLS):
        routes[url] = image_route(f"image-{i}".encode())
    return FakeUpstream(routes)


@pytest.fixture
def submissions(store) -> SubmissionRepository:
    return SubmissionRepository(store)


@pytest.fixture
def catalog(store) -> CatalogRepository:
    return CatalogRepository(store)


@pytest.fixture
def reconciler(submissions, catalog) -> ReviewReconciler:
    return ReviewReconciler(submissions, catalog)
