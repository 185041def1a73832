"""
HTML parser for device spec-sheet pages.

Extracts the product title, the gallery image URLs, and every row of the
grouped spec tables (group header + label cell + value cell). Parsing never
fails on layout drift: a page whose structure changed simply yields no rows.
"""

import logging
from dataclasses import dataclass, field
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, Tag

from field_map import normalize_label

logger = logging.getLogger(__name__)

TITLE_SELECTOR = ".specs-phone-name-title"
MAIN_PHOTO_SELECTOR = ".specs-photo-main img"
THUMBNAIL_SELECTOR = ".article-thumbnails a"
LABEL_CLASS = "ttl"
VALUE_CLASS = "nfo"

_HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class FetchError(Exception):
    """The spec page could not be retrieved as HTML."""

    def __init__(self, message: str, url: str, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


@dataclass(frozen=True)
class SpecRow:
    """One label/value row of a spec table."""

    group: str  # table header, e.g. "Display"
    label: str  # e.g. "Type"
    value: str

    @property
    def bare_key(self) -> str:
        return normalize_label(self.label)

    @property
    def composite_key(self) -> str:
        if not self.group:
            return self.bare_key
        return normalize_label(f"{self.group}: {self.label}")


@dataclass
class ParsedPage:
    """Everything extracted from a spec-sheet page."""

    title: str = ""
    image_urls: list[str] = field(default_factory=list)
    rows: list[SpecRow] = field(default_factory=list)
    source_url: str = ""

    @property
    def raw_fields(self) -> dict[str, str]:
        """Each row's value under both its bare and its composite key.

        A diagnostic view: ``diagnostics`` reports its size. Normalization
        works from ``rows`` directly, since a bare key here only keeps the
        last row that carried that label.
        """
        fields: dict[str, str] = {}
        for row in self.rows:
            fields[row.bare_key] = row.value
            fields[row.composite_key] = row.value
        return fields


def build_headers(user_agent: str) -> dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
    }


async def fetch_page(client: httpx.AsyncClient, url: str, timeout: float = 10.0) -> str:
    """GET a spec page and return its HTML text.

    Raises FetchError on malformed URLs, network failures, timeouts, non-2xx
    responses and responses that are not HTML.
    """
    try:
        resp = await client.get(url, timeout=timeout, follow_redirects=True)
    except httpx.TimeoutException as exc:
        raise FetchError(f"Timed out fetching {url}", url) from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise FetchError(f"Could not reach {url}: {exc}", url) from exc

    if resp.status_code != 200:
        raise FetchError(f"Source page returned HTTP {resp.status_code}", url, resp.status_code)

    content_type = resp.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type and content_type not in _HTML_CONTENT_TYPES:
        raise FetchError(f"Source page is not HTML ({content_type})", url, resp.status_code)

    return resp.text


async def scrape_page(client: httpx.AsyncClient, url: str, timeout: float = 10.0) -> ParsedPage:
    """Fetch and parse a spec page."""
    html = await fetch_page(client, url, timeout=timeout)
    parsed = parse_html(html, base_url=url)
    logger.info(
        f"Parsed {url}: title={parsed.title!r}, {len(parsed.rows)} spec rows, "
        f"{len(parsed.image_urls)} images"
    )
    return parsed


def parse_html(html: str, base_url: str = "") -> ParsedPage:
    """Parse a spec-sheet page into title, image URLs and spec rows."""
    soup = BeautifulSoup(html, "lxml")
    return ParsedPage(
        title=_extract_title(soup),
        image_urls=_extract_image_urls(soup, base_url),
        rows=_extract_spec_rows(soup),
        source_url=base_url,
    )


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------


def _extract_title(soup: BeautifulSoup) -> str:
    tag = soup.select_one(TITLE_SELECTOR)
    if not tag:
        return ""
    return " ".join(tag.get_text(" ", strip=True).split())


# ---------------------------------------------------------------------------
# Image URL extraction
# ---------------------------------------------------------------------------


def _extract_image_urls(soup: BeautifulSoup, base_url: str) -> list[str]:
    """Collect the main photo and thumbnail gallery links, in document order.

    Duplicates are kept; the relocator handles each occurrence independently.
    """
    urls: list[str] = []
    for img in soup.select(MAIN_PHOTO_SELECTOR):
        src = img.get("src")
        if src and isinstance(src, str):
            urls.append(_normalize_url(src, base_url))
    for link in soup.select(THUMBNAIL_SELECTOR):
        href = link.get("href")
        if href and isinstance(href, str):
            urls.append(_normalize_url(href, base_url))
    return [u for u in urls if u]


def _normalize_url(url: str, base_url: str = "") -> str:
    """Normalize a URL: add https: to protocol-relative URLs, resolve relative ones."""
    url = url.strip()
    if url.startswith("//"):
        return "https:" + url
    if base_url and not url.startswith(("http://", "https://")):
        return urljoin(base_url, url)
    return url


# ---------------------------------------------------------------------------
# Spec tables
# ---------------------------------------------------------------------------


def _cell_text(cell: Tag) -> str:
    return " ".join(cell.stripped_strings)


def _extract_spec_rows(soup: BeautifulSoup) -> list[SpecRow]:
    """Read every label/value row of every table, tagged with the table's header."""
    rows: list[SpecRow] = []
    for table in soup.find_all("table"):
        header = table.find("th")
        group = _cell_text(header) if header else ""
        for tr in table.find_all("tr"):
            label_cell = tr.find(class_=LABEL_CLASS)
            value_cell = tr.find(class_=VALUE_CLASS)
            if not label_cell or not value_cell:
                continue
            label = _cell_text(label_cell)
            value = _cell_text(value_cell)
            if label and value:
                rows.append(SpecRow(group=group, label=label, value=value))
    return rows
