"""Tests for spec page fetching and parsing."""

import httpx
import pytest

from conftest import IMAGE_URLS, PAGE_URL, FakeUpstream, html_route
from parser import FetchError, SpecRow, build_headers, fetch_page, parse_html, scrape_page


class TestParseHtml:
    """Parsing the saved sample page."""

    def test_title(self, page_html):
        assert parse_html(page_html).title == "Acme Phone X"

    def test_images_in_document_order(self, page_html):
        # Main photo first, then thumbnail links; protocol-relative links get https
        assert parse_html(page_html).image_urls == IMAGE_URLS

    def test_rows_carry_their_group(self, page_html):
        rows = parse_html(page_html).rows
        assert SpecRow("Display", "Type", "Super AMOLED, 120Hz, 1000 nits") in rows
        assert SpecRow("Battery", "Type", "Li-Ion 5000 mAh, non-removable") in rows

    def test_row_count_skips_continuation_rows(self, page_html):
        rows = parse_html(page_html).rows
        assert len(rows) == 37
        assert all(row.label for row in rows)

    def test_multiline_value_is_joined(self, page_html):
        rows = {(r.group, r.label): r.value for r in parse_html(page_html).rows}
        assert rows[("Main Camera", "Triple")] == (
            "50 MP, f/1.8, (wide), OIS 8 MP, f/2.2, (ultrawide) 5 MP, f/2.4, (macro)"
        )
        assert rows[("Platform", "CPU")] == "Octa-core (4x2.4 GHz Cortex-A78 & 4x2.0 GHz Cortex-A55)"

    def test_raw_fields_has_bare_and_composite_keys(self, page_html):
        raw = parse_html(page_html).raw_fields
        assert raw["chipset"] == "Exynos 1380 (5 nm)"
        assert raw["platform: chipset"] == "Exynos 1380 (5 nm)"
        assert raw["display: type"].startswith("Super AMOLED")
        assert raw["battery: type"].startswith("Li-Ion")
        # The bare "type" key holds whichever row came last
        assert raw["type"] == raw["battery: type"]

    def test_missing_title_is_not_an_error(self):
        parsed = parse_html("<html><body><p>Not a spec page</p></body></html>")
        assert parsed.title == ""
        assert parsed.rows == []
        assert parsed.image_urls == []

    def test_duplicate_images_are_kept(self):
        html = """
        <div class="specs-photo-main"><img src="https://img.test/a.jpg"></div>
        <div class="article-thumbnails">
          <a href="https://img.test/a.jpg"></a><a href="https://img.test/b.jpg"></a>
        </div>
        """
        assert parse_html(html).image_urls == [
            "https://img.test/a.jpg",
            "https://img.test/a.jpg",
            "https://img.test/b.jpg",
        ]

    def test_relative_image_links_resolve_against_page(self):
        html = '<div class="article-thumbnails"><a href="/pics/one.jpg"></a></div>'
        parsed = parse_html(html, base_url="https://www.gsmarena.com/acme-1.php")
        assert parsed.image_urls == ["https://www.gsmarena.com/pics/one.jpg"]

    def test_rows_without_value_are_dropped(self):
        html = """
        <table>
          <tr><th>Body</th><td class="ttl">Weight</td><td class="nfo"> </td></tr>
          <tr><td class="ttl">Build</td><td class="nfo">Glass</td></tr>
        </table>
        """
        assert parse_html(html).rows == [SpecRow("Body", "Build", "Glass")]

    def test_composite_key(self):
        row = SpecRow("Main  Camera", "Triple", "50 MP")
        assert row.bare_key == "triple"
        assert row.composite_key == "main camera: triple"
        assert SpecRow("", "Chipset", "x").composite_key == "chipset"


class TestFetchPage:
    @pytest.mark.asyncio
    async def test_returns_html(self, page_html):
        upstream = FakeUpstream({PAGE_URL: html_route(page_html)})
        async with upstream.client() as client:
            html = await fetch_page(client, PAGE_URL)
        assert "Acme Phone X" in html

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        upstream = FakeUpstream({PAGE_URL: html_route("gone", status=404)})
        async with upstream.client() as client:
            with pytest.raises(FetchError) as exc_info:
                await fetch_page(client, PAGE_URL)
        assert exc_info.value.status_code == 404
        assert exc_info.value.url == PAGE_URL

    @pytest.mark.asyncio
    async def test_non_html_response(self):
        upstream = FakeUpstream({PAGE_URL: (200, "application/json", b"{}")})
        async with upstream.client() as client:
            with pytest.raises(FetchError, match="not HTML"):
                await fetch_page(client, PAGE_URL)

    @pytest.mark.asyncio
    async def test_timeout(self):
        upstream = FakeUpstream({PAGE_URL: httpx.ReadTimeout("timed out")})
        async with upstream.client() as client:
            with pytest.raises(FetchError, match="Timed out"):
                await fetch_page(client, PAGE_URL)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        upstream = FakeUpstream({PAGE_URL: httpx.ConnectError("connection refused")})
        async with upstream.client() as client:
            with pytest.raises(FetchError) as exc_info:
                await fetch_page(client, PAGE_URL)
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_malformed_url(self):
        url = "https://www.gsmarena.com:abc/acme.php"
        async with FakeUpstream().client() as client:
            with pytest.raises(FetchError) as exc_info:
                await fetch_page(client, url)
        assert exc_info.value.url == url

    @pytest.mark.asyncio
    async def test_scrape_page(self, page_html):
        upstream = FakeUpstream({PAGE_URL: html_route(page_html)})
        async with upstream.client() as client:
            parsed = await scrape_page(client, PAGE_URL)
        assert parsed.title == "Acme Phone X"
        assert parsed.source_url == PAGE_URL

    def test_headers_send_browser_user_agent(self):
        headers = build_headers("Mozilla/5.0 Test")
        assert headers["User-Agent"] == "Mozilla/5.0 Test"
        assert "text/html" in headers["Accept"]
