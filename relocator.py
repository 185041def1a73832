"""
Image relocation: copy externally hosted images into our own asset store.

Each image is fetched and uploaded independently; a failure drops that image
and nothing else. Successful URLs are returned in their original order.
"""

import asyncio
import logging
import secrets
import time

import httpx

from storage import AssetStore, StoreError

logger = logging.getLogger(__name__)


def asset_filename() -> str:
    """Fresh destination name: millisecond timestamp plus a random suffix.

    The extension is always .jpg; the real content type is stored as metadata.
    """
    return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}.jpg"


class AssetRelocator:
    """Fetches images and re-uploads them to durable storage."""

    def __init__(
        self,
        asset_store: AssetStore,
        client: httpx.AsyncClient,
        timeout: float = 30.0,
        concurrency: int = 4,
        prefix: str = "images",
    ):
        self.asset_store = asset_store
        self.client = client
        self.timeout = timeout
        self.concurrency = max(1, concurrency)
        self.prefix = prefix.strip("/")

    async def relocate(self, image_urls: list[str]) -> list[str]:
        """Relocate every URL; return the durable URLs of those that succeeded."""
        if not image_urls:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(url: str) -> str | None:
            async with semaphore:
                return await self.relocate_one(url)

        results = await asyncio.gather(*[_bounded(url) for url in image_urls])
        relocated = [url for url in results if url]
        logger.info(f"Relocated {len(relocated)}/{len(image_urls)} images")
        return relocated

    async def relocate_one(self, url: str) -> str | None:
        """Fetch one image and upload it. Returns the public URL or None on failure."""
        try:
            resp = await self.client.get(url, timeout=self.timeout, follow_redirects=True)
            resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(f"Image fetch failed for {url}: {exc}")
            return None

        content_type = resp.headers.get("content-type", "").split(";")[0].strip() or "image/jpeg"
        path = f"{self.prefix}/{asset_filename()}" if self.prefix else asset_filename()

        try:
            stored_path = await asyncio.to_thread(self.asset_store.upload, path, resp.content, content_type)
            return await asyncio.to_thread(self.asset_store.public_url, stored_path)
        except StoreError as exc:
            logger.warning(f"Image upload failed for {url}: {exc}")
            return None
