from __future__ import annotations

import logging
import re
import tempfile
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx

from ...core.logging_utils import log_event
from .constants import DEFAULT_LINK_PREVIEW_TIMEOUT_SECONDS, LINK_PREVIEW_MAX_BYTES
from .media import ffmpeg_thumbnail_data_uri, remove_quietly
from .types import LinkPreview

PREVIEW_IMAGE_MAX_BYTES = 4 * 1024 * 1024
# Some sites only serve OG tags to known link-unfurling crawlers.
PREVIEW_USER_AGENT = "TelegramBot (like TwitterBot)"

_META_TAG_RE = re.compile(r"<meta[^>]+>", re.IGNORECASE)
_PROPERTY_RE = re.compile(r"property=[\"'](og:[^\"']+)[\"']", re.IGNORECASE)
_CONTENT_RE = re.compile(r"content=[\"']([^\"']*)[\"']", re.IGNORECASE)
_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)

Thumbnailer = Callable[[Path], Awaitable[str]]


def extract_og_tag(page: str, prop: str) -> str:
    for tag in _META_TAG_RE.findall(page):
        match = _PROPERTY_RE.search(tag)
        if match is None or match.group(1).lower() != prop.lower():
            continue
        content = _CONTENT_RE.search(tag)
        if content is not None:
            return content.group(1)
    return ""


def extract_title(page: str) -> str:
    title = extract_og_tag(page, "og:title")
    if title:
        return title
    match = _TITLE_RE.search(page)
    return match.group(1).strip() if match else ""


class LinkPreviewFetcher:
    """Builds engine link previews from a page's OpenGraph metadata."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_LINK_PREVIEW_TIMEOUT_SECONDS,
        max_bytes: int = LINK_PREVIEW_MAX_BYTES,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        thumbnailer: Optional[Thumbnailer] = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._max_bytes = max_bytes
        self._logger = logger or logging.getLogger(__name__)
        self._client = httpx.AsyncClient(
            timeout=timeout_seconds,
            follow_redirects=True,
            transport=transport,
            headers={"User-Agent": PREVIEW_USER_AGENT},
        )
        self._thumbnailer = thumbnailer or self._ffmpeg_thumbnail

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "LinkPreviewFetcher":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def fetch(self, uri: str) -> Optional[LinkPreview]:
        """Return a preview for ``uri`` or None when the page has no title."""
        try:
            page = await self._read_page(uri)
        except httpx.HTTPError as exc:
            log_event(
                self._logger, logging.DEBUG, "simplex.send.preview_failed", uri=uri, exc=exc
            )
            return None
        if page is None:
            return None
        title = extract_title(page)
        if not title:
            return None
        image = ""
        image_url = extract_og_tag(page, "og:image")
        if image_url:
            image = await self._fetch_thumbnail(image_url)
        return LinkPreview(
            uri=uri,
            title=title,
            description=extract_og_tag(page, "og:description"),
            image=image,
        )

    async def _read_page(self, uri: str) -> Optional[str]:
        async with self._client.stream(
            "GET", uri, headers={"Accept": "text/html,application/xhtml+xml"}
        ) as response:
            if response.status_code != 200:
                return None
            content_type = response.headers.get("content-type", "")
            if "text/html" not in content_type and "xhtml" not in content_type:
                return None
            raw = await _read_capped(response, self._max_bytes)
            encoding = response.encoding or "utf-8"
        return raw.decode(encoding, errors="replace")

    async def _fetch_thumbnail(self, image_url: str) -> str:
        try:
            async with self._client.stream("GET", image_url) as response:
                if response.status_code != 200:
                    return ""
                data = await _read_capped(response, PREVIEW_IMAGE_MAX_BYTES)
        except httpx.HTTPError as exc:
            log_event(
                self._logger,
                logging.DEBUG,
                "simplex.send.preview_image_failed",
                uri=image_url,
                exc=exc,
            )
            return ""
        if not data:
            return ""
        with tempfile.NamedTemporaryFile(prefix="preview-img-", delete=False) as handle:
            handle.write(data)
            tmp_path = Path(handle.name)
        try:
            return await self._thumbnailer(tmp_path)
        finally:
            remove_quietly(tmp_path)

    async def _ffmpeg_thumbnail(self, path: Path) -> str:
        return await ffmpeg_thumbnail_data_uri(path, logger=self._logger)


async def _read_capped(response: httpx.Response, limit: int) -> bytes:
    chunks: list[bytes] = []
    total = 0
    async for chunk in response.aiter_bytes():
        remaining = limit - total
        if remaining <= 0:
            break
        chunks.append(chunk[:remaining])
        total += min(len(chunk), remaining)
    return b"".join(chunks)
