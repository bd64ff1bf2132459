from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from simplex_bridge.integrations.simplex.linkpreview import (
    LinkPreviewFetcher,
    extract_og_tag,
    extract_title,
)

PAGE = """
<html><head>
<title>Fallback title</title>
<meta property="og:title" content="OG Title">
<meta content='Short description' property='og:description'>
<meta property="og:image" content="https://cdn.example/img.png">
</head><body></body></html>
"""


def test_extract_tags_and_title_fallback() -> None:
    assert extract_og_tag(PAGE, "og:title") == "OG Title"
    assert extract_og_tag(PAGE, "OG:DESCRIPTION") == "Short description"
    assert extract_og_tag(PAGE, "og:video") == ""
    assert extract_title(PAGE) == "OG Title"
    assert extract_title("<title> Only title </title>") == "Only title"
    assert extract_title("<p>nothing</p>") == ""


def _fetcher(routes: dict[str, httpx.Response], seen: list[str], **kwargs):
    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return routes.get(str(request.url), httpx.Response(404))

    async def _thumbnail(path: Path) -> str:
        return "data:image/jpg;base64," + path.read_bytes().decode()

    return LinkPreviewFetcher(
        transport=httpx.MockTransport(_handler), thumbnailer=_thumbnail, **kwargs
    )


@pytest.mark.anyio
async def test_fetch_builds_preview_with_thumbnail() -> None:
    seen: list[str] = []
    routes = {
        "https://example.com/post": httpx.Response(200, html=PAGE),
        "https://cdn.example/img.png": httpx.Response(200, content=b"aW1n"),
    }
    async with _fetcher(routes, seen) as fetcher:
        preview = await fetcher.fetch("https://example.com/post")

    assert preview is not None
    assert preview.to_dict() == {
        "uri": "https://example.com/post",
        "title": "OG Title",
        "description": "Short description",
        "image": "data:image/jpg;base64,aW1n",
    }
    assert seen == ["https://example.com/post", "https://cdn.example/img.png"]


@pytest.mark.anyio
async def test_fetch_keeps_preview_when_image_fails() -> None:
    routes = {"https://example.com/post": httpx.Response(200, html=PAGE)}
    async with _fetcher(routes, []) as fetcher:
        preview = await fetcher.fetch("https://example.com/post")
    assert preview is not None
    assert preview.image == ""


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404),
        httpx.Response(200, json={"title": "not html"}),
        httpx.Response(200, html="<p>no title</p>"),
    ],
)
async def test_fetch_returns_none_without_usable_page(response: httpx.Response) -> None:
    routes = {"https://example.com/x": response}
    async with _fetcher(routes, []) as fetcher:
        assert await fetcher.fetch("https://example.com/x") is None


@pytest.mark.anyio
async def test_fetch_swallows_transport_errors() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with LinkPreviewFetcher(transport=httpx.MockTransport(_handler)) as fetcher:
        assert await fetcher.fetch("https://down.example/") is None


@pytest.mark.anyio
async def test_fetch_reads_at_most_max_bytes() -> None:
    page = (
        "<title>Cut</title>"
        + "x" * 10_000
        + '<meta property="og:description" content="late">'
    )
    routes = {"https://example.com/big": httpx.Response(200, html=page)}
    async with _fetcher(routes, [], max_bytes=100) as fetcher:
        preview = await fetcher.fetch("https://example.com/big")
    assert preview is not None
    assert preview.title == "Cut"
    assert preview.description == ""
