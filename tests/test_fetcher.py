"""Tests for the liveness probe and metadata fetch against a local server."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from bookmark_enricher.fetching.fetcher import MetadataFetcher
from bookmark_enricher.storage.models import FetchStatus

HTML = """
<html><head>
<meta name="description" content="Local page">
<meta name="keywords" content="a, b, c, d, e, f, g, h, i, j, k, l">
</head><body><p>Paragraph text that is long enough to be a snippet.</p></body></html>
"""


async def page(request):
    return web.Response(text=HTML, content_type="text/html")


async def slow_head(request):
    if request.method == "HEAD":
        await asyncio.sleep(0.5)
    return web.Response(text="ok")


async def head_not_allowed(request):
    if request.method == "HEAD":
        return web.Response(status=405)
    return web.Response(text="ok")


async def head_unavailable(request):
    if request.method == "HEAD":
        return web.Response(status=503)
    return web.Response(text="ok")


async def large_page(request):
    filler = "<div>" + "x" * 1000 + "</div>\n"
    body = (
        "<html><head><title>T</title></head><body>"
        + filler * 220
        + '<script type="application/ld+json">{"@type": "BlogPosting"}</script>'
        + "<p>Closing paragraph that sits at the very end of the page.</p>"
        + "</body></html>"
    ).encode()

    response = web.StreamResponse(headers={"Content-Type": "text/html; charset=utf-8"})
    await response.prepare(request)
    for start in range(0, len(body), 16 * 1024):
        await response.write(body[start : start + 16 * 1024])
        await asyncio.sleep(0)
    await response.write_eof()
    return response


async def gone(request):
    return web.Response(status=410)


async def image(request):
    return web.Response(body=b"\x89PNG", content_type="image/png")


@pytest_asyncio.fixture
async def server():
    app = web.Application()
    app.router.add_get("/page", page)
    app.router.add_get("/slow-head", slow_head)
    app.router.add_get("/no-head", head_not_allowed)
    app.router.add_get("/unavailable-head", head_unavailable)
    app.router.add_get("/large", large_page)
    app.router.add_get("/gone", gone)
    app.router.add_get("/image.png", image)
    async with TestServer(app) as srv:
        yield srv


@pytest.fixture
def fetcher():
    return MetadataFetcher(probe_timeout_seconds=0.2, fetch_timeout_seconds=1)


@pytest.mark.asyncio
async def test_head_success_is_alive(server, fetcher):
    assert await fetcher.check_alive(str(server.make_url("/page"))) is True


@pytest.mark.asyncio
async def test_head_404_is_dead(server, fetcher):
    assert await fetcher.check_alive(str(server.make_url("/missing"))) is False
    assert await fetcher.check_alive(str(server.make_url("/gone"))) is False


@pytest.mark.asyncio
async def test_head_timeout_then_completed_get_is_unknown(server, fetcher):
    assert await fetcher.check_alive(str(server.make_url("/slow-head"))) is None


@pytest.mark.asyncio
async def test_rejected_head_falls_back_to_get(server, fetcher):
    assert await fetcher.check_alive(str(server.make_url("/no-head"))) is None


@pytest.mark.asyncio
async def test_server_error_on_head_is_not_dead(server, fetcher):
    assert await fetcher.check_alive(str(server.make_url("/unavailable-head"))) is None


@pytest.mark.asyncio
async def test_unreachable_host_is_dead(fetcher):
    url = f"http://127.0.0.1:{unused_port()}/a"
    assert await fetcher.check_alive(url) is False


@pytest.mark.asyncio
async def test_timed_out_get_is_unknown_not_dead(fetcher, monkeypatch):
    async def timeout(url):
        raise asyncio.TimeoutError

    monkeypatch.setattr(fetcher, "_probe_head", timeout)
    monkeypatch.setattr(fetcher, "_probe_get", timeout)

    assert await fetcher.check_alive("https://example.invalid/") is None


@pytest.mark.asyncio
async def test_fetch_extracts_metadata(server, fetcher):
    url = str(server.make_url("/page"))
    result = await fetcher.fetch(url)

    assert result.status == FetchStatus.SUCCESS
    assert result.metadata.description == "Local page"
    assert result.metadata.keywords == list("abcdefghij")
    assert result.metadata.favicon_url == str(server.make_url("/favicon.ico"))
    assert result.metadata.snippet == "Paragraph text that is long enough to be a snippet."
    assert result.metadata.raw.meta["description"] == "Local page"


@pytest.mark.asyncio
async def test_fetch_reads_the_whole_streamed_body(server, fetcher):
    result = await fetcher.fetch(str(server.make_url("/large")))

    assert result.status == FetchStatus.SUCCESS
    assert result.metadata.raw.json_ld == [{"@type": "BlogPosting"}]
    assert result.metadata.snippet == "Closing paragraph that sits at the very end of the page."


@pytest.mark.asyncio
async def test_fetch_truncates_to_max_content_length(server):
    fetcher = MetadataFetcher(fetch_timeout_seconds=1, max_content_length=50_000)
    result = await fetcher.fetch(str(server.make_url("/large")))

    assert result.status == FetchStatus.SUCCESS
    assert result.metadata.raw.json_ld == []
    assert result.metadata.snippet is None


@pytest.mark.asyncio
async def test_fetch_errors_yield_empty_metadata(server, fetcher):
    missing = await fetcher.fetch(str(server.make_url("/missing")))
    binary = await fetcher.fetch(str(server.make_url("/image.png")))
    unreachable = await fetcher.fetch_metadata(f"http://127.0.0.1:{unused_port()}/")

    assert missing.status == FetchStatus.FAILED
    assert missing.metadata.is_empty
    assert binary.status == FetchStatus.SKIPPED
    assert binary.metadata.is_empty
    assert unreachable.is_empty


def test_description_priority():
    fetcher = MetadataFetcher()
    html = (
        '<meta name="twitter:description" content="tw">'
        '<meta name="description" content="meta">'
    )
    assert fetcher.extract_metadata(html, "https://x.test/").description == "meta"

    html += '<meta property="og:description" content="og">'
    assert fetcher.extract_metadata(html, "https://x.test/").description == "og"


def test_favicon_resolves_relative_icon_link():
    metadata = MetadataFetcher().extract_metadata(
        '<link rel="shortcut icon" href="img/fav.ico">', "https://x.test/docs/page"
    )
    assert metadata.favicon_url == "https://x.test/docs/img/fav.ico"
