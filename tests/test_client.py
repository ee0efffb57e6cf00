import json

import httpx
import pytest

from folio_proxy.client import PortfolioClient, RequestCache
from folio_proxy.client.api import README_UNAVAILABLE
from folio_proxy.errors import FolioError


class FakeServer:
    """Mock transport standing in for the Flask endpoints."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request):
        self.calls.append((request.method, request.url.path))
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, text="not found")
        return handler(request)


def make_client(server, base_path="/site"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(server), base_url="https://example.com")
    return PortfolioClient(http, base_path=base_path, request_cache=RequestCache()), http


def readme_ok(request):
    body = json.loads(request.content)
    return httpx.Response(200, json={"success": True, "content": f"<p>{body['repo_url']}</p>", "source": "cache"})


async def test_readme_is_cached_per_repository():
    server = FakeServer({"/site/readme-cache": readme_ok})
    client, http = make_client(server)

    async with http:
        first = await client.readme("acme/widget")
        again = await client.readme("acme/widget")
        other = await client.readme("acme/gadget")

    assert first == again == "<p>acme/widget</p>"
    assert other == "<p>acme/gadget</p>"
    assert len(server.calls) == 2


async def test_failed_readme_is_not_cached():
    responses = iter(
        [
            httpx.Response(200, json={"success": False, "error": "rate limited"}),
            httpx.Response(200, json={"success": True, "content": "<p>ok</p>"}),
        ]
    )
    server = FakeServer({"/site/readme-cache": lambda request: next(responses)})
    client, http = make_client(server)

    async with http:
        with pytest.raises(FolioError):
            await client.readme("acme/widget")
        assert await client.readme("acme/widget") == "<p>ok</p>"


async def test_work_description_falls_back_to_static_file():
    server = FakeServer(
        {
            "/site/readme-cache": lambda request: httpx.Response(500),
            "/site/data/widget.html": lambda request: httpx.Response(200, text="<p>static</p>"),
        }
    )
    client, http = make_client(server)

    async with http:
        html = await client.work_description("acme/widget", "data/widget.html")

    assert html == "<p>static</p>"


async def test_work_description_without_any_source_shows_notice():
    client, http = make_client(FakeServer({}))

    async with http:
        assert await client.work_description(None, "data/missing.html") == README_UNAVAILABLE


async def test_profile_returns_none_when_unavailable():
    server = FakeServer({"/site/profile-cache": lambda request: httpx.Response(200, text="<html>")})
    client, http = make_client(server)

    async with http:
        assert await client.profile() is None


async def test_profile_unwraps_user_and_repos():
    payload = {
        "success": True,
        "user": {"success": True, "data": {"login": "acme"}},
        "repos": {"success": True, "data": [{"name": "widget"}]},
    }
    server = FakeServer({"/site/profile-cache": lambda request: httpx.Response(200, json=payload)})
    client, http = make_client(server)

    async with http:
        assert await client.profile() == {"user": {"login": "acme"}, "repos": [{"name": "widget"}]}


async def test_gallery_page_uses_base_path_and_page_parameter():
    seen = []

    def listing(request):
        seen.append(request.url.params["page"])
        return httpx.Response(200, json={"images": ["a.jpg"], "pagination": {"currentPage": 2}})

    client, http = make_client(FakeServer({"/site/list-images": listing}))

    async with http:
        result = await client.gallery_page(2)

    assert result["images"] == ["a.jpg"]
    assert seen == ["2"]


async def test_converted_image_url():
    async with httpx.AsyncClient() as http:
        client = PortfolioClient(http, base_path="/site/")

        assert client.converted_image_url("assets/img/a b.jpg") == "/site/convert-image?src=assets%2Fimg%2Fa+b.jpg"
