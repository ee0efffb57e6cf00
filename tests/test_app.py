import dataclasses

import pytest
from PIL import Image

from conftest import FakeTransport, failing, respond
from folio_proxy.app import create_app
from folio_proxy.config import SETTINGS
from folio_proxy.infrastructure.network import DualTransportFetcher
from folio_proxy.processing.assets import DerivedAssetCache
from folio_proxy.rendering import ContentRenderFallbackChain, LocalRenderer
from folio_proxy.services.profile import ProfileCacheService
from folio_proxy.services.readme import ReadmeCacheService, encode_content


API = "https://api.example.com"


def github(request):
    if request.url.endswith("/readme"):
        if "/missing/" in request.url:
            return respond(404, {"message": "Not Found"})(request)
        if "/garbled/" in request.url:
            return respond(200, {"content": "%%%"})(request)
        return respond(200, {"content": encode_content("# Widget")})(request)
    if request.url.endswith("/repos"):
        return respond(200, [{"name": "widget"}])(request)
    return respond(200, {"login": "acme"})(request)


@pytest.fixture()
def site(tmp_path):
    root = tmp_path / "site"
    (root / "assets" / "img" / "dump").mkdir(parents=True)
    Image.new("RGB", (4, 4), (10, 20, 30)).save(root / "assets" / "img" / "photo.jpg", format="JPEG")
    (root / "assets" / "img" / "broken.png").write_bytes(b"nope")
    for idx in range(3):
        (root / "assets" / "img" / "dump" / f"{idx}.jpg").write_bytes(b"x")
    return root


@pytest.fixture()
def transport():
    return FakeTransport(github)


@pytest.fixture()
def client(site, store, clock, transport):
    settings = dataclasses.replace(
        SETTINGS,
        asset_root=str(site),
        cache_dir=str(store.root),
        derived_dir="assets/img/cache",
        dump_dir="assets/img/dump",
        images_per_page=2,
    )
    fetcher = DualTransportFetcher(transport, FakeTransport(failing))
    renderer = ContentRenderFallbackChain([LocalRenderer()])
    readme = ReadmeCacheService(store, fetcher, renderer, api_base=API, ttl_seconds=600, clock=clock)
    profile = ProfileCacheService(store, fetcher, username="acme", api_base=API, ttl_seconds=600, clock=clock)
    app = create_app(
        settings,
        readme_service=readme,
        profile_service=profile,
        assets=DerivedAssetCache.from_settings(settings),
    )
    app.config.update(TESTING=True)
    return app.test_client()


def test_readme_requires_repo_url(client):
    response = client.post("/readme-cache", json={})

    assert response.status_code == 400
    assert response.get_json() == {"success": False, "error": "No repository URL provided"}


def test_readme_rejects_invalid_repo_url(client):
    response = client.get("/readme-cache", query_string={"repo_url": "https://github.com/acme"})

    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_readme_success_then_cache(client, transport):
    first = client.post("/readme-cache", json={"repo_url": "https://github.com/acme/widget"})
    second = client.get("/readme-cache", query_string={"repo_url": "acme/widget"})

    assert first.status_code == 200
    assert first.get_json()["content"] == "<h1>Widget</h1>"
    assert first.get_json()["source"] == "github_api"
    assert second.get_json()["source"] == "cache"
    assert first.headers["Access-Control-Allow-Origin"] == "*"
    assert len(transport.requests) == 1


def test_readme_clear_cache_refetches(client, transport):
    client.post("/readme-cache", json={"repo_url": "acme/widget"})
    response = client.post("/readme-cache?clear_cache=true", json={"repo_url": "acme/widget"})

    assert response.get_json()["source"] == "github_api"
    assert len(transport.requests) == 2


def test_readme_upstream_failure_is_structured(client):
    response = client.post("/readme-cache", json={"repo_url": "acme/missing"})

    assert response.status_code == 200
    assert response.get_json()["success"] is False
    assert response.get_json()["source"] == "error"


def test_readme_decode_failure_is_bad_gateway(client):
    response = client.post("/readme-cache", json={"repo_url": "acme/garbled"})

    assert response.status_code == 502
    assert response.get_json()["error_type"] == "DecodeError"


def test_profile_all(client):
    payload = client.get("/profile-cache").get_json()

    assert payload["success"] is True
    assert payload["user"]["data"] == {"login": "acme"}
    assert payload["repos"]["data"] == [{"name": "widget"}]


def test_profile_single_resource_and_clear(client, transport):
    client.post("/profile-cache", json={"type": "user"})
    cached = client.post("/profile-cache", json={"type": "user"}).get_json()
    cleared = client.post("/profile-cache?clear_cache=true", json={"type": "user"}).get_json()

    assert cached["source"] == "cache"
    assert cleared["source"] == "github_api"
    assert "repos" not in cached
    assert len(transport.requests) == 2


def test_convert_image_serves_webp(client, site):
    response = client.get("/convert-image", query_string={"src": "assets/img/photo.jpg"})

    assert response.status_code == 200
    assert response.mimetype == "image/webp"
    assert (site / "assets" / "img" / "cache" / "assets" / "img" / "photo.webp").is_file()
    response.close()


def test_convert_image_requires_src(client):
    response = client.get("/convert-image")

    assert response.status_code == 400
    assert response.get_data(as_text=True) == "Missing src parameter."


def test_convert_image_failure(client):
    response = client.get("/convert-image", query_string={"src": "assets/img/broken.png"})

    assert response.status_code == 500
    assert response.get_data(as_text=True) == "Failed to convert image to WebP."


def test_list_images_paginates(client):
    payload = client.get("/list-images", query_string={"page": 2}).get_json()

    assert payload["images"] == ["2.jpg"]
    assert payload["pagination"] == {"currentPage": 2, "totalPages": 2, "imagesPerPage": 2, "totalImages": 3}


def test_list_images_ignores_non_numeric_page(client):
    assert client.get("/list-images?page=abc").get_json()["pagination"]["currentPage"] == 1


def test_options_preflight_has_cors_headers(client):
    response = client.open("/readme-cache", method="OPTIONS")

    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"


def test_health(client):
    assert client.get("/health").get_json()["ok"] is True
