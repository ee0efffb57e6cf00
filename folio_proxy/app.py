from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, request

from .config import SETTINGS, Settings, configure_logging
from .errors import ConversionError
from .infrastructure.cache import DiskCacheStore
from .infrastructure.network import DualTransportFetcher
from .infrastructure.responses import CORS_HEADERS, json_result, send_image
from .processing.assets import DerivedAssetCache
from .services.gallery import list_images
from .services.profile import ProfileCacheService
from .services.readme import ReadmeCacheService, parse_repo_url

APP_VERSION = "1.0.0"
PROFILE_TYPES = ("user", "repos", "all")

log = logging.getLogger(__name__)


def _param(name: str) -> Optional[str]:
    if request.method == "POST":
        payload = request.get_json(silent=True) or {}
        if payload.get(name) is not None:
            return str(payload[name])
    return request.args.get(name)


def _clear_requested() -> bool:
    return request.args.get("clear_cache") == "true"


def create_app(
    settings: Optional[Settings] = None,
    *,
    readme_service: Optional[ReadmeCacheService] = None,
    profile_service: Optional[ProfileCacheService] = None,
    assets: Optional[DerivedAssetCache] = None,
) -> Flask:
    settings = settings or SETTINGS
    configure_logging(settings)
    app = Flask(__name__)

    if readme_service is None or profile_service is None:
        store = DiskCacheStore(settings.cache_dir, settings.cache_ttl_seconds)
        fetcher = DualTransportFetcher.from_settings(settings)
        readme_service = readme_service or ReadmeCacheService.from_settings(settings, store=store, fetcher=fetcher)
        profile_service = profile_service or ProfileCacheService.from_settings(settings, store=store, fetcher=fetcher)
    assets = assets or DerivedAssetCache.from_settings(settings)
    gallery_dir = Path(settings.asset_root) / settings.dump_dir

    @app.after_request
    def add_cors_headers(response):
        response.headers.update(CORS_HEADERS)
        return response

    @app.route("/readme-cache", methods=["GET", "POST"])
    def readme_cache():
        repo_url = _param("repo_url")
        if not repo_url:
            return json_result({"success": False, "error": "No repository URL provided"}, 400)
        try:
            owner, repo = parse_repo_url(repo_url)
        except ValueError as exc:
            return json_result({"success": False, "error": str(exc)}, 400)

        if _clear_requested():
            readme_service.clear(owner, repo)

        result = readme_service.get_readme(owner, repo)
        status = 502 if result.get("error_type") == "DecodeError" else 200
        return json_result(result, status)

    @app.route("/profile-cache", methods=["GET", "POST"])
    def profile_cache():
        kind = (_param("type") or "all").lower()
        if kind not in PROFILE_TYPES:
            kind = "all"

        if _clear_requested():
            profile_service.clear_all_cache()

        if kind == "user":
            result = profile_service.get_user_data()
        elif kind == "repos":
            result = profile_service.get_repos_data()
        else:
            result = profile_service.get_all_data()
        return json_result(result)

    @app.route("/convert-image")
    def convert_image():
        src = request.args.get("src")
        if not src:
            return ("Missing src parameter.", 400)
        try:
            derived = assets.get_or_create(src, "webp")
        except ConversionError as exc:
            log.warning("Image conversion failed for %s: %s", src, exc)
            return ("Failed to convert image to WebP.", 500)
        return send_image(derived)

    @app.route("/list-images")
    def list_images_view():
        page = request.args.get("page", 1, type=int)
        return jsonify(list_images(gallery_dir, page, settings.images_per_page))

    @app.route("/health")
    def health():
        return jsonify(ok=True, version=APP_VERSION, primary_transport=settings.primary_transport)

    return app


# WSGI entry points: ``folio_proxy.app:app`` or ``folio_proxy.app:application``.
app = create_app()
application = app
