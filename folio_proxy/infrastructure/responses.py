from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any

from flask import jsonify, send_file

from ..processing.assets import FORMAT_MIMETYPES


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def send_image(path: Path):
    suffix = path.suffix.lstrip(".").lower()
    mimetype = FORMAT_MIMETYPES.get(suffix) or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return send_file(path, mimetype=mimetype, max_age=31536000)


def json_result(payload: Any, status: int = 200):
    return jsonify(payload), status
