"""Server-side cache services behind the HTTP endpoints."""

from .gallery import list_images
from .profile import ProfileCacheService
from .readme import ReadmeCacheService, decode_content, encode_content, parse_repo_url

__all__ = [
    "list_images",
    "ProfileCacheService",
    "ReadmeCacheService",
    "decode_content",
    "encode_content",
    "parse_repo_url",
]
