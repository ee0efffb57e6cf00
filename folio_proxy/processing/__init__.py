"""Image re-encoding and the derived-asset cache."""

from .assets import FORMAT_MIMETYPES, DerivedAsset, DerivedAssetCache, convert_image

__all__ = ["FORMAT_MIMETYPES", "DerivedAsset", "DerivedAssetCache", "convert_image"]
