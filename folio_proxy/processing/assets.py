from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Union

from PIL import Image, UnidentifiedImageError

from ..config import SETTINGS, Settings
from ..errors import ConversionError


log = logging.getLogger(__name__)

FORMAT_MIMETYPES = {
    "webp": "image/webp",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
}
_PIL_FORMATS = {"webp": "WEBP", "png": "PNG", "jpg": "JPEG", "jpeg": "JPEG"}
SOURCE_FORMATS = frozenset({"JPEG", "PNG", "GIF"})

Converter = Callable[[Path, Path, str, int], None]


@dataclass(frozen=True)
class DerivedAsset:
    source_path: Path
    derived_path: Path
    format: str


def _normalize_format(target_format: str) -> str:
    fmt = target_format.lower().lstrip(".")
    if fmt not in _PIL_FORMATS:
        raise ConversionError(f"Unsupported target format: {target_format}")
    return fmt


def _prepare(img: Image.Image, fmt: str) -> Image.Image:
    has_alpha = img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info)
    if _PIL_FORMATS[fmt] == "JPEG" or not has_alpha:
        return img.convert("RGB")
    return img.convert("RGBA")


def convert_image(source: Path, destination: Path, target_format: str, quality: int) -> None:
    """Decode ``source`` and write it to ``destination`` in ``target_format``."""

    fmt = _normalize_format(target_format)
    try:
        with Image.open(source) as img:
            if img.format not in SOURCE_FORMATS:
                raise ConversionError(f"Unsupported source format {img.format} for {source}")
            img.load()
            _prepare(img, fmt).save(destination, format=_PIL_FORMATS[fmt], quality=quality)
    except ConversionError:
        raise
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as exc:
        raise ConversionError(f"Failed to convert {source}: {exc}") from exc


class DerivedAssetCache:
    """Generate-once cache of re-encoded images.

    Derived files live at ``<cache_dir>/<source path without extension>.<format>``
    and are never refreshed or evicted once written.
    """

    def __init__(
        self,
        asset_root: Union[str, Path],
        cache_dir: Union[str, Path],
        *,
        quality: int = 80,
        converter: Converter = convert_image,
    ) -> None:
        self.asset_root = Path(asset_root).resolve()
        cache_path = Path(cache_dir)
        self.cache_dir = cache_path if cache_path.is_absolute() else self.asset_root / cache_path
        self.quality = quality
        self._converter = converter

    @classmethod
    def from_settings(cls, settings: Settings = SETTINGS) -> "DerivedAssetCache":
        return cls(settings.asset_root, settings.derived_dir, quality=settings.webp_quality)

    def _relative_source(self, source_path: str) -> PurePosixPath:
        relative = PurePosixPath(source_path.replace("\\", "/").lstrip("/"))
        if not relative.name or ".." in relative.parts:
            raise ConversionError(f"Invalid source path: {source_path}")
        return relative

    def derived_path(self, source_path: str, target_format: str = "webp") -> Path:
        fmt = _normalize_format(target_format)
        relative = self._relative_source(source_path)
        return self.cache_dir / Path(*relative.parent.parts) / f"{relative.stem}.{fmt}"

    def resolve_source(self, source_path: str) -> Path:
        source = (self.asset_root / Path(*self._relative_source(source_path).parts)).resolve()
        if self.asset_root not in source.parents:
            raise ConversionError(f"Source path escapes the asset root: {source_path}")
        if not source.is_file():
            raise ConversionError(f"Source image not found: {source_path}")
        return source

    def describe(self, source_path: str, target_format: str = "webp") -> DerivedAsset:
        return DerivedAsset(
            source_path=self.asset_root / Path(*self._relative_source(source_path).parts),
            derived_path=self.derived_path(source_path, target_format),
            format=_normalize_format(target_format),
        )

    def get_or_create(self, source_path: str, target_format: str = "webp") -> Path:
        fmt = _normalize_format(target_format)
        derived = self.derived_path(source_path, fmt)
        if derived.is_file():
            return derived

        source = self.resolve_source(source_path)
        try:
            derived.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=derived.name + ".", suffix=".part", dir=str(derived.parent))
            os.close(fd)
        except OSError as exc:
            raise ConversionError(f"Cannot write derived asset {derived}: {exc}") from exc

        tmp_path = Path(tmp_name)
        try:
            self._converter(source, tmp_path, fmt, self.quality)
            os.replace(tmp_path, derived)
        except OSError as exc:
            raise ConversionError(f"Cannot write derived asset {derived}: {exc}") from exc
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        log.info("Derived %s from %s", derived, source)
        return derived
