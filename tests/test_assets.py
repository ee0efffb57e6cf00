import pytest
from PIL import Image

from folio_proxy.errors import ConversionError
from folio_proxy.processing.assets import DerivedAssetCache, convert_image


@pytest.fixture()
def asset_root(tmp_path):
    root = tmp_path / "site"
    (root / "assets" / "img").mkdir(parents=True)
    Image.new("RGB", (8, 6), (200, 30, 30)).save(root / "assets" / "img" / "photo.jpg", format="JPEG")
    Image.new("RGBA", (4, 4), (0, 0, 255, 128)).save(root / "assets" / "img" / "badge.png", format="PNG")
    Image.new("RGB", (4, 4)).save(root / "assets" / "img" / "legacy.bmp", format="BMP")
    (root / "assets" / "img" / "broken.jpg").write_bytes(b"definitely not a jpeg")
    return root


class CountingConverter:
    def __init__(self):
        self.calls = 0

    def __call__(self, source, destination, target_format, quality):
        self.calls += 1
        convert_image(source, destination, target_format, quality)


def leftovers(directory):
    return [p for p in directory.rglob("*.part")] if directory.exists() else []


def test_conversion_happens_once_and_is_reused(asset_root):
    converter = CountingConverter()
    assets = DerivedAssetCache(asset_root, "cache/webp", converter=converter)

    first = assets.get_or_create("assets/img/photo.jpg")
    second = assets.get_or_create("assets/img/photo.jpg")

    assert first == second == asset_root / "cache" / "webp" / "assets" / "img" / "photo.webp"
    assert converter.calls == 1
    with Image.open(first) as img:
        assert img.format == "WEBP"
        assert img.size == (8, 6)


def test_leading_slash_maps_to_the_same_derived_file(asset_root):
    assets = DerivedAssetCache(asset_root, "cache/webp")

    assert assets.derived_path("/assets/img/photo.jpg") == assets.derived_path("assets/img/photo.jpg")


def test_alpha_channel_survives_webp_conversion(asset_root):
    assets = DerivedAssetCache(asset_root, "cache/webp")

    with Image.open(assets.get_or_create("assets/img/badge.png")) as img:
        assert img.mode == "RGBA"


def test_corrupt_source_raises_and_leaves_nothing_behind(asset_root):
    assets = DerivedAssetCache(asset_root, "cache/webp")

    with pytest.raises(ConversionError):
        assets.get_or_create("assets/img/broken.jpg")

    assert not assets.derived_path("assets/img/broken.jpg").exists()
    assert leftovers(assets.cache_dir) == []


def test_unsupported_source_format(asset_root):
    assets = DerivedAssetCache(asset_root, "cache/webp")

    with pytest.raises(ConversionError):
        assets.get_or_create("assets/img/legacy.bmp")


@pytest.mark.parametrize("src", ["../secret.jpg", "assets/../../secret.jpg", "assets/img/missing.jpg", "assets/img/"])
def test_invalid_sources_are_rejected(asset_root, src):
    assets = DerivedAssetCache(asset_root, "cache/webp")

    with pytest.raises(ConversionError):
        assets.get_or_create(src)


def test_unsupported_target_format(asset_root):
    assets = DerivedAssetCache(asset_root, "cache/webp")

    with pytest.raises(ConversionError):
        assets.get_or_create("assets/img/photo.jpg", "tiff")


def test_failed_write_cleans_up_temp_file(asset_root):
    def exploding(source, destination, target_format, quality):
        destination.write_bytes(b"partial")
        raise OSError("disk full")

    assets = DerivedAssetCache(asset_root, "cache/webp", converter=exploding)

    with pytest.raises(ConversionError):
        assets.get_or_create("assets/img/photo.jpg")

    assert leftovers(assets.cache_dir) == []
    assert not assets.derived_path("assets/img/photo.jpg").exists()
