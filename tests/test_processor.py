"""Tests for avatar output normalization (Pillow)."""

import io

from PIL import Image

from app.avatars.processor import get_image_info, normalize_avatar


def open_png(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    assert img.format == "PNG"
    return img


class TestNormalizeAvatar:
    def test_landscape_jpeg_becomes_square_png(self, make_image):
        img = open_png(normalize_avatar(make_image(size=(1200, 800)), 512))
        assert img.size == (512, 512)
        assert img.mode == "RGBA"

    def test_portrait_png_becomes_square(self, png_bytes):
        img = open_png(normalize_avatar(png_bytes, 512))
        assert img.size == (512, 512)

    def test_transparency_preserved(self, make_image):
        img = open_png(normalize_avatar(make_image(size=(100, 100), fmt="PNG", mode="RGBA"), 64))
        assert img.getpixel((32, 32))[3] == 128

    def test_small_image_upscaled(self, make_image):
        img = open_png(normalize_avatar(make_image(size=(64, 64)), 512))
        assert img.size == (512, 512)

    def test_webp_input(self, make_image):
        img = open_png(normalize_avatar(make_image(size=(400, 300), fmt="WEBP"), 256))
        assert img.size == (256, 256)

    def test_cover_fit_is_centered(self):
        # Red | green | red stripes: the centered crop keeps green in the middle
        src = Image.new("RGB", (300, 100), (255, 0, 0))
        src.paste((0, 255, 0), (100, 0, 200, 100))
        buf = io.BytesIO()
        src.save(buf, format="PNG")

        img = open_png(normalize_avatar(buf.getvalue(), 100))
        assert img.getpixel((50, 50))[:3] == (0, 255, 0)

    def test_undecodable_returns_none(self):
        assert normalize_avatar(b"definitely not an image") is None


class TestGetImageInfo:
    def test_info(self, make_image):
        info = get_image_info(make_image(size=(40, 30)))
        assert info["width"] == 40
        assert info["height"] == 30
        assert info["format"] == "JPEG"

    def test_invalid(self):
        assert get_image_info(b"xx") is None
