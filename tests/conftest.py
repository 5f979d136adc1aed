# tests/conftest.py
"""Pytest configuration and fixtures"""
import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


def make_image_bytes(size=(200, 100), fmt="JPEG", color=(200, 30, 30), mode="RGB") -> bytes:
    """Encode a solid-colour test image."""
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes():
    """200x100 JPEG"""
    return make_image_bytes()


@pytest.fixture
def png_bytes():
    """200x100 RGBA PNG"""
    return make_image_bytes(fmt="PNG", mode="RGBA", color=(0, 128, 255, 128))


@pytest.fixture
def image_root(tmp_path, jpeg_bytes, png_bytes):
    """
    Local backend root:
        media/photo.jpg
        media/icons/logo.png
        private/secret.jpg
    """
    (tmp_path / "media" / "icons").mkdir(parents=True)
    (tmp_path / "private").mkdir()
    (tmp_path / "media" / "photo.jpg").write_bytes(jpeg_bytes)
    (tmp_path / "media" / "icons" / "logo.png").write_bytes(png_bytes)
    (tmp_path / "private" / "secret.jpg").write_bytes(jpeg_bytes)
    return tmp_path


@pytest.fixture
def image_factory():
    """make_image_bytes(size, fmt, color, mode)"""
    return make_image_bytes
