import io

import pytest
from PIL import Image, ImageFont

from fonts import FONT_FAMILIES, FontRegistry
from models import StyleConfig


def _bundled_face() -> bytes:
    """Raw TrueType bytes of Pillow's built-in face, so tests need no system fonts."""
    data = getattr(ImageFont.load_default(size=20), "font_bytes", None)
    if not data:
        pytest.skip("Pillow was built without FreeType support")
    return data


@pytest.fixture()
def font_dir(tmp_path):
    fonts = tmp_path / "fonts"
    fonts.mkdir()
    data = _bundled_face()
    for file_name in set(FONT_FAMILIES.values()):
        (fonts / file_name).write_bytes(data)
    return str(fonts)


@pytest.fixture()
def registry():
    return FontRegistry()


@pytest.fixture()
def style():
    return StyleConfig(
        font_family="Montserrat",
        backdrop_color="#404040",
        backdrop_opacity=0.9,
        text_color="#FFFFFF",
    )


@pytest.fixture()
def make_png():
    def _make(color=(0x4A, 0x90, 0xA4), size=(1024, 1024)) -> bytes:
        buf = io.BytesIO()
        Image.new("RGB", size, color).save(buf, format="PNG")
        return buf.getvalue()
    return _make
