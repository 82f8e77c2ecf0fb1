"""Overlay renderer: resolve font, decode, analyse, lay out, compose, encode.

Every call is independent. The only state shared between calls is the font
registry, which is passed in (or defaults to the process-wide one).
"""

import io
import os
import time
from dataclasses import dataclass
from typing import Optional

from PIL import Image

from background import analyze_background
from compositor import Box, compose, prepare_canvas, to_png_bytes
from errors import DecodeFailed, OverlayError, RenderFailed
from fonts import FontRegistry, get_registry, resolve_font
from layout import TextMeasurer, fit_text
from logger import get_logger
from models import RenderOptions, StyleConfig, TextLayout
from overlay_config import get_preset

MAX_IMAGE_PIXELS = int(os.getenv("MAX_IMAGE_PIXELS", str(50_000_000)))  # 50 MP

# PIL decompression bomb protection
Image.MAX_IMAGE_PIXELS = MAX_IMAGE_PIXELS

log = get_logger("renderer")


@dataclass(frozen=True)
class RenderResult:
    png: bytes
    layout: TextLayout
    text_box: Box
    font_family: str


def decode_image(data: bytes) -> Image.Image:
    if not data:
        raise DecodeFailed("Empty image data")
    try:
        img = Image.open(io.BytesIO(data))
        img.verify()  # check for corruption
        # Re-open after verify (verify consumes the image)
        img = Image.open(io.BytesIO(data))
        img.load()
    except Exception as e:
        raise DecodeFailed(f"Invalid or corrupt image: {e}") from e
    return img


class OverlayRenderer:
    def __init__(
        self,
        options: Optional[RenderOptions] = None,
        registry: Optional[FontRegistry] = None,
        font_dir: Optional[str] = None,
    ):
        self.options = options or get_preset()
        self.registry = registry or get_registry()
        self.font_dir = font_dir

    def render(self, image_bytes: bytes, text: str, style: StyleConfig) -> RenderResult:
        t0 = time.time()
        options = self.options
        resolved = resolve_font(style.font_family, self.registry, self.font_dir)
        background = decode_image(image_bytes)

        try:
            canvas = prepare_canvas(background, options.canvas_size)
            scheme = analyze_background(canvas, style, options)
            measurer = TextMeasurer(self.registry, resolved)
            layout = fit_text(text, measurer, options)
            canvas, text_box = compose(canvas, layout, measurer, scheme, style, options)
            png = to_png_bytes(canvas)
        except OverlayError:
            raise
        except Exception as e:
            raise RenderFailed(f"Rendering failed: {e}") from e

        if layout.truncated:
            log.warning("text_truncated", font_size=layout.font_size,
                        kept=list(layout.lines), dropped_words=len(layout.dropped_words))
        log.info("overlay_rendered", preset=options.name, font=resolved.request(layout.font_size),
                 lines=len(layout.lines), fallback_face=measurer.fell_back,
                 bytes=len(png), elapsed_s=round(time.time() - t0, 3))
        return RenderResult(png=png, layout=layout, text_box=text_box, font_family=resolved.family)


def render_overlay(
    image_bytes: bytes,
    text: str,
    style: StyleConfig,
    options: Optional[RenderOptions] = None,
    registry: Optional[FontRegistry] = None,
) -> bytes:
    """Render `text` onto the image and return PNG bytes."""
    return OverlayRenderer(options, registry).render(image_bytes, text, style).png
