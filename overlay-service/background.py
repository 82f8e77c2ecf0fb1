"""Background analysis: pick text colours that stay legible over the image."""

import numpy as np
from PIL import Image

from logger import get_logger
from models import (
    BLACK,
    RGB,
    WHITE,
    ColorMode,
    ColorScheme,
    RenderOptions,
    StyleConfig,
    TextArea,
    complement,
    hex_to_rgb,
    with_opacity,
)

SAMPLE_EVERY = 10
BRIGHTNESS_THRESHOLD = 128
QUANT_STEP = 32
WCAG_AA = 4.5
SHADOW_TINT_OPACITY = 0.35

log = get_logger("background")


def sample_region(image: Image.Image, area: TextArea, every: int = SAMPLE_EVERY) -> np.ndarray:
    """Every `every`-th pixel of the text area in row-major order, as an (N, 3) uint8 array."""
    region = np.asarray(image.convert("RGBA").crop(area.box))
    return region.reshape(-1, 4)[::every, :3]


def average_brightness(samples: np.ndarray) -> float:
    if len(samples) == 0:
        return 0.0
    rgb = samples.astype(np.float64)
    return float(np.mean(0.299 * rgb[:, 0] + 0.587 * rgb[:, 1] + 0.114 * rgb[:, 2]))


def dominant_color(samples: np.ndarray) -> RGB:
    """Most frequent colour after quantising each channel to 8 buckets.

    Ties go to the bucket seen first in sampling order.
    """
    if len(samples) == 0:
        return BLACK
    q = (samples.astype(np.int64) // QUANT_STEP) * QUANT_STEP
    keys = (q[:, 0] << 16) | (q[:, 1] << 8) | q[:, 2]
    buckets, first_seen, counts = np.unique(keys, return_index=True, return_counts=True)
    best = int(buckets[np.lexsort((first_seen, -counts))[0]])
    return (best >> 16) & 0xFF, (best >> 8) & 0xFF, best & 0xFF


def _linear(channel: int) -> float:
    c = channel / 255
    return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4


def relative_luminance(color: RGB) -> float:
    r, g, b = (_linear(c) for c in color)
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_ratio(a: RGB, b: RGB) -> float:
    la, lb = relative_luminance(a), relative_luminance(b)
    return (max(la, lb) + 0.05) / (min(la, lb) + 0.05)


def best_contrast(background: RGB) -> RGB:
    """White or black, whichever contrasts more with `background`. Never fails."""
    on_white = contrast_ratio(background, WHITE)
    on_black = contrast_ratio(background, BLACK)
    if max(on_white, on_black) < WCAG_AA:
        log.debug("contrast_below_aa", background=background,
                  white=round(on_white, 2), black=round(on_black, 2))
    return WHITE if on_white >= on_black else BLACK


def _scheme_for(text: RGB) -> ColorScheme:
    other = complement(text)
    return ColorScheme(
        text=text,
        backdrop=other,
        stroke=other,
        shadow=with_opacity(other, SHADOW_TINT_OPACITY),
    )


def analyze_background(image: Image.Image, style: StyleConfig, options: RenderOptions) -> ColorScheme:
    if options.color_mode == ColorMode.EXPLICIT:
        text = hex_to_rgb(style.text_color)
        return ColorScheme(
            text=text,
            backdrop=hex_to_rgb(style.backdrop_color),
            stroke=complement(text),
            shadow=options.shadow.color,
        )

    samples = sample_region(image, options.area)
    if options.color_mode == ColorMode.BRIGHTNESS:
        brightness = average_brightness(samples)
        light = brightness > BRIGHTNESS_THRESHOLD
        log.debug("background_brightness", brightness=round(brightness, 1), light=light)
        scheme = _scheme_for(BLACK if light else WHITE)
        # Shadow darkens a light background and lightens a dark one.
        tint = BLACK if light else WHITE
        return ColorScheme(scheme.text, scheme.backdrop, scheme.stroke,
                           with_opacity(tint, SHADOW_TINT_OPACITY))

    bucket = dominant_color(samples)
    log.debug("background_dominant", color=bucket)
    return _scheme_for(best_contrast(bucket))
