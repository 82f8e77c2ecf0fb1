"""Text layout: choose a font size and wrap the caption into at most two lines."""

from typing import Callable

from PIL import ImageFont

from fonts import FontRegistry, ResolvedFont, fallback_font
from logger import get_logger
from models import LayoutMode, RenderOptions, TextLayout

MAX_LINES = 2
PROBE_TEXT = "Mg"

Measure = Callable[[str, int], float]

log = get_logger("layout")


class TextMeasurer:
    """Measures and hands out faces for one resolved family.

    If the registered face measures zero width (a font that loaded but cannot
    draw), Pillow's bundled face is substituted for that size.
    """

    def __init__(self, registry: FontRegistry, resolved: ResolvedFont):
        self.resolved = resolved
        self._registry = registry
        self._fonts: dict[int, ImageFont.FreeTypeFont | ImageFont.ImageFont] = {}
        self.fell_back = False

    def font(self, size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
        font = self._fonts.get(size)
        if font is None:
            font = self._registry.font(self.resolved, size)
            if font is None or font.getlength(PROBE_TEXT) <= 0:
                log.warning("font_fallback", family=self.resolved.family, size=size)
                font = fallback_font(size)
                self.fell_back = True
            self._fonts[size] = font
        return font

    def embolden(self, size: int) -> int:
        """Outline width used to fake a bold weight, 0 when the face is already bold."""
        return max(1, size // 30) if self.resolved.synthetic_bold else 0

    def width(self, text: str, size: int) -> float:
        return self.font(size).getlength(text) + 2 * self.embolden(size)

    __call__ = width


def wrap_words(text: str, size: int, max_width: float, measure: Measure) -> list[str]:
    """Greedy wrap. A word wider than `max_width` still gets a line of its own."""
    lines: list[str] = []
    current = ""
    for word in text.split():
        trial = f"{current} {word}" if current else word
        if not current or measure(trial, size) <= max_width:
            current = trial
        else:
            lines.append(current)
            current = word
    if current or not lines:
        lines.append(current)
    return lines


def font_sizes(options: RenderOptions) -> list[int]:
    """Descending candidate sizes; the minimum is always tried even off-step."""
    sizes = list(range(options.font_size_max, options.font_size_min - 1, -options.font_size_step))
    if not sizes or sizes[-1] != options.font_size_min:
        sizes.append(options.font_size_min)
    return sizes


def fit_text(text: str, measure: Measure, options: RenderOptions) -> TextLayout:
    """Largest size at which the caption fits, preferring one line over two at each size."""
    max_width = options.area.max_text_width
    max_height = options.area.max_text_height
    # Drawn text is always one visual line per entry: fold newlines and runs of spaces.
    text = " ".join(text.split())
    wrap = options.layout_mode == LayoutMode.WRAP_TO_2

    for size in font_sizes(options):
        if measure(text, size) <= max_width:
            return TextLayout(font_size=size, lines=(text,))
        if wrap:
            lines = wrap_words(text, size, max_width, measure)
            if (
                len(lines) <= MAX_LINES
                and len(lines) * size * options.line_height <= max_height
                and all(measure(line, size) <= max_width for line in lines)
            ):
                return TextLayout(font_size=size, lines=tuple(lines))

    size = options.font_size_min
    if not wrap:
        log.warning("text_overflow", size=size, width=round(measure(text, size), 1),
                    max_width=max_width)
        return TextLayout(font_size=size, lines=(text,), overflow=True)

    lines = wrap_words(text, size, max_width, measure)
    kept = lines[:MAX_LINES]
    dropped = tuple(" ".join(lines[MAX_LINES:]).split())
    overflow = (
        any(measure(line, size) > max_width for line in kept)
        or len(kept) * size * options.line_height > max_height
    )
    return TextLayout(
        font_size=size,
        lines=tuple(kept),
        truncated=bool(dropped),
        dropped_words=dropped,
        overflow=overflow,
    )
