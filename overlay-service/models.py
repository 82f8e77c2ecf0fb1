"""Value types shared by the overlay pipeline."""

import re
from dataclasses import dataclass, field
from enum import Enum

RGB = tuple[int, int, int]
RGBA = tuple[int, int, int, int]

_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)

BLACK: RGB = (0, 0, 0)
WHITE: RGB = (255, 255, 255)


def hex_to_rgb(value: str) -> RGB:
    match = _HEX_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid hex color: {value}")
    return tuple(int(part, 16) for part in match.groups())


def with_opacity(color: RGB, opacity: float) -> RGBA:
    """Attach an alpha channel; opacity is clamped to [0, 1]."""
    opacity = min(max(opacity, 0.0), 1.0)
    return (*color, int(round(opacity * 255)))


def complement(color: RGB) -> RGB:
    return tuple(255 - c for c in color)


class ColorMode(str, Enum):
    BRIGHTNESS = "brightness"
    DOMINANT = "dominant"
    EXPLICIT = "explicit"


class LayoutMode(str, Enum):
    SINGLE_LINE = "single_line"
    WRAP_TO_2 = "wrap_to_2"


class Backdrop(str, Enum):
    NONE = "none"
    TEXT = "text"
    AREA = "area"


class Effect(str, Enum):
    NONE = "none"
    STROKE = "stroke"
    SHADOW = "shadow"


class Alignment(str, Enum):
    CENTERED = "centered"
    LEFT = "left"


@dataclass(frozen=True)
class StyleConfig:
    font_family: str
    backdrop_color: str
    backdrop_opacity: float
    text_color: str


@dataclass(frozen=True)
class TextArea:
    x: int
    y: int
    width: int
    height: int
    padding_x: int
    padding_y: int

    @property
    def max_text_width(self) -> int:
        return self.width - 2 * self.padding_x

    @property
    def max_text_height(self) -> int:
        return self.height - 2 * self.padding_y

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    @property
    def box(self) -> tuple[int, int, int, int]:
        return self.x, self.y, self.x + self.width, self.y + self.height


@dataclass(frozen=True)
class Shadow:
    color: RGBA = (0, 0, 0, 128)
    blur: float = 4
    offset_x: int = 2
    offset_y: int = 2


@dataclass(frozen=True)
class RenderOptions:
    """One deployed rendering variant."""

    name: str
    area: TextArea
    color_mode: ColorMode = ColorMode.EXPLICIT
    layout_mode: LayoutMode = LayoutMode.WRAP_TO_2
    backdrop: Backdrop = Backdrop.TEXT
    effect: Effect = Effect.NONE
    alignment: Alignment = Alignment.CENTERED
    canvas_size: tuple[int, int] = (1024, 1024)
    font_size_max: int = 72
    font_size_min: int = 40
    font_size_step: int = 2
    line_height: float = 1.2
    backdrop_radius: int = 0
    stroke_width: int = 6
    shadow: Shadow = field(default_factory=Shadow)


@dataclass(frozen=True)
class ColorScheme:
    text: RGB
    backdrop: RGB
    stroke: RGB
    shadow: RGBA


@dataclass(frozen=True)
class TextLayout:
    font_size: int
    lines: tuple[str, ...]
    truncated: bool = False
    dropped_words: tuple[str, ...] = ()
    overflow: bool = False
