"""Font resolution: map family names to bundled files and keep them registered."""

import io
import os
import threading
from dataclasses import dataclass
from typing import Optional

from PIL import ImageFont

from errors import FontFileUnavailable, UnknownFontFamily
from logger import get_logger

FONT_DIR = os.getenv("FONT_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "fonts"))

FONT_FAMILIES = {
    "Inter": "Inter-Bold.ttf",
    "Poppins": "Poppins-Bold.ttf",
    "Montserrat": "Montserrat-Bold.ttf",
    "Oswald": "Oswald-SemiBold.ttf",
    "Product Sans": "ProductSans-Bold.ttf",
}

# Style names FreeType reports, normalised, to CSS numeric weights.
WEIGHTS = {
    "thin": 100,
    "hairline": 100,
    "extralight": 200,
    "ultralight": 200,
    "light": 300,
    "regular": 400,
    "normal": 400,
    "book": 400,
    "medium": 500,
    "semibold": 600,
    "demibold": 600,
    "bold": 700,
    "extrabold": 800,
    "ultrabold": 800,
    "black": 900,
    "heavy": 900,
}

BOLD_WEIGHT = 700

log = get_logger("fonts")


def style_weight(style: Optional[str]) -> Optional[int]:
    """Numeric weight for a style name like "SemiBold" or "Bold Italic", or None."""
    if not style:
        return None
    key = style.lower()
    for suffix in ("italic", "oblique"):
        key = key.replace(suffix, "")
    key = key.replace(" ", "").replace("-", "").replace("_", "")
    return WEIGHTS.get(key or "regular")


@dataclass(frozen=True)
class ResolvedFont:
    family: str
    has_weights: bool
    weight: Optional[int] = None

    @property
    def synthetic_bold(self) -> bool:
        """True when no real bold-class face backs this family."""
        return not self.has_weights or (self.weight or 0) < 600

    def request(self, size: int) -> str:
        weight = self.weight if self.has_weights else "bold"
        return f'{weight} {size}px "{self.family}"'


class FontRegistry:
    """Process-wide set of loaded font faces keyed by family name.

    Registration is idempotent and safe to call from several threads at once:
    registering the same file twice simply replaces identical bytes.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._faces: dict[str, dict[str, bytes]] = {}
        self._cache: dict[tuple[str, int], ImageFont.FreeTypeFont] = {}

    def register(self, path: str, family: Optional[str] = None) -> Optional[str]:
        """Load the file at `path` and file it under `family`, or under the
        font's embedded family name when none is given.

        Returns the name registered under, or None if the file holds no usable face.
        """
        with open(path, "rb") as fh:
            data = fh.read()
        try:
            probe = ImageFont.truetype(io.BytesIO(data), 12)
        except OSError as e:
            log.warning("font_load_failed", path=path, error=str(e))
            return None
        internal_family, style = probe.getname()
        name = family or internal_family
        if not name:
            return None
        with self._lock:
            styles = self._faces.setdefault(name, {})
            if style:
                styles[style] = data
                self._cache = {k: v for k, v in self._cache.items() if k[0] != name}
        return name

    def styles(self, family: str) -> list[str]:
        with self._lock:
            return sorted(self._faces.get(family, {}))

    def families(self) -> list[str]:
        with self._lock:
            return sorted(name for name, styles in self._faces.items() if styles)

    def font(self, resolved: ResolvedFont, size: int) -> Optional[ImageFont.FreeTypeFont]:
        """FreeType face for `resolved` at `size`, or None if nothing is registered."""
        key = (resolved.family, size)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            styles = self._faces.get(resolved.family)
            if not styles:
                return None
            target = resolved.weight or BOLD_WEIGHT
            style = min(
                sorted(styles),
                key=lambda s: abs((style_weight(s) or 400) - target),
            )
            font = ImageFont.truetype(io.BytesIO(styles[style]), size)
            self._cache[key] = font
            return font


_registry = FontRegistry()


def get_registry() -> FontRegistry:
    return _registry


def fallback_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Pillow's bundled face, used when a registered font measures nothing."""
    return ImageFont.load_default(size=size)


def resolve_font(family: str, registry: FontRegistry, font_dir: Optional[str] = None) -> ResolvedFont:
    file_name = FONT_FAMILIES.get(family)
    if file_name is None:
        raise UnknownFontFamily(family)

    path = os.path.join(font_dir or FONT_DIR, file_name)
    if not os.path.isfile(path) or not os.access(path, os.R_OK):
        raise FontFileUnavailable(path)

    effective = family
    try:
        if not registry.styles(family):
            registry.register(path, family)
        if not registry.styles(family):
            # Nothing usable under the requested name: let the file pick its own.
            internal = registry.register(path)
            if internal and registry.styles(internal):
                effective = internal
    except OSError as e:
        raise FontFileUnavailable(path, reason=f"unreadable ({e})") from e

    weights = [w for w in (style_weight(s) for s in registry.styles(effective)) if w]
    weight = min(weights, key=lambda w: abs(w - BOLD_WEIGHT)) if weights else None
    return ResolvedFont(family=effective, has_weights=bool(weights), weight=weight)
