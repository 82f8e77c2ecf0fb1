"""Rendering presets. The preset in force is picked per deployment via OVERLAY_PRESET."""

import os

from models import (
    Alignment,
    Backdrop,
    ColorMode,
    Effect,
    LayoutMode,
    RenderOptions,
    Shadow,
    TextArea,
)

PRESETS: dict[str, RenderOptions] = {
    # Full-width banner near the top, single line only.
    "banner": RenderOptions(
        name="banner",
        area=TextArea(x=51, y=60, width=922, height=280, padding_x=30, padding_y=20),
        color_mode=ColorMode.EXPLICIT,
        layout_mode=LayoutMode.SINGLE_LINE,
        backdrop=Backdrop.AREA,
        effect=Effect.SHADOW,
        alignment=Alignment.CENTERED,
        font_size_max=80,
        font_size_min=60,
        font_size_step=2,
        shadow=Shadow(color=(0, 0, 0, 128), blur=4, offset_x=2, offset_y=2),
    ),
    "headline": RenderOptions(
        name="headline",
        area=TextArea(x=40, y=60, width=944, height=300, padding_x=40, padding_y=20),
        color_mode=ColorMode.BRIGHTNESS,
        layout_mode=LayoutMode.WRAP_TO_2,
        backdrop=Backdrop.NONE,
        effect=Effect.STROKE,
        alignment=Alignment.CENTERED,
        font_size_max=96,
        font_size_min=48,
        font_size_step=4,
        stroke_width=6,
    ),
    "lower_third": RenderOptions(
        name="lower_third",
        area=TextArea(x=60, y=700, width=904, height=264, padding_x=36, padding_y=24),
        color_mode=ColorMode.DOMINANT,
        layout_mode=LayoutMode.WRAP_TO_2,
        backdrop=Backdrop.TEXT,
        effect=Effect.NONE,
        alignment=Alignment.LEFT,
        font_size_max=72,
        font_size_min=40,
        font_size_step=2,
        backdrop_radius=24,
    ),
    "caption": RenderOptions(
        name="caption",
        area=TextArea(x=62, y=704, width=900, height=260, padding_x=32, padding_y=20),
        color_mode=ColorMode.EXPLICIT,
        layout_mode=LayoutMode.WRAP_TO_2,
        backdrop=Backdrop.TEXT,
        effect=Effect.NONE,
        alignment=Alignment.CENTERED,
        font_size_max=72,
        font_size_min=40,
        font_size_step=2,
        backdrop_radius=20,
    ),
}

DEFAULT_PRESET = "caption"
OVERLAY_PRESET = os.getenv("OVERLAY_PRESET", DEFAULT_PRESET)


def get_preset(name: str | None = None) -> RenderOptions:
    name = name or OVERLAY_PRESET
    try:
        return PRESETS[name]
    except KeyError:
        raise ValueError(
            f"Unknown overlay preset {name!r} (choose from {', '.join(sorted(PRESETS))})"
        ) from None
