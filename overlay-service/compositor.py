"""Composition: backdrop, stroke or shadow, then text, onto the stretched background."""

import io
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageFilter

from layout import TextMeasurer
from models import (
    Alignment,
    Backdrop,
    ColorScheme,
    Effect,
    RenderOptions,
    StyleConfig,
    TextLayout,
    with_opacity,
)

Box = tuple[float, float, float, float]


@dataclass(frozen=True)
class TextBlock:
    lines: tuple[str, ...]
    positions: tuple[tuple[float, float], ...]
    anchor: str
    width: float
    height: float


def prepare_canvas(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Stretch the background to exactly `size`; aspect ratio is not kept."""
    return image.convert("RGBA").resize(size, Image.LANCZOS)


def place_lines(layout: TextLayout, measurer: TextMeasurer, options: RenderOptions) -> TextBlock:
    area = options.area
    size = layout.font_size
    line_height = size * options.line_height
    height = len(layout.lines) * line_height
    width = max(measurer.width(line, size) for line in layout.lines)

    cx, cy = area.center
    start_y = cy - height / 2 + line_height / 2
    if options.alignment == Alignment.CENTERED:
        x, anchor = cx, "mm"
    else:
        x, anchor = area.x + area.padding_x, "lm"

    positions = tuple((x, start_y + i * line_height) for i in range(len(layout.lines)))
    return TextBlock(layout.lines, positions, anchor, width, height)


def backdrop_box(block: TextBlock, options: RenderOptions) -> Box:
    area = options.area
    if options.backdrop == Backdrop.AREA:
        return area.box
    width = block.width + 2 * area.padding_x
    height = block.height + 2 * area.padding_y
    cx, cy = area.center
    x0 = cx - width / 2 if options.alignment == Alignment.CENTERED else area.x
    y0 = cy - height / 2
    return round(x0), round(y0), round(x0 + width), round(y0 + height)


def draw_backdrop(canvas: Image.Image, box: Box, color, radius: int = 0) -> Image.Image:
    overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    if radius > 0:
        draw.rounded_rectangle(box, radius=radius, fill=color)
    else:
        draw.rectangle(box, fill=color)
    return Image.alpha_composite(canvas, overlay)


def draw_shadow(canvas: Image.Image, block: TextBlock, measurer: TextMeasurer,
                size: int, options: RenderOptions, color) -> Image.Image:
    """Blurred copy of the text, offset, composited under where the text will go."""
    shadow = options.shadow
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    font = measurer.font(size)
    bold = measurer.embolden(size)
    for line, (x, y) in zip(block.lines, block.positions):
        draw.text((x + shadow.offset_x, y + shadow.offset_y), line, font=font, fill=color,
                  anchor=block.anchor, stroke_width=bold, stroke_fill=color)
    if shadow.blur > 0:
        # Canvas-style blur is expressed as twice the Gaussian sigma.
        layer = layer.filter(ImageFilter.GaussianBlur(radius=shadow.blur / 2))
    return Image.alpha_composite(canvas, layer)


def draw_text(canvas: Image.Image, block: TextBlock, measurer: TextMeasurer, size: int,
              scheme: ColorScheme, options: RenderOptions) -> Box:
    """Draw each line top to bottom, outline first so the fill sits on top.

    Returns the union bounding box of everything drawn.
    """
    draw = ImageDraw.Draw(canvas)
    font = measurer.font(size)
    bold = measurer.embolden(size)
    outline = options.stroke_width if options.effect == Effect.STROKE else 0
    boxes = []
    for line, pos in zip(block.lines, block.positions):
        if outline:
            draw.text(pos, line, font=font, fill=scheme.stroke, anchor=block.anchor,
                      stroke_width=outline + bold, stroke_fill=scheme.stroke)
        draw.text(pos, line, font=font, fill=scheme.text, anchor=block.anchor,
                  stroke_width=bold, stroke_fill=scheme.text)
        if line:
            boxes.append(draw.textbbox(pos, line, font=font, anchor=block.anchor,
                                       stroke_width=outline + bold))
    if not boxes:
        return (0, 0, 0, 0)
    return (
        min(b[0] for b in boxes),
        min(b[1] for b in boxes),
        max(b[2] for b in boxes),
        max(b[3] for b in boxes),
    )


def compose(canvas: Image.Image, layout: TextLayout, measurer: TextMeasurer,
            scheme: ColorScheme, style: StyleConfig, options: RenderOptions) -> tuple[Image.Image, Box]:
    """Layer backdrop, shadow and text onto a canvas from `prepare_canvas`."""
    block = place_lines(layout, measurer, options)

    if options.backdrop != Backdrop.NONE:
        canvas = draw_backdrop(
            canvas,
            backdrop_box(block, options),
            with_opacity(scheme.backdrop, style.backdrop_opacity),
            radius=options.backdrop_radius,
        )
    if options.effect == Effect.SHADOW:
        canvas = draw_shadow(canvas, block, measurer, layout.font_size, options, scheme.shadow)

    text_box = draw_text(canvas, block, measurer, layout.font_size, scheme, options)
    return canvas, text_box


def to_png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    result = buf.getvalue()
    buf.close()
    return result
