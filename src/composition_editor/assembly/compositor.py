from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable

from PIL import Image, ImageDraw

from composition_editor.config import settings
from composition_editor.geometry import Rect
from composition_editor.raster import RasterSurface


@dataclass(frozen=True)
class FrameInputs:
    base: RasterSurface
    overlay: RasterSurface | None
    overlay_visible: bool
    selection: Rect | None = None
    floating: RasterSurface | None = None
    marquee: Rect | None = None


class SurfaceCompositor:
    """
    Builds the visible frame at native resolution:
    - base image (always)
    - edge overlay (only while the overlay is visible)
    - floating layer preview with a dashed border at the selection rect
    - live marquee outline while a selection is being dragged out

    The last frame is cached and only rebuilt when one of the inputs changed.
    """

    def __init__(self) -> None:
        self._key: Hashable | None = None
        self._frame: Image.Image | None = None
        self.render_count = 0

    def invalidate(self) -> None:
        self._key = None

    def frame(self, inputs: FrameInputs) -> Image.Image:
        key = _frame_key(inputs)
        if self._frame is None or key != self._key:
            self._frame = render_frame(inputs)
            self._key = key
            self.render_count += 1
        return self._frame.copy()


def render_frame(inputs: FrameInputs) -> Image.Image:
    frame = inputs.base.image.convert("RGBA")

    if inputs.overlay is not None and inputs.overlay_visible:
        overlay = inputs.overlay.image
        if overlay.size != frame.size:
            overlay = overlay.resize(frame.size, Image.Resampling.NEAREST)
        frame = Image.alpha_composite(frame, overlay)

    if inputs.selection is not None and inputs.floating is not None:
        frame = _apply_floating_preview(frame, inputs.selection, inputs.floating)
    elif inputs.marquee is not None:
        frame = _apply_marquee_preview(frame, inputs.marquee)

    return frame


def _frame_key(inputs: FrameInputs) -> Hashable:
    def surface_key(s: RasterSurface | None):
        return None if s is None else (s.serial, s.revision)

    return (
        surface_key(inputs.base),
        surface_key(inputs.overlay),
        inputs.overlay_visible,
        inputs.selection,
        surface_key(inputs.floating),
        inputs.marquee,
    )


def _apply_floating_preview(frame: Image.Image, selection: Rect, floating: RasterSurface) -> Image.Image:
    layer = Image.new("RGBA", frame.size, (0, 0, 0, 0))
    x, y = round(selection.x), round(selection.y)

    preview = floating.image
    alpha_scale = max(0.0, min(1.0, settings.floating_preview_opacity))
    if alpha_scale < 1.0:
        a = preview.split()[3]
        preview.putalpha(Image.eval(a, lambda px: int(px * alpha_scale)))
    layer.paste(preview, (x, y))

    frame = Image.alpha_composite(frame, layer)
    draw = ImageDraw.Draw(frame)
    _draw_dashed_rect(draw, (x, y, x + floating.width - 1, y + floating.height - 1), settings.selection_border_color)
    return frame


def _apply_marquee_preview(frame: Image.Image, marquee: Rect) -> Image.Image:
    r = marquee.snapped()
    x0, y0 = int(r.x), int(r.y)
    x1, y1 = x0 + max(0, int(r.w) - 1), y0 + max(0, int(r.h) - 1)

    overlay = Image.new("RGBA", frame.size, (0, 0, 0, 0))
    tint = settings.selection_border_color
    fill_a = int(255 * max(0.0, min(1.0, settings.marquee_fill_opacity)))
    ImageDraw.Draw(overlay).rectangle((x0, y0, x1, y1), fill=(*tint, fill_a))
    frame = Image.alpha_composite(frame, overlay)

    _draw_dashed_rect(ImageDraw.Draw(frame), (x0, y0, x1, y1), tint)
    return frame


def _draw_dashed_rect(
    draw: ImageDraw.ImageDraw,
    box: tuple[int, int, int, int],
    color: tuple[int, int, int],
    dash: int = 6,
    gap: int = 4,
) -> None:
    x0, y0, x1, y1 = box
    fill = (*color, 255)
    step = dash + gap

    for x in range(x0, x1 + 1, step):
        xe = min(x + dash - 1, x1)
        draw.line([(x, y0), (xe, y0)], fill=fill)
        draw.line([(x, y1), (xe, y1)], fill=fill)
    for y in range(y0, y1 + 1, step):
        ye = min(y + dash - 1, y1)
        draw.line([(x0, y), (x0, ye)], fill=fill)
        draw.line([(x1, y), (x1, ye)], fill=fill)
