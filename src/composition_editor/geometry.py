from __future__ import annotations

from dataclasses import dataclass, replace

from composition_editor.config import settings


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in native pixel coordinates."""

    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_corners(cls, ax: float, ay: float, bx: float, by: float) -> Rect:
        return cls(x=min(ax, bx), y=min(ay, by), w=abs(ax - bx), h=abs(ay - by))

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.w / 2, self.y + self.h / 2)

    def contains(self, px: float, py: float) -> bool:
        # Edges count as inside so a press on the dashed border grabs the layer.
        return self.x <= px <= self.x + self.w and self.y <= py <= self.y + self.h

    def moved(self, dx: float, dy: float) -> Rect:
        return replace(self, x=self.x + dx, y=self.y + dy)

    def resized_about_center(self, w: int, h: int) -> Rect:
        cx, cy = self.center
        return Rect(x=cx - w / 2, y=cy - h / 2, w=w, h=h)

    def snapped(self) -> Rect:
        return Rect(x=round(self.x), y=round(self.y), w=round(self.w), h=round(self.h))


@dataclass(frozen=True)
class PointerEvent:
    client_x: float
    client_y: float


@dataclass(frozen=True)
class DisplayRect:
    """Where the stacked canvases sit on screen (CSS pixels, already zoomed)."""

    left: float
    top: float
    width: float
    height: float


def to_native_coords(
    pointer: PointerEvent,
    display_rect: DisplayRect,
    native_size: tuple[int, int],
) -> tuple[float, float]:
    """
    Map a pointer position into the image's native pixel space.

    The fraction of the displayed rectangle under the pointer is scaled by the
    native size, so zoom level and CSS layout never leak into stored pixels.
    A degenerate (zero area) display rectangle maps everything to (0, 0).
    """
    if display_rect.width <= 0 or display_rect.height <= 0:
        return (0.0, 0.0)
    nw, nh = native_size
    fx = (pointer.client_x - display_rect.left) / display_rect.width
    fy = (pointer.client_y - display_rect.top) / display_rect.height
    return (fx * nw, fy * nh)


def display_size(native_size: tuple[int, int], zoom: float) -> tuple[float, float]:
    nw, nh = native_size
    width = min(nw, settings.max_display_width) * zoom
    if nw <= 0 or nh <= 0:
        return (width, float(settings.fallback_display_height))
    return (width, nh * (width / nw))


@dataclass
class ViewState:
    zoom: float = 1.0

    def zoom_in(self) -> float:
        self.zoom = min(round(self.zoom + settings.zoom_step, 4), settings.max_zoom)
        return self.zoom

    def zoom_out(self) -> float:
        self.zoom = max(round(self.zoom - settings.zoom_step, 4), settings.min_zoom)
        return self.zoom

    def reset_zoom(self) -> float:
        self.zoom = 1.0
        return self.zoom
