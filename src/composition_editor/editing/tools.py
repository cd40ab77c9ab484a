from __future__ import annotations

import logging
import math
from typing import Callable

from PIL import Image, ImageDraw

from composition_editor.config import settings
from composition_editor.editing.selection import SelectionEngine
from composition_editor.editing.state import EditState, Tool
from composition_editor.geometry import Rect

logger = logging.getLogger(__name__)

Point = tuple[float, float]


class ToolController:
    """
    Routes pointer events (already in native pixels) to the active tool.

    `on_overlay_changed` fires once per finished edit of the edge overlay:
    end of a brush/eraser stroke, a committed marquee, or a selection merged
    back by a tool switch.
    """

    def __init__(
        self,
        state: EditState,
        selection: SelectionEngine,
        on_overlay_changed: Callable[[], None] | None = None,
    ) -> None:
        self.state = state
        self.selection = selection
        self.on_overlay_changed = on_overlay_changed

    @property
    def tool(self) -> Tool:
        return self.state.tool

    def select_tool(self, tool: Tool | str) -> None:
        tool = Tool(tool)
        st = self.state
        if st.is_drawing and st.tool is not Tool.MOVE:
            self._finish_stroke()
        if st.has_selection and self.selection.commit_to_base():
            self._publish()
        self.selection.discard()
        st.end_gesture()
        if st.tool is not tool:
            logger.debug("Tool %s -> %s", st.tool.value, tool.value)
        st.tool = tool

    def pointer_down(self, x: float, y: float) -> None:
        st = self.state
        if st.overlay is None:
            return

        if st.tool is Tool.MOVE:
            if self.selection.contains(x, y):
                st.is_moving = True
                st.last_point = (x, y)
            else:
                # New marquee; the old floating layer is dropped, not merged.
                self.selection.discard()
                st.marquee_start = (x, y)
                st.marquee = None
                st.is_drawing = True
                st.is_moving = False
            return

        st.is_drawing = True
        st.last_point = (x, y)

    def pointer_move(self, x: float, y: float) -> bool:
        """Returns True when something visible changed."""
        st = self.state
        if st.overlay is None or not (st.is_drawing or st.is_moving):
            return False

        if st.tool is Tool.MOVE:
            if st.is_moving and st.last_point is not None:
                lx, ly = st.last_point
                moved = self.selection.move_by(x - lx, y - ly)
                st.last_point = (x, y)
                return moved
            if st.is_drawing and st.marquee_start is not None:
                sx, sy = st.marquee_start
                st.marquee = Rect.from_corners(sx, sy, x, y)
                return True
            return False

        if st.last_point is None:
            return False
        self._stroke(st.last_point, (x, y))
        st.last_point = (x, y)
        return True

    def pointer_up(self) -> None:
        st = self.state
        if st.tool is Tool.MOVE:
            if st.is_drawing and st.marquee is not None:
                if self.selection.commit_marquee(st.marquee):
                    self._publish()
        elif st.is_drawing:
            self._finish_stroke()
        st.end_gesture()

    # Leaving the canvas ends the gesture exactly like a release.
    pointer_leave = pointer_up

    def _finish_stroke(self) -> None:
        self.state.is_drawing = False
        self.state.last_point = None
        self._publish()

    def _stroke(self, p0: Point, p1: Point) -> None:
        st = self.state
        radius = st.brush_size
        if st.tool is Tool.ERASER:
            # Mask only the segment's padded bounding box.
            pad = radius + 2
            x0 = max(0, math.floor(min(p0[0], p1[0])) - pad)
            y0 = max(0, math.floor(min(p0[1], p1[1])) - pad)
            x1 = min(st.overlay.width, math.ceil(max(p0[0], p1[0])) + pad)
            y1 = min(st.overlay.height, math.ceil(max(p0[1], p1[1])) + pad)
            if x1 <= x0 or y1 <= y0:
                return
            mask = Image.new("L", (x1 - x0, y1 - y0), 0)
            local = [(px - x0, py - y0) for px, py in (p0, p1)]
            draw_segment(ImageDraw.Draw(mask), local[0], local[1], radius, fill=255)
            st.overlay.erase_mask(mask, x0, y0)
        else:
            color = (*settings.edge_color, 255)
            st.overlay.draw_with(lambda im: draw_segment(ImageDraw.Draw(im), p0, p1, radius, fill=color))

    def _publish(self) -> None:
        if self.on_overlay_changed is not None:
            self.on_overlay_changed()


def draw_segment(draw: ImageDraw.ImageDraw, p0: Point, p1: Point, radius: int, fill) -> None:
    """Line segment with round caps, `radius` pixels either side of the path."""
    draw.line([p0, p1], fill=fill, width=max(1, 2 * radius))
    for px, py in (p0, p1):
        draw.ellipse((px - radius, py - radius, px + radius, py + radius), fill=fill)
