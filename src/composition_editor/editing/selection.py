from __future__ import annotations

import logging
import math

from PIL import Image

from composition_editor.config import settings
from composition_editor.editing.state import EditState
from composition_editor.geometry import Rect

logger = logging.getLogger(__name__)


class SelectionEngine:
    """
    Lifecycle of the single rectangular selection and its floating layer.

    The floating layer is cut out of the edge overlay when a marquee is
    committed, transformed on its own, and only merged back by
    `commit_to_base`. Every transform keeps the selection rectangle's w/h
    equal to the floating layer's size.
    """

    def __init__(self, state: EditState) -> None:
        self.state = state

    def commit_marquee(self, rect: Rect) -> bool:
        st = self.state
        if st.overlay is None:
            return False

        r = rect.snapped()
        min_size = settings.min_marquee_size
        if r.w <= min_size or r.h <= min_size:
            # Mis-click, not an error.
            logger.debug("Discarding %sx%s marquee", r.w, r.h)
            return False

        x, y, w, h = int(r.x), int(r.y), int(r.w), int(r.h)
        st.floating = st.overlay.crop(x, y, w, h)
        st.overlay.clear_rect(x, y, w, h)
        st.selection = r
        logger.debug("Selection committed at %s", r)
        return True

    def contains(self, x: float, y: float) -> bool:
        st = self.state
        return st.has_selection and st.selection.contains(x, y)

    def move_by(self, dx: float, dy: float) -> bool:
        st = self.state
        if not st.has_selection:
            return False
        st.selection = st.selection.moved(dx, dy)
        return True

    def rotate90(self) -> bool:
        """Rotate the floating layer 90 degrees clockwise about the selection center."""
        st = self.state
        if not st.has_selection:
            return False
        st.floating = st.floating.transformed(Image.Transpose.ROTATE_270)
        st.selection = st.selection.resized_about_center(st.floating.width, st.floating.height)
        return True

    def flip_horizontal(self) -> bool:
        st = self.state
        if not st.has_selection:
            return False
        st.floating = st.floating.transformed(Image.Transpose.FLIP_LEFT_RIGHT)
        return True

    def scale(self, factor: float) -> bool:
        st = self.state
        if not st.has_selection or not math.isfinite(factor) or factor <= 0:
            return False

        floor = settings.min_floating_size
        w, h = st.floating.size
        new_w = max(floor, round(w * factor))
        new_h = max(floor, round(h * factor))
        if (new_w, new_h) == (w, h):
            return False

        st.floating = st.floating.resized(new_w, new_h)
        st.selection = st.selection.resized_about_center(new_w, new_h)
        return True

    def commit_to_base(self) -> bool:
        st = self.state
        if not st.has_selection or st.overlay is None:
            return False
        if st.floating.width > 0 and st.floating.height > 0:
            st.overlay.composite(st.floating, round(st.selection.x), round(st.selection.y))
        logger.debug("Floating layer merged at %s", st.selection)
        st.selection = None
        st.floating = None
        return True

    def discard(self) -> bool:
        st = self.state
        had = st.selection is not None or st.floating is not None
        st.selection = None
        st.floating = None
        return had
