from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from composition_editor.config import settings
from composition_editor.geometry import Rect
from composition_editor.raster import RasterSurface


class Tool(str, Enum):
    BRUSH = "brush"
    ERASER = "eraser"
    MOVE = "move"


@dataclass
class EditState:
    """
    Everything the interactive tools mutate, owned by one editor session and
    handed to the tool controller and selection engine explicitly.
    """

    overlay: RasterSurface | None = None
    selection: Rect | None = None
    floating: RasterSurface | None = None
    tool: Tool = Tool.BRUSH
    brush_size: int = settings.default_brush_size

    # Pointer gesture in flight.
    last_point: tuple[float, float] | None = None
    marquee_start: tuple[float, float] | None = None
    marquee: Rect | None = None
    is_drawing: bool = False
    is_moving: bool = False

    @property
    def has_selection(self) -> bool:
        return self.selection is not None and self.floating is not None

    def end_gesture(self) -> None:
        self.last_point = None
        self.marquee_start = None
        self.marquee = None
        self.is_drawing = False
        self.is_moving = False
