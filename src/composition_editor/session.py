from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from composition_editor.assembly.compositor import FrameInputs, SurfaceCompositor
from composition_editor.config import settings
from composition_editor.edges import CannyEdgeExtractor, edge_reference
from composition_editor.editing.selection import SelectionEngine
from composition_editor.editing.state import EditState, Tool
from composition_editor.editing.tools import ToolController
from composition_editor.errors import (
    ConfigurationError,
    EditorError,
    ExtractionError,
    GenerationError,
    InputError,
)
from composition_editor.geometry import DisplayRect, PointerEvent, ViewState, display_size, to_native_coords
from composition_editor.providers.base import EdgeExtractor, ImageProvider
from composition_editor.providers.factory import get_image_provider
from composition_editor.raster import RasterSurface, decode_image

logger = logging.getLogger(__name__)

COMPOSITION_REFERENCE = (
    "[COMPOSITION REFERENCE] Follow the exact composition and object placement shown in the "
    "edge map reference image. The white lines indicate where objects, characters, and key "
    "elements should be positioned."
)


def build_composition_prompt(prompt: str) -> str:
    prompt = (prompt or "").strip()
    return f"{prompt}\n\n{COMPOSITION_REFERENCE}" if prompt else COMPOSITION_REFERENCE


class EditorOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    low_threshold: int = Field(default=settings.default_low_threshold, ge=0, le=255)
    high_threshold: int = Field(default=settings.default_high_threshold, ge=0, le=255)
    brush_size: int = Field(default=settings.default_brush_size, ge=1, le=20)


@dataclass
class EditorState:
    base_image: RasterSurface | None = None
    extracted_edges: RasterSurface | None = None
    edit: EditState = field(default_factory=EditState)
    view: ViewState = field(default_factory=ViewState)
    options: EditorOptions = field(default_factory=EditorOptions)
    overlay_visible: bool = True
    is_extracting: bool = False
    is_applying: bool = False
    error: str | None = None


class EditorSession:
    """
    One composition-editor panel: base image, edge overlay and the tools
    working on it, plus the two long-running actions (Extract, Apply).

    Host-facing actions never raise: failures land in `state.error` (the
    banner) and leave the last good state in place.
    """

    def __init__(
        self,
        base_image: Image.Image | bytes | str | None = None,
        *,
        prompt: str = "",
        aspect_ratio: str = "1:1",
        provider: ImageProvider | None = None,
        extractor: EdgeExtractor | None = None,
        on_apply: Callable[[str], Any] | None = None,
        on_edges_changed: Callable[[str], Any] | None = None,
    ) -> None:
        self.prompt = prompt
        self.aspect_ratio = aspect_ratio
        self.on_apply = on_apply
        self.on_edges_changed = on_edges_changed
        self._provider = provider
        self.extractor: EdgeExtractor = extractor or CannyEdgeExtractor()

        self.state = EditorState()
        self.state.edit.brush_size = self.state.options.brush_size
        self.selection = SelectionEngine(self.state.edit)
        self.tools = ToolController(self.state.edit, self.selection, on_overlay_changed=self._publish_edges)
        self.compositor = SurfaceCompositor()
        self._closed = False

        if base_image is not None:
            self.load_base_image(base_image)

    # ------------------------------------------------------------------
    # Status

    @property
    def edit(self) -> EditState:
        return self.state.edit

    @property
    def has_edges(self) -> bool:
        return self.state.edit.overlay is not None

    @property
    def can_extract(self) -> bool:
        return self.state.base_image is not None and not self.state.is_extracting

    @property
    def can_apply(self) -> bool:
        return self.has_edges and not self.state.is_applying

    def dismiss_error(self) -> None:
        self.state.error = None

    def close(self) -> None:
        """Mark the panel gone; results of calls still in flight are dropped."""
        self._closed = True

    # ------------------------------------------------------------------
    # Inputs

    def load_base_image(self, source: Image.Image | bytes | str) -> bool:
        try:
            img = decode_image(source)
        except InputError as exc:
            self._fail(exc)
            return False
        self._set_base(RasterSurface(img))
        return True

    def set_options(self, **changes: int) -> EditorOptions:
        merged = self.state.options.model_dump() | changes
        try:
            options = EditorOptions.model_validate(merged)
        except ValidationError as exc:
            raise InputError(str(exc)) from exc
        self.state.options = options
        self.state.edit.brush_size = options.brush_size
        return options

    # ------------------------------------------------------------------
    # Extract / reset

    async def extract_edges(self) -> bool:
        st = self.state
        if st.is_extracting:
            logger.warning("Edge extraction already running; ignoring request")
            return False
        base = st.base_image
        if base is None:
            self._fail(InputError("Select an image before extracting edges."))
            return False

        st.is_extracting = True
        st.error = None
        opts = st.options
        try:
            edges = await asyncio.to_thread(self.extractor.extract, base.image, opts.low_threshold, opts.high_threshold)
        except Exception as exc:
            logger.exception("Edge extraction failed")
            self._fail(ExtractionError(f"Edge extraction failed: {str(exc) or 'Unknown error'}"))
            return False
        finally:
            st.is_extracting = False

        if self._closed or st.base_image is not base:
            logger.warning("Dropping edge map for a base image that is no longer current")
            return False
        if edges.size != base.size:
            self._fail(ExtractionError(f"Edge map size {edges.size} does not match image size {base.size}"))
            return False

        self._install_edges(edges)
        logger.info("Edge map ready (%dx%d)", edges.width, edges.height)
        return True

    def start_blank_edges(self) -> bool:
        """Start from an empty overlay instead of extracted edges."""
        base = self.state.base_image
        if base is None:
            self._fail(InputError("Select an image first."))
            return False
        self._install_edges(RasterSurface.blank(base.width, base.height))
        return True

    def reset_edits(self) -> bool:
        """Throw away every edit and go back to the extracted edge map."""
        st = self.state
        st.error = None
        if st.extracted_edges is None:
            return False
        self.selection.discard()
        st.edit.end_gesture()
        st.edit.overlay = st.extracted_edges.copy()
        self._publish_edges()
        return True

    # ------------------------------------------------------------------
    # Apply

    async def apply(self) -> bool:
        st = self.state
        if st.is_applying:
            logger.warning("Generation already running; ignoring request")
            return False
        if st.base_image is None or st.edit.overlay is None:
            self._fail(InputError("Extract edges first."))
            return False

        try:
            provider = self._provider or get_image_provider()
        except ConfigurationError as exc:
            self._fail(exc)
            return False

        # The reference is the overlay with every pending edit merged in.
        if self.selection.commit_to_base():
            self._publish_edges()
        reference = edge_reference(st.edit.overlay)
        prompt = build_composition_prompt(self.prompt)

        st.is_applying = True
        st.error = None
        logger.info("Generating with %s/%s (ratio=%s)", provider.name, getattr(provider, "model", "?"), self.aspect_ratio)
        try:
            results = await provider.generate(prompt, [reference], n=1, aspect_ratio=self.aspect_ratio)
        except Exception as exc:
            logger.exception("Image generation failed")
            self._fail(GenerationError(f"Apply failed: {str(exc) or 'Unknown error'}"))
            return False
        finally:
            st.is_applying = False

        if self._closed:
            logger.warning("Dropping generated image for a closed editor")
            return False
        if not results:
            self._fail(GenerationError("Image generation failed: no result returned."))
            return False

        try:
            generated = RasterSurface(results[0].image)
        except (OSError, ValueError) as exc:
            logger.exception("Generated image could not be decoded")
            self._fail(GenerationError(f"Apply failed: {str(exc) or 'Unknown error'}"))
            return False

        self._set_base(generated)
        url = st.base_image.to_data_url()
        if self.on_apply is not None:
            self.on_apply(url)
        return True

    # ------------------------------------------------------------------
    # Tools

    def select_tool(self, tool: Tool | str) -> None:
        self.tools.select_tool(tool)

    def native_point(self, event: PointerEvent, rect: DisplayRect) -> tuple[float, float]:
        base = self.state.base_image
        native = base.size if base is not None else (0, 0)
        return to_native_coords(event, rect, native)

    def pointer_down(self, event: PointerEvent, rect: DisplayRect) -> None:
        self.tools.pointer_down(*self.native_point(event, rect))

    def pointer_move(self, event: PointerEvent, rect: DisplayRect) -> bool:
        return self.tools.pointer_move(*self.native_point(event, rect))

    def pointer_up(self) -> None:
        self.tools.pointer_up()

    def pointer_leave(self) -> None:
        self.tools.pointer_leave()

    def rotate_selection(self) -> bool:
        return self._after_transform(self.selection.rotate90())

    def flip_selection(self) -> bool:
        return self._after_transform(self.selection.flip_horizontal())

    def scale_selection(self, factor: float) -> bool:
        return self._after_transform(self.selection.scale(factor))

    def commit_selection(self) -> bool:
        return self._after_transform(self.selection.commit_to_base())

    def discard_selection(self) -> bool:
        return self.selection.discard()

    # ------------------------------------------------------------------
    # View

    def zoom_in(self) -> float:
        return self.state.view.zoom_in()

    def zoom_out(self) -> float:
        return self.state.view.zoom_out()

    def reset_zoom(self) -> float:
        return self.state.view.reset_zoom()

    def display_size(self) -> tuple[float, float]:
        base = self.state.base_image
        return display_size(base.size if base is not None else (0, 0), self.state.view.zoom)

    def toggle_overlay(self, visible: bool | None = None) -> bool:
        st = self.state
        st.overlay_visible = (not st.overlay_visible) if visible is None else visible
        return st.overlay_visible

    def frame(self) -> Image.Image | None:
        st = self.state
        if st.base_image is None:
            return None
        return self.compositor.frame(
            FrameInputs(
                base=st.base_image,
                overlay=st.edit.overlay,
                overlay_visible=st.overlay_visible,
                selection=st.edit.selection,
                floating=st.edit.floating,
                marquee=st.edit.marquee if st.edit.tool is Tool.MOVE else None,
            )
        )

    def export_edges(self) -> str | None:
        overlay = self.state.edit.overlay
        return overlay.to_data_url() if overlay is not None else None

    # ------------------------------------------------------------------

    def _set_base(self, base: RasterSurface) -> None:
        st = self.state
        old = st.edit.overlay
        st.base_image = base
        if old is not None and old.size != base.size:
            # An edge map must match its base image; drop edits made for the old size.
            logger.info("Base image resized to %dx%d; clearing edge state", base.width, base.height)
            self.selection.discard()
            st.edit.end_gesture()
            st.edit.overlay = None
            st.extracted_edges = None

    def _install_edges(self, edges: RasterSurface) -> None:
        st = self.state
        self.selection.discard()
        st.edit.end_gesture()
        st.extracted_edges = edges
        st.edit.overlay = edges.copy()
        self._publish_edges()

    def _after_transform(self, changed: bool) -> bool:
        if changed:
            self._publish_edges()
        return changed

    def _publish_edges(self) -> None:
        if self.on_edges_changed is None:
            return
        url = self.export_edges()
        if url is not None:
            self.on_edges_changed(url)

    def _fail(self, exc: EditorError) -> None:
        logger.warning("%s", exc)
        self.state.error = str(exc)
