from __future__ import annotations

import logging

import cv2
import numpy as np
from PIL import Image

from composition_editor.config import settings
from composition_editor.errors import ExtractionError, InputError
from composition_editor.raster import RasterSurface, decode_image

logger = logging.getLogger(__name__)


def order_thresholds(low_threshold: int, high_threshold: int) -> tuple[int, int]:
    """Clamp both thresholds into 0..255 and swap them if they arrive inverted."""
    low = max(0, min(255, int(low_threshold)))
    high = max(0, min(255, int(high_threshold)))
    if low > high:
        logger.warning("Edge thresholds inverted (low=%d, high=%d); swapping", low, high)
        low, high = high, low
    return low, high


def edges_to_overlay(edges: np.ndarray, color: tuple[int, int, int] | None = None) -> RasterSurface:
    """
    Turn a 0/255 edge mask into an overlay surface: edge pixels opaque in the
    edge color, everything else fully transparent.
    """
    r, g, b = color or settings.edge_color
    h, w = edges.shape[:2]
    on = edges > 0
    rgba = np.zeros((h, w, 4), dtype=np.uint8)
    rgba[on] = (r, g, b, 255)
    return RasterSurface.from_array(rgba)


class CannyEdgeExtractor:
    """
    Binary edge map via OpenCV Canny.

    Pipeline: grayscale, 3x3 Gaussian blur, Canny with L2 gradient magnitude,
    then a 3x3 dilation so the lines stay visible at reduced zoom.
    """

    def __init__(self, blur_ksize: int = 3, dilate_ksize: int = 3) -> None:
        self.blur_ksize = blur_ksize | 1
        self.dilate_ksize = max(1, dilate_ksize)

    def extract(
        self,
        image: Image.Image | bytes | str,
        low_threshold: int,
        high_threshold: int,
    ) -> RasterSurface:
        try:
            src = decode_image(image)
            gray = np.asarray(src.convert("L"), dtype=np.uint8)
        except InputError as exc:
            raise ExtractionError(str(exc)) from exc
        except OSError as exc:
            raise ExtractionError(f"image data could not be read: {exc}") from exc

        if gray.size == 0:
            raise ExtractionError("image has no pixels")

        low, high = order_thresholds(low_threshold, high_threshold)
        logger.info("Extracting edges %dx%d (low=%d, high=%d)", gray.shape[1], gray.shape[0], low, high)

        try:
            blurred = cv2.GaussianBlur(gray, (self.blur_ksize, self.blur_ksize), 0)
            edges = cv2.Canny(blurred, low, high, apertureSize=3, L2gradient=True)
            if self.dilate_ksize > 1:
                kernel = np.ones((self.dilate_ksize, self.dilate_ksize), np.uint8)
                edges = cv2.dilate(edges, kernel, iterations=1)
        except cv2.error as exc:
            raise ExtractionError(f"edge detection failed: {exc}") from exc

        overlay = edges_to_overlay(edges)
        logger.debug("Edge map has %d edge pixels", int(np.count_nonzero(edges)))
        return overlay


def edge_reference(overlay: RasterSurface) -> Image.Image:
    """
    Flatten an edge overlay into the structural reference sent for generation:
    white lines on black, line strength taken from the overlay's alpha.
    """
    alpha = overlay.to_array()[..., 3]
    return Image.fromarray(np.dstack([alpha, alpha, alpha]))
