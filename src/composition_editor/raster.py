from __future__ import annotations

import base64
import binascii
import itertools
from io import BytesIO

import numpy as np
from PIL import Image, ImageChops, UnidentifiedImageError

from composition_editor.errors import InputError

_DATA_URL_PREFIX = "data:image/png;base64,"
_serials = itertools.count(1)


class RasterSurface:
    """
    Owned RGBA pixel buffer in native image pixels.

    Every mutating operation bumps `revision` so the compositor knows when a
    frame has to be redrawn.
    """

    def __init__(self, image: Image.Image) -> None:
        # Always a private copy of the caller's image.
        self._image = image.convert("RGBA")
        self.serial = next(_serials)
        self.revision = 0

    @classmethod
    def blank(cls, width: int, height: int) -> RasterSurface:
        return cls(Image.new("RGBA", (max(1, width), max(1, height)), (0, 0, 0, 0)))

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> RasterSurface:
        return cls(Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8)))

    @classmethod
    def from_data_url(cls, url: str) -> RasterSurface:
        return cls(decode_image(url))

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    @property
    def size(self) -> tuple[int, int]:
        return self._image.size

    @property
    def image(self) -> Image.Image:
        # Callers get a copy; mutations must go through the surface.
        return self._image.copy()

    def to_array(self) -> np.ndarray:
        return np.asarray(self._image, dtype=np.uint8).copy()

    def copy(self) -> RasterSurface:
        return RasterSurface(self._image.copy())

    def crop(self, x: int, y: int, w: int, h: int) -> RasterSurface:
        # Regions outside the surface come back transparent, like a canvas read.
        return RasterSurface(self._image.crop((x, y, x + w, y + h)))

    def clear_rect(self, x: int, y: int, w: int, h: int) -> None:
        self._image.paste((0, 0, 0, 0), _clip_box(x, y, w, h, self.size))
        self._touch()

    def paste(self, other: RasterSurface, x: int, y: int) -> None:
        """Opaque overwrite: `other` replaces the pixels under it, alpha included."""
        self._image.paste(other._image, (x, y))
        self._touch()

    def composite(self, other: RasterSurface, x: int, y: int, opacity: float = 1.0) -> None:
        """Source-over `other` onto this surface with its top-left at (x, y)."""
        box = _clip_box(x, y, other.width, other.height, self.size)
        if box[2] <= box[0] or box[3] <= box[1]:
            return
        sx0, sy0 = box[0] - x, box[1] - y
        src = np.asarray(other._image, dtype=np.float32)[
            sy0 : sy0 + box[3] - box[1], sx0 : sx0 + box[2] - box[0]
        ]
        dst = np.asarray(self._image, dtype=np.float32)[box[1] : box[3], box[0] : box[2]]
        out = source_over(dst, src, opacity)
        self._image.paste(Image.fromarray(out), (box[0], box[1]))
        self._touch()

    def erase_mask(self, mask: Image.Image, x: int = 0, y: int = 0) -> None:
        """
        Destructive erase: every pixel where `mask` is non-zero becomes transparent.

        The mask covers the box starting at (x, y) and must lie inside the surface.
        """
        mw, mh = mask.size
        if x < 0 or y < 0 or x + mw > self.width or y + mh > self.height:
            raise ValueError(f"mask {mask.size} at ({x}, {y}) does not fit surface size {self.size}")
        self._image.paste((0, 0, 0, 0), (x, y, x + mw, y + mh), mask.convert("L"))
        self._touch()

    def draw_with(self, painter) -> None:
        """Run `painter(image)` against the live buffer (ImageDraw strokes)."""
        painter(self._image)
        self._touch()

    def transformed(self, method: Image.Transpose) -> RasterSurface:
        return RasterSurface(self._image.transpose(method))

    def resized(self, width: int, height: int) -> RasterSurface:
        return RasterSurface(self._image.resize((width, height), Image.Resampling.LANCZOS))

    def pixel_equal(self, other: RasterSurface) -> bool:
        if self.size != other.size:
            return False
        return ImageChops.difference(self._image, other._image).getbbox() is None

    def count_opaque(self) -> int:
        return int(np.count_nonzero(np.asarray(self._image)[..., 3]))

    def to_png_bytes(self) -> bytes:
        buf = BytesIO()
        self._image.save(buf, format="PNG")
        return buf.getvalue()

    def to_data_url(self) -> str:
        return image_to_data_url(self._image)

    def _touch(self) -> None:
        self.revision += 1

    def __repr__(self) -> str:
        return f"RasterSurface({self.width}x{self.height}, rev={self.revision})"


def source_over(dst: np.ndarray, src: np.ndarray, opacity: float = 1.0) -> np.ndarray:
    """
    Straight-alpha source-over of two float32 HxWx4 arrays (0..255).

    A fully opaque source pixel replaces the destination exactly and a fully
    transparent one leaves it untouched.
    """
    sa = (src[..., 3:4] / 255.0) * max(0.0, min(1.0, opacity))
    da = dst[..., 3:4] / 255.0
    out_a = sa + da * (1.0 - sa)
    safe_a = np.where(out_a > 0, out_a, 1.0)
    out_rgb = (src[..., :3] * sa + dst[..., :3] * da * (1.0 - sa)) / safe_a
    out_rgb = np.where(out_a > 0, out_rgb, 0.0)
    out = np.concatenate([out_rgb, out_a * 255.0], axis=-1)
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def _clip_box(x: int, y: int, w: int, h: int, size: tuple[int, int]) -> tuple[int, int, int, int]:
    sw, sh = size
    x0 = max(0, min(sw, x))
    y0 = max(0, min(sh, y))
    x1 = max(x0, min(sw, x + w))
    y1 = max(y0, min(sh, y + h))
    return (x0, y0, x1, y1)


def image_to_data_url(img: Image.Image) -> str:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return _DATA_URL_PREFIX + base64.b64encode(buf.getvalue()).decode("ascii")


def decode_image(source: Image.Image | bytes | str) -> Image.Image:
    """
    Accept a Pillow image, raw encoded bytes or a `data:` URL and return a
    loaded Pillow image. Anything else (or corrupt data) is an InputError.
    """
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, str):
        if not source.startswith("data:") or "," not in source:
            raise InputError("image must be a data URL")
        header, payload = source.split(",", 1)
        try:
            data = base64.b64decode(payload, validate=";base64" in header)
        except (binascii.Error, ValueError) as exc:
            raise InputError(f"data URL is not valid base64: {exc}") from exc
    elif isinstance(source, (bytes, bytearray)):
        data = bytes(source)
    else:
        raise InputError(f"unsupported image source: {type(source).__name__}")

    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise InputError(f"image data could not be decoded: {exc}") from exc
    return img
