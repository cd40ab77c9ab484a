from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from PIL import Image

from composition_editor.raster import RasterSurface


@dataclass(frozen=True)
class GeneratedImage:
    image: Image.Image
    prompt_used: str
    provider: str
    model: str
    seed: int | None
    raw_metadata: dict[str, Any]


class ImageProvider(Protocol):
    name: str
    model: str

    async def generate(
        self,
        prompt: str,
        reference_images: list[Image.Image],
        n: int,
        aspect_ratio: str,
    ) -> list[GeneratedImage]: ...


class EdgeExtractor(Protocol):
    def extract(
        self,
        image: Image.Image | bytes | str,
        low_threshold: int,
        high_threshold: int,
    ) -> RasterSurface: ...
