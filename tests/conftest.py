from __future__ import annotations

import asyncio
import threading

import numpy as np
import pytest
from PIL import Image, ImageDraw

from composition_editor.edges import edges_to_overlay
from composition_editor.editing.selection import SelectionEngine
from composition_editor.editing.state import EditState
from composition_editor.editing.tools import ToolController
from composition_editor.providers.base import GeneratedImage
from composition_editor.raster import RasterSurface

RED = (255, 0, 0, 255)


def square_image(width: int = 64, height: int = 48) -> Image.Image:
    img = Image.new("RGB", (width, height), (0, 0, 0))
    ImageDraw.Draw(img).rectangle((16, 12, 40, 32), fill=(255, 255, 255))
    return img


def patterned_overlay(width: int = 100, height: int = 100, seed: int = 7) -> RasterSurface:
    rng = np.random.default_rng(seed)
    on = rng.random((height, width)) > 0.6
    return edges_to_overlay(on.astype(np.uint8) * 255)


class FakeExtractor:
    def __init__(self) -> None:
        self.calls: list[tuple[int, int]] = []

    def extract(self, image, low_threshold, high_threshold):
        self.calls.append((low_threshold, high_threshold))
        img = image if isinstance(image, Image.Image) else Image.open(image)
        edges = np.zeros((img.height, img.width), dtype=np.uint8)
        edges[2, :] = 255
        return edges_to_overlay(edges)


class GatedExtractor(FakeExtractor):
    """Blocks its worker thread until `release` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def extract(self, image, low_threshold, high_threshold):
        self.started.set()
        self.release.wait(timeout=5)
        return super().extract(image, low_threshold, high_threshold)


class FailingExtractor:
    def extract(self, image, low_threshold, high_threshold):
        raise RuntimeError("decoder exploded")


class FakeProvider:
    name = "fake"
    model = "fake-image-1"

    def __init__(self, size: tuple[int, int] = (64, 48), fail: Exception | None = None, empty: bool = False) -> None:
        self.size = size
        self.fail = fail
        self.empty = empty
        self.calls: list[dict] = []
        self.gate: asyncio.Event | None = None

    async def generate(self, prompt, reference_images, n, aspect_ratio):
        self.calls.append(
            {"prompt": prompt, "reference_images": reference_images, "n": n, "aspect_ratio": aspect_ratio}
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        if self.empty:
            return []
        img = Image.new("RGB", self.size, (10, 200, 30))
        return [
            GeneratedImage(
                image=img,
                prompt_used=prompt,
                provider=self.name,
                model=self.model,
                seed=None,
                raw_metadata={},
            )
        ]


@pytest.fixture
def edit_state() -> EditState:
    return EditState(overlay=RasterSurface.blank(100, 100))


@pytest.fixture
def engine(edit_state: EditState) -> SelectionEngine:
    return SelectionEngine(edit_state)


@pytest.fixture
def published() -> list[int]:
    return []


@pytest.fixture
def controller(edit_state: EditState, engine: SelectionEngine, published: list[int]) -> ToolController:
    return ToolController(edit_state, engine, on_overlay_changed=lambda: published.append(1))
