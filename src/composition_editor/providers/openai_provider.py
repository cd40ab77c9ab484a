from __future__ import annotations

import base64
import binascii
from io import BytesIO
from typing import Any

from PIL import Image

from composition_editor.config import settings
from composition_editor.providers.base import GeneratedImage


class OpenAIImageProvider:
    name = "openai"

    def __init__(self, api_key: str, model: str | None = None) -> None:
        from openai import AsyncOpenAI  # type: ignore

        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model or settings.openai_image_model

    async def generate(
        self,
        prompt: str,
        reference_images: list[Image.Image],
        n: int,
        aspect_ratio: str,
    ) -> list[GeneratedImage]:
        """
        With references the Images edit endpoint is used so the edge map steers
        the layout; without any it falls back to plain generation.
        """
        size = size_for_ratio(aspect_ratio)

        if reference_images:
            files = [
                (f"reference_{i}.png", _png_bytes(img), "image/png")
                for i, img in enumerate(reference_images[:8])
            ]
            resp = await self.client.images.edit(
                model=self.model,
                image=files,
                prompt=prompt,
                n=n,
                size=size,
            )
        else:
            resp = await self.client.images.generate(
                model=self.model,
                prompt=prompt,
                n=n,
                size=size,
            )

        out: list[GeneratedImage] = []
        for img, meta in _extract_images_from_response(resp):
            out.append(
                GeneratedImage(
                    image=img,
                    prompt_used=prompt,
                    provider=self.name,
                    model=self.model,
                    seed=None,
                    raw_metadata=meta | {"size": size},
                )
            )
        return out[:n]


def size_for_ratio(aspect_ratio: str) -> str:
    # gpt-image models only take three canvas sizes.
    s = (aspect_ratio or "").strip()
    try:
        a, b = s.split(":", 1)
        value = int(a) / int(b)
    except (ValueError, ZeroDivisionError):
        return "1024x1024"
    if value > 1.1:
        return "1536x1024"
    if value < 0.9:
        return "1024x1536"
    return "1024x1024"


def _png_bytes(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _extract_images_from_response(resp: Any) -> list[tuple[Image.Image, dict[str, Any]]]:
    out: list[tuple[Image.Image, dict[str, Any]]] = []
    for item in getattr(resp, "data", None) or []:
        b64 = getattr(item, "b64_json", None)
        if not b64:
            continue
        try:
            img = Image.open(BytesIO(base64.b64decode(b64)))
            img.load()
        except (binascii.Error, OSError):
            continue
        meta: dict[str, Any] = {}
        revised = getattr(item, "revised_prompt", None)
        if revised:
            meta["revised_prompt"] = revised
        out.append((img, meta))
    return out
