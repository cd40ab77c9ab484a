from __future__ import annotations

from io import BytesIO
from typing import Any

from PIL import Image

from composition_editor.config import settings
from composition_editor.providers.base import GeneratedImage

# Aspect ratios the image-preview models accept directly.
_SUPPORTED_RATIOS = {"1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9"}


class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str, model: str | None = None) -> None:
        # Imported lazily so the engine can run without the dependency installed.
        from google import genai  # type: ignore

        self._genai = genai
        self.client = genai.Client(api_key=api_key)
        self.model = model or settings.gemini_image_model

    async def generate(
        self,
        prompt: str,
        reference_images: list[Image.Image],
        n: int,
        aspect_ratio: str,
    ) -> list[GeneratedImage]:
        """
        Supports two paths depending on model family:
        - Imagen models: `models.generate_images(...)` (text-to-image, references ignored)
        - Gemini image models: `models.generate_content(...)` with image response modality
        """
        from google.genai import types  # type: ignore

        provider_ratio = normalize_ratio(aspect_ratio)
        out: list[GeneratedImage] = []

        if self.model.startswith("imagen-"):
            resp = await self.client.aio.models.generate_images(
                model=self.model,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=n,
                    aspect_ratio=provider_ratio,
                ),
            )
            for gi in getattr(resp, "generated_images", []) or []:
                img_bytes = getattr(getattr(gi, "image", None), "image_bytes", None)
                if not img_bytes:
                    continue
                img = Image.open(BytesIO(img_bytes))
                img.load()
                out.append(
                    GeneratedImage(
                        image=img,
                        prompt_used=prompt,
                        provider=self.name,
                        model=self.model,
                        seed=None,
                        raw_metadata={"aspect_ratio": provider_ratio},
                    )
                )
            return out

        # Image models usually return one image per call, so loop until we hit n
        # (or the model refuses).
        for _ in range(max(1, n)):
            contents: list[Any] = [prompt]
            contents.extend(img.convert("RGB") for img in reference_images[:8])

            resp = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    response_modalities=["image", "text"],
                    image_config=types.ImageConfig(aspect_ratio=provider_ratio),
                ),
            )

            extracted = _extract_images_from_generate_content(resp)
            for img, meta in extracted:
                out.append(
                    GeneratedImage(
                        image=img,
                        prompt_used=prompt,
                        provider=self.name,
                        model=self.model,
                        seed=None,
                        raw_metadata=meta | {"aspect_ratio": provider_ratio},
                    )
                )
                if len(out) >= n:
                    return out

            # Stop early if we didn't get anything back this attempt.
            if not extracted:
                break

        return out


def normalize_ratio(aspect_ratio: str) -> str:
    s = (aspect_ratio or "").strip()
    if s in _SUPPORTED_RATIOS:
        return s
    ratio = _parse_ratio(s)
    if ratio is None:
        return "1:1"
    a, b = ratio
    target = a / b
    # Nearest supported ratio by value.
    return min(
        _SUPPORTED_RATIOS,
        key=lambda r: abs(_ratio_value(r) - target),
    )


def _ratio_value(ratio: str) -> float:
    a, b = ratio.split(":", 1)
    return int(a) / int(b)


def _parse_ratio(aspect_ratio: str) -> tuple[int, int] | None:
    s = (aspect_ratio or "").strip()
    if ":" not in s:
        return None
    try:
        a, b = s.split(":", 1)
        a_i, b_i = int(a), int(b)
    except ValueError:
        return None
    if a_i <= 0 or b_i <= 0:
        return None
    return a_i, b_i


def _extract_images_from_generate_content(resp: Any) -> list[tuple[Image.Image, dict[str, Any]]]:
    out: list[tuple[Image.Image, dict[str, Any]]] = []
    for cand in getattr(resp, "candidates", []) or []:
        content = getattr(cand, "content", None)
        parts = getattr(content, "parts", None) or []
        for part in parts:
            inline = getattr(part, "inline_data", None)
            if not inline:
                continue
            mime = getattr(inline, "mime_type", None) or ""
            data = getattr(inline, "data", None)
            if not data:
                continue
            if mime and not mime.startswith("image/"):
                continue
            try:
                img = Image.open(BytesIO(data))
                img.load()
            except OSError:
                continue
            out.append((img, {"mime_type": mime}))
    return out
