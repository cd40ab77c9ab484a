from __future__ import annotations

from composition_editor.config import Settings, settings
from composition_editor.errors import ConfigurationError
from composition_editor.providers.base import ImageProvider


def get_image_provider(cfg: Settings | None = None, model: str | None = None) -> ImageProvider:
    cfg = cfg or settings
    name = (cfg.image_provider or "").strip().lower()

    if name == "gemini":
        if not cfg.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is not set")
        from composition_editor.providers.gemini_provider import GeminiProvider

        return GeminiProvider(api_key=cfg.gemini_api_key, model=model or cfg.gemini_image_model)

    if name == "openai":
        if not cfg.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is not set")
        from composition_editor.providers.openai_provider import OpenAIImageProvider

        return OpenAIImageProvider(api_key=cfg.openai_api_key, model=model or cfg.openai_image_model)

    raise ConfigurationError(f"unknown image provider '{cfg.image_provider}'")
