from __future__ import annotations

import logging

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Loads keys from process env, and also from a local .env file for convenience.
    model_config = SettingsConfigDict(env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    log_level: str = "INFO"

    # Keys
    gemini_api_key: str | None = None
    openai_api_key: str | None = None

    # Generation
    image_provider: str = "gemini"  # gemini|openai
    gemini_image_model: str = "gemini-2.5-flash-image"
    openai_image_model: str = "gpt-image-1"

    # Editor defaults (sliders)
    default_low_threshold: int = 100
    default_high_threshold: int = 200
    default_brush_size: int = 5

    # View
    min_zoom: float = 0.5
    max_zoom: float = 3.0
    zoom_step: float = 0.2
    max_display_width: int = 800
    fallback_display_height: int = 450

    # Selection
    min_marquee_size: int = 2
    min_floating_size: int = 10

    # Rendering
    edge_color: tuple[int, int, int] = (255, 0, 0)
    selection_border_color: tuple[int, int, int] = (34, 211, 238)
    floating_preview_opacity: float = 0.8
    marquee_fill_opacity: float = 0.1


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
