from __future__ import annotations

import base64
import io
from types import SimpleNamespace

import pytest
from PIL import Image

from composition_editor.config import Settings
from composition_editor.errors import ConfigurationError
from composition_editor.providers.factory import get_image_provider
from composition_editor.providers.gemini_provider import _extract_images_from_generate_content, normalize_ratio
from composition_editor.providers.openai_provider import _extract_images_from_response, size_for_ratio


def _png(color=(255, 0, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 3), color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.mark.parametrize(
    "ratio,expected",
    [("16:9", "16:9"), ("1:1", "1:1"), ("1080:1920", "9:16"), ("2.35:1", "1:1"), ("", "1:1"), ("7:3", "21:9")],
)
def test_normalize_ratio(ratio, expected):
    assert normalize_ratio(ratio) == expected


@pytest.mark.parametrize(
    "ratio,expected",
    [("16:9", "1536x1024"), ("9:16", "1024x1536"), ("1:1", "1024x1024"), ("4:5", "1024x1536"), ("bogus", "1024x1024")],
)
def test_size_for_ratio(ratio, expected):
    assert size_for_ratio(ratio) == expected


def test_gemini_response_parsing_skips_non_images():
    resp = SimpleNamespace(
        candidates=[
            SimpleNamespace(
                content=SimpleNamespace(
                    parts=[
                        SimpleNamespace(inline_data=None, text="here you go"),
                        SimpleNamespace(inline_data=SimpleNamespace(mime_type="text/plain", data=b"hi")),
                        SimpleNamespace(inline_data=SimpleNamespace(mime_type="image/png", data=b"broken")),
                        SimpleNamespace(inline_data=SimpleNamespace(mime_type="image/png", data=_png())),
                    ]
                )
            )
        ]
    )
    out = _extract_images_from_generate_content(resp)
    assert len(out) == 1
    img, meta = out[0]
    assert img.size == (4, 3)
    assert meta == {"mime_type": "image/png"}


def test_openai_response_parsing():
    resp = SimpleNamespace(
        data=[
            SimpleNamespace(b64_json=base64.b64encode(_png()).decode(), revised_prompt="castle"),
            SimpleNamespace(b64_json=None),
        ]
    )
    out = _extract_images_from_response(resp)
    assert len(out) == 1
    assert out[0][0].size == (4, 3)
    assert out[0][1] == {"revised_prompt": "castle"}


def test_factory_requires_keys():
    with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
        get_image_provider(Settings(image_provider="gemini", gemini_api_key=None))
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        get_image_provider(Settings(image_provider="openai", openai_api_key=None))
    with pytest.raises(ConfigurationError, match="unknown"):
        get_image_provider(Settings(image_provider="midjourney"))
