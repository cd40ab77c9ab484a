from __future__ import annotations


class EditorError(Exception):
    """Base class for every error the editor surfaces as a banner."""


class InputError(EditorError):
    """Missing or invalid input (no source image, out-of-range option)."""


class ConfigurationError(EditorError):
    """A provider was requested without the key or settings it needs."""


class AdapterError(EditorError):
    """An external adapter call (extraction, generation) failed."""


class ExtractionError(AdapterError):
    pass


class GenerationError(AdapterError):
    pass
