"""Error kinds raised by the overlay renderer."""

from typing import Any, Optional


class OverlayError(Exception):
    """Base class; `code` is the stable kind name reported to callers."""

    code = "OVERLAY_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self), **self.details}


class UnknownFontFamily(OverlayError):
    code = "UnknownFontFamily"

    def __init__(self, family: str):
        super().__init__(f"Unknown font family: {family}", {"font_family": family})


class FontFileUnavailable(OverlayError):
    code = "FontFileUnavailable"

    def __init__(self, path: str, reason: str = "missing or unreadable"):
        super().__init__(f"Font file {reason}: {path}")


class FetchFailed(OverlayError):
    code = "FetchFailed"


class DecodeFailed(OverlayError):
    code = "DecodeFailed"


class RenderFailed(OverlayError):
    code = "RenderFailed"
