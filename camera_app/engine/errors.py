from __future__ import annotations

__all__ = [
    "CameraError",
    "CameraConfigurationError",
    "CameraEnvironmentError",
    "CameraEngineError",
]


class CameraError(RuntimeError):
    pass


class CameraConfigurationError(CameraError):
    """The peak list or the search parameters cannot be processed."""


class CameraEnvironmentError(CameraError):
    """R, rpy2 or the CAMERA package is unavailable or too old."""


class CameraEngineError(CameraError):
    """An R evaluation failed or returned unusable results."""

    def __init__(self, message: str, expression: str | None = None):
        super().__init__(message)
        self.expression = expression
