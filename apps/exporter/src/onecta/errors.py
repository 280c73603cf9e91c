from __future__ import annotations

from typing import Optional


class DaikinCloudError(RuntimeError):
    """Base class for failures talking to the Onecta cloud."""


class DaikinAuthError(DaikinCloudError):
    """Raised when no usable access token can be obtained."""


class DaikinApiError(DaikinCloudError):
    """Raised when the Onecta API answers with an error or an unexpected body."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
