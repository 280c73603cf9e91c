"""Read-only access to the Daikin Onecta cloud API."""

from .client import DaikinCloudClient, RateLimitStatus
from .errors import DaikinApiError, DaikinAuthError, DaikinCloudError
from .tokens import TokenSet, TokenStore

__all__ = [
    "DaikinApiError",
    "DaikinAuthError",
    "DaikinCloudClient",
    "DaikinCloudError",
    "RateLimitStatus",
    "TokenSet",
    "TokenStore",
]
