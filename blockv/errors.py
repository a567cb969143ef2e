"""
Exception hierarchy for the BLOCKv client core.

Caller errors are raised immediately and never retried. Platform and
transport errors surface from the HTTP executor; regions catch them and
expose them through their ``error`` state instead of raising.
"""


class BlockvError(Exception):
    """Base class for every error raised by this package."""


class CallerError(BlockvError, ValueError):
    """Malformed or missing input supplied by the caller."""


class ConfigError(CallerError):
    """Configuration failed schema validation."""


class UnknownRegionError(CallerError):
    """No region plugin is registered under the requested id."""

    def __init__(self, region_id: str) -> None:
        self.region_id = region_id
        super().__init__(f"No region plugin registered for '{region_id}'")


class BlockvApiError(BlockvError):
    """The platform answered with an error."""


class ApiResponseError(BlockvApiError):
    """Exception raised when the API returns an error response."""

    def __init__(self, status: int, error_json: dict | None = None) -> None:
        self.status = status
        self.error_json = error_json or {}
        super().__init__(f"API Error (HTTP {status}): {self.error_json}")


class NetworkError(BlockvApiError):
    """Transport level failure (connection refused, DNS, reset)."""


class AuthenticationError(BlockvApiError):
    """Login or registration was rejected."""


class TokenRefreshError(BlockvApiError):
    """The refresh token could not be exchanged for a new access token."""
