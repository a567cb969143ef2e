"""
Client core of the BLOCKv SDK.

- ``blockv.datapool``: regions, local mirrors of remote collections kept in
  sync incrementally, cached on disk and shared through a registry.
- ``blockv.api``: login and the OAuth2 handler that refreshes expired access
  tokens and replays the requests that hit them.
- ``blockv.session``: BlockvSession, which owns both for one signed-in user.
"""
from .config import SdkConfig
from .const import VERSION
from .errors import (
    ApiResponseError,
    AuthenticationError,
    BlockvApiError,
    BlockvError,
    CallerError,
    ConfigError,
    NetworkError,
    TokenRefreshError,
    UnknownRegionError,
)
from .session import BlockvSession

__version__ = VERSION

__all__ = [
    "ApiResponseError",
    "AuthenticationError",
    "BlockvApiError",
    "BlockvError",
    "BlockvSession",
    "CallerError",
    "ConfigError",
    "NetworkError",
    "SdkConfig",
    "TokenRefreshError",
    "UnknownRegionError",
]
