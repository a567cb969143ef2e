"""Configuration for a BLOCKv SDK session."""
from __future__ import annotations

import dataclasses
import logging
import os
import tempfile
from typing import Any

import voluptuous as vol

from .const import DEFAULT_BASE_URL, REQUEST_ATTEMPTS, REQUEST_TIMEOUT, SAVE_DELAY
from .errors import ConfigError

_LOGGER = logging.getLogger(__name__)

non_empty_string = vol.All(vol.Coerce(str), vol.Length(min=1))
url_string = vol.All(non_empty_string, vol.Match(r"^https?://[^\s/]+"))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required("app_id"): non_empty_string,
        vol.Optional("base_url", default=DEFAULT_BASE_URL): url_string,
        vol.Optional("cache_dir", default=None): vol.Any(None, non_empty_string),
        vol.Optional("save_delay", default=SAVE_DELAY): vol.All(vol.Coerce(float), vol.Range(min=0)),
        vol.Optional("request_timeout", default=REQUEST_TIMEOUT): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Optional("request_attempts", default=REQUEST_ATTEMPTS): vol.All(vol.Coerce(int), vol.Range(min=1)),
    }
)


@dataclasses.dataclass(frozen=True)
class SdkConfig:
    """Validated, immutable SDK settings."""

    app_id: str
    base_url: str = DEFAULT_BASE_URL
    cache_dir: str = dataclasses.field(
        default_factory=lambda: os.path.join(tempfile.gettempdir(), "blockv")
    )
    save_delay: float = SAVE_DELAY
    request_timeout: int = REQUEST_TIMEOUT
    request_attempts: int = REQUEST_ATTEMPTS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SdkConfig":
        """
        Validate *data* against CONFIG_SCHEMA and build a config.

        Raises ConfigError naming the offending field when validation fails.
        """
        try:
            validated = CONFIG_SCHEMA(dict(data))
        except vol.Invalid as exc:
            field = ".".join(str(p) for p in exc.path) or "config"
            _LOGGER.error("Invalid SDK configuration for %s: %s", field, exc.error_message)
            raise ConfigError(f"Invalid value for '{field}': {exc.error_message}") from exc

        if validated["cache_dir"] is None:
            validated.pop("cache_dir")
        validated["base_url"] = validated["base_url"].rstrip("/")
        return cls(**validated)
