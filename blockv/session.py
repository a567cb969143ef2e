"""
BlockvSession: owns everything one signed-in SDK user needs.

Responsibilities:
- Own the authenticated ApiClient and the separate refresh ApiClient.
- Own the OAuth2Handler shared by every request.
- Own the RegionRegistry (``data_pool``) with the built-in plugins registered.
- Publish session identity changes so user-bound regions close on logout.
"""
from __future__ import annotations

import logging
from typing import Any

from .api import auth
from .api.oauth import OAuth2Handler
from .config import SdkConfig
from .datapool.inventory import CHILDREN_PLUGIN, INVENTORY_PLUGIN
from .datapool.persistence import FileStore, PersistentStore
from .datapool.region import Region
from .datapool.registry import RegionRegistry
from .requests import ApiClient

_LOGGER = logging.getLogger(__name__)


class BlockvSession:
    """Session-scoped context passed to every caller that needs regions or the API."""

    def __init__(self, config: SdkConfig, store: PersistentStore | None = None) -> None:
        self.config = config
        self.refresh_client = ApiClient(config)
        self.oauth = OAuth2Handler(config.base_url, self.refresh_client)
        self.client = ApiClient(config, auth=self.oauth)

        self.data_pool = RegionRegistry(
            store if store is not None else FileStore(config.cache_dir),
            save_delay=config.save_delay,
            context=self,
        )
        self.data_pool.register_plugin(INVENTORY_PLUGIN)
        self.data_pool.register_plugin(CHILDREN_PLUGIN)

    @property
    def session_info(self) -> Any:
        return self.data_pool.session_info

    @property
    def is_logged_in(self) -> bool:
        return bool(self.oauth.refresh_token)

    def region(self, plugin_id: str, descriptor: Any = None) -> Region:
        """Return the shared region for (plugin_id, descriptor)."""
        return self.data_pool.region(plugin_id, descriptor)

    def set_session_info(self, info: Any) -> None:
        self.data_pool.on_session_info_changed(info)

    async def login(self, token: str, token_type: str, password: str) -> dict:
        """
        Log in, store the minted tokens and publish the new user.

        Returns the raw login payload.
        """
        response = await auth.login(self.refresh_client, token, token_type, password)
        await self.oauth.set_tokens(response.access_token, response.refresh_token)
        self.set_session_info({"user_id": response.user_id})
        _LOGGER.info("Logged in as user %s", response.user_id)
        return response.payload

    async def set_tokens(self, access_token: str, refresh_token: str, user_id: str | None = None) -> None:
        """Adopt tokens minted elsewhere, e.g. restored from a credential store."""
        await self.oauth.set_tokens(access_token, refresh_token)
        if user_id is not None:
            self.set_session_info({"user_id": user_id})

    async def logout(self) -> None:
        """End the session on the server (best effort) and forget local credentials."""
        await auth.logout(self.client)
        await self.oauth.clear_tokens()
        self.set_session_info(None)

    async def close(self) -> None:
        """Close every region and release network resources."""
        self.data_pool.close_all()
        await self.oauth.shutdown()
        await self.client.close()
        await self.refresh_client.close()
