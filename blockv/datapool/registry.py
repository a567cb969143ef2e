"""
RegionRegistry: the table of live regions owned by one SDK session.

Requests for equivalent regions are served by one shared instance; a region
leaves the table when it is closed. Session identity changes are broadcast
to every live region so user-bound regions can close themselves.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable

from ..const import SAVE_DELAY
from ..errors import UnknownRegionError
from .persistence import PersistentStore
from .region import Loader, Mapper, Matcher, Region, SessionHandler

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class RegionPlugin:
    """
    Capabilities that turn the generic Region into one collection type.

    ``state_key`` and ``loader_factory`` receive the registry and the
    request descriptor; the remaining callables are handed to the Region.
    """

    id: str
    state_key: Callable[["RegionRegistry", Any], str]
    loader_factory: Callable[["RegionRegistry", Any], Loader]
    mapper: Mapper | None = None
    matcher: Matcher | None = None
    on_session_info_changed: SessionHandler | None = None
    no_cache: bool = False


class RegionRegistry:
    """Creates, shares and forgets regions for one session."""

    def __init__(
        self,
        store: PersistentStore | None = None,
        save_delay: float = SAVE_DELAY,
        context: Any = None,
    ) -> None:
        self.store = store
        self.save_delay = save_delay
        # The owning session; loaders reach the API client through it.
        self.context = context
        self.session_info: Any = None
        self._plugins: dict[str, RegionPlugin] = {}
        self._regions: dict[str, Region] = {}

    # ------------------------------------------------------------------
    # Plugins
    # ------------------------------------------------------------------

    def register_plugin(self, plugin: RegionPlugin) -> None:
        if plugin.id in self._plugins:
            _LOGGER.debug("Replacing region plugin %s", plugin.id)
        self._plugins[plugin.id] = plugin

    def plugin(self, plugin_id: str) -> RegionPlugin:
        try:
            return self._plugins[plugin_id]
        except KeyError:
            raise UnknownRegionError(plugin_id) from None

    # ------------------------------------------------------------------
    # Regions
    # ------------------------------------------------------------------

    @property
    def regions(self) -> list[Region]:
        return list(self._regions.values())

    def region(self, plugin_id: str, descriptor: Any = None) -> Region:
        """
        Return the live region matching (plugin_id, descriptor), creating it
        and seeding it from the cache if there is none.
        """
        for existing in self._regions.values():
            if existing.matches(plugin_id, descriptor):
                return existing

        plugin = self.plugin(plugin_id)
        region = Region(
            plugin.id,
            descriptor,
            plugin.state_key(self, descriptor),
            plugin.loader_factory(self, descriptor),
            mapper=plugin.mapper,
            matcher=plugin.matcher,
            on_session_info_changed=plugin.on_session_info_changed,
            store=self.store,
            save_delay=self.save_delay,
            no_cache=plugin.no_cache,
            on_close=self.remove_region,
        )
        if region.state_key in self._regions:
            # Same cache identity but a descriptor the matcher rejected; the old one loses.
            _LOGGER.warning("Replacing region %s", region.state_key)
            self._regions[region.state_key].close()

        self._regions[region.state_key] = region
        _LOGGER.debug("Created region %s", region.state_key)
        region.load_from_cache()
        return region

    def remove_region(self, region: Region) -> None:
        if self._regions.get(region.state_key) is region:
            del self._regions[region.state_key]

    def on_session_info_changed(self, info: Any) -> None:
        """Store the new session info and let every live region react to it."""
        self.session_info = info
        for region in list(self._regions.values()):
            region.on_session_info_changed(info)

    def close_all(self) -> None:
        for region in list(self._regions.values()):
            region.close()
