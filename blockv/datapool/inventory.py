"""
Built-in region plugins backed by the inventory endpoint.

Responsible for:
- Paging through POST /v1/user/inventory for a given parent id
- Adding each returned raw vatom dict to the region as a DataObject
- Describing the ``inventory`` (current user's root inventory) and
  ``children`` (contents of one vatom) regions
"""
from __future__ import annotations

import logging
from typing import Any

from ..const import CHILDREN_REGION, INVENTORY_PAGE_SIZE, INVENTORY_PATH, INVENTORY_REGION
from ..errors import CallerError
from .data_object import DataObject
from .region import Region
from .registry import RegionPlugin, RegionRegistry

_LOGGER = logging.getLogger(__name__)

VATOM_TYPE = "vatom"


class InventoryLoader:
    """Fetches every vatom under *parent_id*, one page at a time."""

    def __init__(self, client, parent_id: str = ".", page_size: int = INVENTORY_PAGE_SIZE) -> None:
        self._client = client
        self.parent_id = parent_id
        self.page_size = page_size

    async def load(self, region: Region) -> list[str] | None:
        ids: list[str] = []
        page = 1
        while True:
            response = await self._client.request(
                "POST",
                INVENTORY_PATH,
                payload={"parent_id": self.parent_id, "page": page, "limit": self.page_size},
            )
            vatoms = _page_vatoms(response)
            objects = [
                DataObject(id=vatom["id"], type=VATOM_TYPE, data=vatom)
                for vatom in vatoms
                if isinstance(vatom, dict) and vatom.get("id")
            ]
            region.add(objects)
            ids.extend(obj.id for obj in objects)
            _LOGGER.debug(
                "Inventory page %d for parent %s: %d vatoms", page, self.parent_id, len(vatoms)
            )

            if len(vatoms) < self.page_size:
                return ids
            page += 1


def _page_vatoms(response: Any) -> list:
    try:
        vatoms = response["payload"]["vatoms"]
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Unexpected inventory response format: {response}") from exc
    return vatoms or []


def _session_user_id(info: Any) -> str | None:
    if isinstance(info, dict):
        return info.get("user_id")
    return None


def _client_for(registry: RegionRegistry):
    client = getattr(registry.context, "client", None)
    if client is None:
        raise CallerError("Inventory regions need a registry owned by a session with an API client")
    return client


# ---------------------------------------------------------------------------
# inventory
# ---------------------------------------------------------------------------

def _inventory_state_key(registry: RegionRegistry, descriptor: Any) -> str:
    user_id = _session_user_id(registry.session_info)
    if not user_id:
        raise CallerError("The inventory region requires a logged-in user")
    return f"{INVENTORY_REGION}:{user_id}"


def _inventory_matches(region: Region, plugin_id: str, descriptor: Any) -> bool:
    return region.plugin_id == plugin_id


def _close_on_user_change(region: Region, info: Any) -> None:
    user_id = _session_user_id(info)
    if region.state_key != f"{region.plugin_id}:{user_id}":
        _LOGGER.debug("Session user changed, closing region %s", region.state_key)
        region.close()


INVENTORY_PLUGIN = RegionPlugin(
    id=INVENTORY_REGION,
    state_key=_inventory_state_key,
    loader_factory=lambda registry, descriptor: InventoryLoader(_client_for(registry), parent_id="."),
    matcher=_inventory_matches,
    on_session_info_changed=_close_on_user_change,
)


# ---------------------------------------------------------------------------
# children
# ---------------------------------------------------------------------------

def _children_state_key(registry: RegionRegistry, descriptor: Any) -> str:
    if not isinstance(descriptor, str) or not descriptor:
        raise CallerError("The children region requires a parent vatom id")
    return f"{CHILDREN_REGION}:{descriptor}"


def _close_on_session_change(region: Region, info: Any) -> None:
    # visible children differ per user
    region.close()


CHILDREN_PLUGIN = RegionPlugin(
    id=CHILDREN_REGION,
    state_key=_children_state_key,
    loader_factory=lambda registry, descriptor: InventoryLoader(_client_for(registry), parent_id=descriptor),
    on_session_info_changed=_close_on_session_change,
)
