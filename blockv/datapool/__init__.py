"""Local mirrors of remote collections (regions) and the registry that shares them."""
from .data_object import DataObject, DataObjectUpdateRecord, deep_merged
from .events import EventEmitter
from .inventory import CHILDREN_PLUGIN, INVENTORY_PLUGIN, InventoryLoader
from .persistence import FileStore, MemoryStore, PersistentStore
from .region import Loader, Region
from .registry import RegionPlugin, RegionRegistry

__all__ = [
    "CHILDREN_PLUGIN",
    "DataObject",
    "DataObjectUpdateRecord",
    "EventEmitter",
    "FileStore",
    "INVENTORY_PLUGIN",
    "InventoryLoader",
    "Loader",
    "MemoryStore",
    "PersistentStore",
    "Region",
    "RegionPlugin",
    "RegionRegistry",
    "deep_merged",
]
