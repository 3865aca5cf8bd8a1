"""Host-owned caches shared across modifier passes.

BooleanCache memoizes boolean geometry by content hash; InstanceStorage keeps
the participant list of each deferred boolean until it is materialized.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shapely.geometry.base import BaseGeometry

if TYPE_CHECKING:
    from modstack.engine.instances import VirtualInstance

logger = logging.getLogger(__name__)


class BooleanCache:
    """LRU map of cache_key -> shapely geometry."""

    def __init__(self, capacity: int = 256) -> None:
        self.capacity = max(1, capacity)
        self._entries: OrderedDict[str, BaseGeometry] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> BaseGeometry | None:
        with self._lock:
            geom = self._entries.get(key)
            if geom is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return geom

    def put(self, key: str, geometry: BaseGeometry) -> None:
        with self._lock:
            self._entries[key] = geometry
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Boolean cache evicted %s", evicted[:12])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class InstanceStorage:
    """storage_key -> participant instances of a deferred boolean."""

    def __init__(self) -> None:
        self._entries: dict[str, list[VirtualInstance]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> list[VirtualInstance] | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, instances: list[VirtualInstance]) -> None:
        with self._lock:
            self._entries[key] = list(instances)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class EngineCaches:
    boolean: BooleanCache = field(default_factory=BooleanCache)
    instances: InstanceStorage = field(default_factory=InstanceStorage)

    def clear(self) -> None:
        self.boolean.clear()
        self.instances.clear()
