"""
Read-through Caches

Eventually-consistent list views of namespaces and cluster role bindings.
Reads may be up to ``ttl`` seconds stale; every mutation goes through the
API clients directly, and the next pass corrects anything a stale read missed.
"""

import copy
import logging
import time
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class ListCache:
    """Caches the items of one list call for a bounded time"""

    def __init__(self, list_func: Callable[[], list], ttl: float = 30.0,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            list_func: returns the current items
            ttl: seconds a snapshot stays valid
            clock: time source, injectable for tests
        """
        self.list_func = list_func
        self.ttl = ttl
        self.clock = clock
        self._items: Optional[list] = None
        self._fetched_at = 0.0
        self.stats = {'hits': 0, 'misses': 0}

    def items(self) -> list:
        now = self.clock()
        if self._items is None or now - self._fetched_at >= self.ttl:
            self.stats['misses'] += 1
            self._items = list(self.list_func())
            self._fetched_at = now
            logger.debug(f"cache refreshed with {len(self._items)} items")
        else:
            self.stats['hits'] += 1
        return self._items

    def invalidate(self) -> None:
        self._items = None


class NamespaceLister:
    """Namespace reads through a ListCache"""

    def __init__(self, core_api, ttl: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.cache = ListCache(lambda: core_api.list_namespace().items, ttl, clock)

    def list_with_label(self, key: str, value: str) -> List:
        return [
            ns for ns in self.cache.items()
            if (ns.metadata.labels or {}).get(key) == value
        ]

    def names_with_label(self, key: str, value: str) -> Dict[str, str]:
        return {ns.metadata.name: ns.metadata.name for ns in self.list_with_label(key, value)}


class ClusterRoleBindingLister:
    """ClusterRoleBinding reads through a ListCache"""

    def __init__(self, rbac_api, ttl: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.cache = ListCache(lambda: rbac_api.list_cluster_role_binding().items, ttl, clock)

    def get(self, name: str):
        """
        Returns:
            A private copy of the named binding, or None if it does not exist
        """
        for binding in self.cache.items():
            if binding.metadata.name == name:
                return copy.deepcopy(binding)
        return None
