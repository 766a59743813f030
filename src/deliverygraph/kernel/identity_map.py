"""Identity map: at most one live resource instance per identity within a session."""

import threading
from typing import Callable, Dict, Iterator, List, NamedTuple, Optional, Tuple

from loguru import logger

from .resources import Resource


class ResourceKey(NamedTuple):
    """Composite identity of a resource.

    locale is only set for entries and assets fetched for a single locale.
    """
    type: str
    id: str
    space: Optional[str] = None
    environment: Optional[str] = None
    locale: Optional[str] = None

    def __str__(self) -> str:
        scope = "/".join(part for part in (self.space, self.environment, self.locale) if part)
        return f"{self.type}:{self.id}" + (f"@{scope}" if scope else "")


class IdentityMap:
    """Session-scoped arena of resources indexed by ResourceKey.

    Mutations (create, update, discard) are serialized per key; reads of
    registered resources take no lock. A resource registered before its
    state is built stays in progress until complete() or discard(); other
    builders wait for that with wait_until_built().
    """

    def __init__(self):
        self._entries: Dict[ResourceKey, Resource] = {}
        self._locks: Dict[ResourceKey, threading.RLock] = {}
        self._guard = threading.Lock()
        self._in_progress: Dict[ResourceKey, threading.Event] = {}

    def _lock_for(self, key: ResourceKey) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def get(self, key: ResourceKey) -> Optional[Resource]:
        return self._entries.get(key)

    def get_or_create(
        self,
        key: ResourceKey,
        factory: Callable[[], Resource],
        in_progress: bool = False,
    ) -> Tuple[Resource, bool]:
        """Return the resource registered under key, building it with factory if absent.

        With in_progress, a newly created resource is marked as not yet built.

        Returns:
            (resource, created) where created is True when factory was invoked
        """
        existing = self._entries.get(key)
        if existing is not None:
            return existing, False
        with self._lock_for(key):
            existing = self._entries.get(key)
            if existing is not None:
                return existing, False
            resource = factory()
            if in_progress:
                with self._guard:
                    self._in_progress[key] = threading.Event()
            self._entries[key] = resource
            logger.debug(f"Registered {key}")
            return resource, True

    def register(self, key: ResourceKey, resource: Resource) -> Resource:
        """Register resource under key unless one is present; return the canonical instance."""
        canonical, _ = self.get_or_create(key, lambda: resource)
        return canonical

    def update(self, key: ResourceKey, newer: Resource) -> bool:
        """Apply a newer version of the resource registered under key.

        The cached instance adopts the newer state only when the incoming
        revision is strictly greater; otherwise this is a no-op. An absent
        key is registered.

        Returns:
            True if the map changed
        """
        with self._lock_for(key):
            existing = self._entries.get(key)
            if existing is None:
                self._entries[key] = newer
                logger.debug(f"Registered {key}")
                return True
            if existing is newer:
                return False
            incoming = newer.sys.effective_revision
            cached = existing.sys.effective_revision
            if incoming > cached:
                existing._adopt(newer)
                logger.debug(f"Updated {key} from revision {cached} to {incoming}")
                return True
            if incoming < cached:
                logger.warning(
                    f"StaleUpdateIgnored: {key} revision {incoming} is older than cached revision {cached}"
                )
            return False

    def complete(self, key: ResourceKey, built: Resource) -> Resource:
        """Fill a registered placeholder with its fully built state.

        Used by the builder for instances it registered before resolving
        their fields. Returns the canonical instance.
        """
        with self._lock_for(key):
            existing = self._entries.get(key)
            if existing is None:
                self._entries[key] = built
            elif existing is not built:
                existing._adopt(built)
            self._finish(key)
            return existing if existing is not None else built

    def discard(self, key: ResourceKey) -> Optional[Resource]:
        with self._lock_for(key):
            resource = self._entries.pop(key, None)
            self._finish(key)
            return resource

    def _finish(self, key: ResourceKey) -> None:
        with self._guard:
            event = self._in_progress.pop(key, None)
        if event is not None:
            event.set()

    def wait_until_built(self, key: ResourceKey, timeout: Optional[float] = None) -> bool:
        """Block until the resource under key is no longer in progress.

        Returns:
            False if timeout expired first
        """
        event = self._in_progress.get(key)
        if event is None:
            return True
        return event.wait(timeout)

    def find(self, resource_type: str, resource_id: str) -> List[Resource]:
        """All registered resources of a type and id, across spaces, environments and locales."""
        return [
            resource for key, resource in list(self._entries.items())
            if key.type == resource_type and key.id == resource_id
        ]

    def keys(self) -> List[ResourceKey]:
        return list(self._entries)

    def values(self) -> List[Resource]:
        return list(self._entries.values())

    def __contains__(self, key: ResourceKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ResourceKey]:
        return iter(list(self._entries))
