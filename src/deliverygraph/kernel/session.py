"""Build sessions: the explicit context shared by one or more build calls."""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from loguru import logger

from deliverygraph.settings import Settings, settings as default_settings
from .identity_map import IdentityMap, ResourceKey
from .system_properties import ResourceType, SystemProperties

if TYPE_CHECKING:
    from .builder import ResourceBuilder


# Resource kinds whose identity is scoped to a single locale
_LOCALE_SCOPED = {ResourceType.ENTRY.value, ResourceType.ASSET.value}


class ResourceFetcher(Protocol):
    """Transport boundary used for deferred link resolution.

    Returns the raw JSON document of the resource, or None when it does not exist.
    """

    def fetch_resource(
        self,
        resource_type: str,
        resource_id: str,
        space_id: Optional[str],
        environment_id: Optional[str],
        locale: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        ...


class MappingFetcher:
    """Serves raw payloads from memory, keyed by (resource type, id).

    Deletion markers answer fetches for the resource type they delete.
    Every call is recorded in `calls`.
    """

    _DELETED_TO_LIVE = {
        ResourceType.DELETED_ENTRY.value: ResourceType.ENTRY.value,
        ResourceType.DELETED_ASSET.value: ResourceType.ASSET.value,
    }

    def __init__(self, payloads: Iterable[Dict[str, Any]] = ()):
        self._payloads: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str]] = []
        for payload in payloads:
            self.add(payload)

    def add(self, payload: Dict[str, Any]) -> None:
        sys = payload["sys"]
        resource_type = self._DELETED_TO_LIVE.get(sys["type"], sys["type"])
        self._payloads[(resource_type, sys["id"])] = payload

    def fetch_resource(
        self,
        resource_type: str,
        resource_id: str,
        space_id: Optional[str],
        environment_id: Optional[str],
        locale: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        self.calls.append((resource_type, resource_id))
        return self._payloads.get((resource_type, resource_id))


class BuildSession:
    """Session-scoped state for building resource graphs.

    Owns the identity map, the transport collaborator used for deferred
    fetches and the locale fallback table. Sessions are independent: two
    sessions never share resource instances.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fetcher: Optional[ResourceFetcher] = None,
        identity_map: Optional[IdentityMap] = None,
    ):
        self.settings = settings or default_settings
        self.fetcher = fetcher
        self.identity_map = identity_map if identity_map is not None else IdentityMap()
        self.default_locale = self.settings.default_locale
        self.locale_fallbacks: Dict[str, Optional[str]] = {}
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._builder: Optional["ResourceBuilder"] = None

    @property
    def builder(self) -> "ResourceBuilder":
        if self._builder is None:
            from .builder import ResourceBuilder
            self._builder = ResourceBuilder(self)
        return self._builder

    def _environment_for(self, space_id: Optional[str], environment_id: Optional[str]) -> Optional[str]:
        if environment_id is None and space_id is not None:
            return self.settings.default_environment
        return environment_id

    def key_for(self, sys: SystemProperties) -> ResourceKey:
        """Identity map key of a resource from its system properties."""
        resource_type = sys.type.value
        if sys.type == ResourceType.SPACE:
            return ResourceKey(resource_type, sys.id, sys.id)
        if sys.type == ResourceType.ENVIRONMENT:
            return ResourceKey(resource_type, sys.id, sys.space_id)
        locale = sys.locale if resource_type in _LOCALE_SCOPED else None
        environment = self._environment_for(sys.space_id, sys.environment_id)
        return ResourceKey(resource_type, sys.id, sys.space_id, environment, locale)

    def link_key(
        self,
        resource_type: str,
        resource_id: str,
        space_id: Optional[str] = None,
        environment_id: Optional[str] = None,
        locale: Optional[str] = None,
    ) -> ResourceKey:
        """Identity map key of a link target, scoped like the resource linking to it."""
        resource_type = ResourceType(resource_type).value
        if resource_type == ResourceType.SPACE.value:
            return ResourceKey(resource_type, resource_id, resource_id)
        if resource_type == ResourceType.ENVIRONMENT.value:
            return ResourceKey(resource_type, resource_id, space_id)
        if resource_type not in _LOCALE_SCOPED:
            locale = None
        return ResourceKey(resource_type, resource_id, space_id, self._environment_for(space_id, environment_id), locale)

    def register_locale(self, code: str, fallback_code: Optional[str] = None, default: bool = False) -> None:
        with self._lock:
            self.locale_fallbacks[code] = fallback_code
            if default:
                self.default_locale = code

    def known_locales(self) -> Set[str]:
        """Locale codes registered in this session, plus the default locale."""
        with self._lock:
            return set(self.locale_fallbacks) | {self.default_locale}

    def locale_chain(self, locale: Optional[str]) -> List[str]:
        """Locale codes to try for a lookup: the locale, its fallbacks, then the default locale."""
        chain: List[str] = []
        code = locale
        while code is not None and code not in chain:
            chain.append(code)
            code = self.locale_fallbacks.get(code)
        if self.default_locale not in chain:
            chain.append(self.default_locale)
        return chain

    def submit(self, fn, *args, **kwargs) -> Future:
        """Run a deferred fetch on the session's worker pool."""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.settings.fetch_workers,
                    thread_name_prefix="deliverygraph-fetch",
                )
            executor = self._executor
        return executor.submit(fn, *args, **kwargs)

    def close(self) -> None:
        """Shut down the fetch pool. Built resources stay usable."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            logger.debug("Shutting down deferred fetch pool")
            executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "BuildSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
