"""Link resolution against the session identity map, with one deferred fetch as fallback."""

from __future__ import annotations

from concurrent.futures import TimeoutError as FetchTimeout
from typing import TYPE_CHECKING, Any, Optional, Union

from loguru import logger

from deliverygraph.codes import IssueCode
from .errors import ResourceBuildError
from .links import Link, UnresolvableLink
from .resources import DeletedResource, Resource
from .system_properties import ResourceType

if TYPE_CHECKING:
    from .builder import BuildRun
    from .content_type import ContentType
    from .session import BuildSession


_DELETION_MARKERS = {
    ResourceType.ENTRY.value: ResourceType.DELETED_ENTRY.value,
    ResourceType.ASSET.value: ResourceType.DELETED_ASSET.value,
}
_LINKABLE = {resource_type.value for resource_type in ResourceType} - set(_DELETION_MARKERS.values())


class LinkResolver:
    """Replaces links with canonical resource instances.

    Lookup order: deletion markers, the identity map (same batch or earlier
    builds), links the server reported as not resolvable, then a single
    bounded fetch through the session fetcher. Every failure yields an
    UnresolvableLink marker instead of an exception.
    """

    def __init__(self, session: "BuildSession"):
        self.session = session

    def resolve(
        self,
        link: Link,
        run: "BuildRun",
        space_id: Optional[str] = None,
        environment_id: Optional[str] = None,
        locale: Optional[str] = None,
    ) -> Union[Resource, UnresolvableLink]:
        """Resolve a link to the canonical resource, or to an UnresolvableLink marker."""
        if link.link_type not in _LINKABLE:
            return self.unresolvable(link, f"unsupported link type '{link.link_type}'", run)

        identity_map = self.session.identity_map
        deletion_type = _DELETION_MARKERS.get(link.link_type)
        if deletion_type is not None:
            marker_key = self.session.link_key(deletion_type, link.id, space_id, environment_id)
            if marker_key in identity_map:
                return self.unresolvable(link, "deleted", run)

        key = self.session.link_key(link.link_type, link.id, space_id, environment_id, locale)
        resource = identity_map.get(key)
        if resource is not None:
            return resource

        if (link.link_type, link.id) in run.not_resolvable:
            return self.unresolvable(link, "reported not resolvable by the server", run)

        fetched = self._fetch(link, run, space_id, environment_id, locale)
        if isinstance(fetched, str):
            return self.unresolvable(link, fetched, run)
        return fetched

    def resolve_value(
        self,
        value: Any,
        run: "BuildRun",
        space_id: Optional[str] = None,
        environment_id: Optional[str] = None,
        locale: Optional[str] = None,
    ) -> Any:
        """Resolve a coerced field value: Links and lists of Links are replaced, anything else is returned as is."""
        if isinstance(value, Link):
            return self.resolve(value, run, space_id, environment_id, locale)
        if isinstance(value, list):
            return [self.resolve_value(item, run, space_id, environment_id, locale) for item in value]
        return value

    def resolve_content_type(
        self,
        content_type_id: str,
        run: "BuildRun",
        space_id: Optional[str] = None,
        environment_id: Optional[str] = None,
    ) -> Optional["ContentType"]:
        """Find the content type an entry refers to, fetching it if needed."""
        link = Link(link_type=ResourceType.CONTENT_TYPE.value, id=content_type_id)
        resolved = self.resolve(link, run, space_id, environment_id)
        if isinstance(resolved, UnresolvableLink):
            return None
        return resolved

    def _fetch(
        self,
        link: Link,
        run: "BuildRun",
        space_id: Optional[str],
        environment_id: Optional[str],
        locale: Optional[str],
    ) -> Union[Resource, str]:
        """Fetch and build a missing link target; returns the reason string on failure."""
        fetcher = self.session.fetcher
        settings = self.session.settings
        if fetcher is None or not settings.resolve_deferred:
            return "not found"
        if run.depth >= settings.max_fetch_depth:
            return f"maximum fetch depth ({settings.max_fetch_depth}) reached"

        logger.debug(f"Fetching {link} (depth {run.depth})")
        future = self.session.submit(
            fetcher.fetch_resource,
            link.link_type,
            link.id,
            space_id,
            environment_id,
            locale,
        )
        try:
            raw = future.result(timeout=settings.fetch_timeout)
        except FetchTimeout:
            future.cancel()
            return f"fetch timed out after {settings.fetch_timeout}s"
        except Exception as exc:
            return f"fetch failed: {exc}"

        if raw is None:
            return "not found"
        try:
            resource = self.session.builder.build_fetched(raw, run)
        except ResourceBuildError as exc:
            return f"fetched payload is invalid: {exc.message}"

        if isinstance(resource, DeletedResource):
            return "deleted"
        if resource.type.value != link.link_type or resource.id != link.id:
            return f"fetch returned {resource.type.value}:{resource.id}"
        return resource

    def unresolvable(self, link: Link, reason: str, run: "BuildRun") -> UnresolvableLink:
        """Log and record an unresolvable link, returning its marker."""
        logger.warning(f"UnresolvableLink: {link} ({reason})")
        run.issue(
            IssueCode.UNRESOLVABLE_LINK,
            f"Link to {link} could not be resolved: {reason}",
            resource_type=link.link_type,
            resource_id=link.id,
        )
        return UnresolvableLink(link=link, reason=reason)
