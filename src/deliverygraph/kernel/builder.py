"""Resource graph builder: raw JSON documents to a typed, linked resource graph.

Building runs in two phases. Phase 1 validates the 'sys' block of every
document in the batch and registers a placeholder instance in the identity
map. Phase 2 builds each resource's state (coercing fields and resolving
links) and moves it into the registered instance. Because every resource is
registered before any link is resolved, forward references and cycles
resolve to the same canonical instances regardless of document order.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Set, Tuple, Type, Union

from loguru import logger
from pydantic import ValidationError

from deliverygraph.codes import IssueCode
from deliverygraph.contracts import BuildIssue, FieldCoercionWarning
from .coercion import apply_validations, coerce_value
from .content_type import ContentType
from .errors import MalformedPayload, ResourceBuildError, UnknownResourceType
from .fields import FieldDefinition, FieldType
from .identity_map import ResourceKey
from .links import Link
from .resolver import LinkResolver
from .resources import (
    Asset,
    DeletedAsset,
    DeletedEntry,
    Entry,
    Environment,
    FieldedResource,
    Locale,
    LocaleInfo,
    Resource,
    Space,
)
from .system_properties import ResourceType, SystemProperties

if TYPE_CHECKING:
    from .session import BuildSession


RESOURCE_CLASSES: Dict[str, Type[Resource]] = {
    ResourceType.CONTENT_TYPE.value: ContentType,
    ResourceType.ENTRY.value: Entry,
    ResourceType.ASSET.value: Asset,
    ResourceType.SPACE.value: Space,
    ResourceType.ENVIRONMENT.value: Environment,
    ResourceType.LOCALE.value: Locale,
    ResourceType.DELETED_ENTRY.value: DeletedEntry,
    ResourceType.DELETED_ASSET.value: DeletedAsset,
}

# Phase 2 order: schemas and locales before the entries that depend on them
_BUILD_ORDER = {
    ResourceType.SPACE: 0,
    ResourceType.ENVIRONMENT: 1,
    ResourceType.LOCALE: 2,
    ResourceType.CONTENT_TYPE: 3,
    ResourceType.DELETED_ENTRY: 4,
    ResourceType.DELETED_ASSET: 4,
    ResourceType.ASSET: 5,
    ResourceType.ENTRY: 6,
}

_DELETION_MARKERS = {
    ResourceType.ENTRY.value: ResourceType.DELETED_ENTRY.value,
    ResourceType.ASSET.value: ResourceType.DELETED_ASSET.value,
}

# Field types whose plain values are JSON objects
_OBJECT_VALUED = {FieldType.LOCATION, FieldType.OBJECT, FieldType.RICH_TEXT}

_ASSET_FIELDS = (
    FieldDefinition(id="title", name="Title", type=FieldType.SYMBOL, localized=True),
    FieldDefinition(id="description", name="Description", type=FieldType.TEXT, localized=True),
    FieldDefinition(id="file", name="File", type=FieldType.OBJECT, localized=True),
)


def asset_schema() -> ContentType:
    """Fixed schema assets are coerced against (a fresh instance, since unknown fields get added to it)."""
    sys = SystemProperties(id="asset", type=ResourceType.CONTENT_TYPE)
    return ContentType(sys, name="Asset", fields=_ASSET_FIELDS, display_field="title")


@dataclass
class BuildFailure:
    """A document of a batch that could not be built, at its position in the input."""
    index: int
    error: ResourceBuildError
    raw: Any = None

    @property
    def code(self) -> IssueCode:
        if isinstance(self.error, UnknownResourceType):
            return IssueCode.UNKNOWN_RESOURCE_TYPE
        return IssueCode.MALFORMED_PAYLOAD


@dataclass
class CollectionResult:
    """Result of building a batch: resources and failures in input order."""
    items: List[Union[Resource, BuildFailure]]
    issues: List[BuildIssue] = field(default_factory=list)

    @property
    def resources(self) -> List[Resource]:
        return [item for item in self.items if not isinstance(item, BuildFailure)]

    @property
    def failures(self) -> List[BuildFailure]:
        return [item for item in self.items if isinstance(item, BuildFailure)]

    @property
    def ok(self) -> bool:
        return not self.failures

    def __iter__(self) -> Iterator[Union[Resource, BuildFailure]]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class BuildRun:
    """State of one build call, shared with the builds its link fetches trigger."""
    depth: int = 0
    issues: List[BuildIssue] = field(default_factory=list)
    not_resolvable: Set[Tuple[str, str]] = field(default_factory=set)  # (link type, id) reported by the server

    def child(self) -> "BuildRun":
        return BuildRun(depth=self.depth + 1, issues=self.issues, not_resolvable=self.not_resolvable)

    def issue(self, code: IssueCode, message: str, **context: Any) -> None:
        self.issues.append(BuildIssue(code=code, message=message, **context))


# Phase 1 outcomes for a registered document
_BUILD = "build"  # New identity: fill the registered placeholder
_UPDATE = "update"  # Newer revision: build, then let the cached instance adopt it
_KEEP = "keep"  # Same or older revision: return the cached instance unchanged


@dataclass
class _Pending:
    index: Optional[int]  # None for includes of an Array envelope
    raw: Dict[str, Any]
    sys: SystemProperties
    cls: Type[Resource]
    key: ResourceKey
    instance: Resource
    action: str
    failure: Optional[ResourceBuildError] = None


class ResourceBuilder:
    """Builds typed resources from raw delivery API documents.

    All resources are registered in the session identity map; building the
    same document twice returns the same instance.
    """

    def __init__(self, session: "BuildSession"):
        self.session = session
        self.resolver = LinkResolver(session)

    def build(self, raw: Any) -> Resource:
        """Build a single resource.

        Raises:
            MalformedPayload: If raw is not an object or its 'sys' block or body is invalid
            UnknownResourceType: If 'sys.type' is not a known resource kind
        """
        result = self._build_batch([raw], [], BuildRun())
        item = result.items[0]
        if isinstance(item, BuildFailure):
            raise item.error
        return item

    def build_json(self, data: Union[str, bytes]) -> Resource:
        """Build a single resource from JSON text."""
        return self.build(_loads(data))

    def build_collection(self, raw: Any) -> CollectionResult:
        """Build a batch of resources.

        Accepts a list of documents or an Array envelope ({"sys": {"type": "Array"},
        "items": [...], "includes": {...}, "errors": [...]}). Included documents
        are registered and available as link targets but not returned.
        Per-document failures are returned in place, never raised.

        Raises:
            MalformedPayload: If raw is neither a list nor an Array envelope
        """
        run = BuildRun()
        items, includes = self._unpack(raw, run)
        return self._build_batch(items, includes, run)

    def build_fetched(self, raw: Any, run: BuildRun) -> Resource:
        """Build a document returned by a deferred fetch, one level deeper than run."""
        result = self._build_batch([raw], [], run.child())
        item = result.items[0]
        if isinstance(item, BuildFailure):
            raise item.error
        return item

    def _unpack(self, raw: Any, run: BuildRun) -> Tuple[List[Any], List[Any]]:
        if isinstance(raw, (list, tuple)):
            return list(raw), []
        if not isinstance(raw, dict):
            raise MalformedPayload("collection payload must be a list or an Array envelope")
        sys = raw.get("sys")
        if not isinstance(sys, dict) or sys.get("type") != "Array":
            raise MalformedPayload("collection payload must be a list or an Array envelope")
        items = raw.get("items", [])
        if not isinstance(items, list):
            raise MalformedPayload("Array envelope 'items' must be a list")

        includes: List[Any] = []
        raw_includes = raw.get("includes") or {}
        if isinstance(raw_includes, dict):
            for include_type in (ResourceType.ENTRY.value, ResourceType.ASSET.value):
                included = raw_includes.get(include_type) or []
                if isinstance(included, list):
                    includes.extend(included)

        for error in raw.get("errors") or []:
            if not isinstance(error, dict):
                continue
            error_sys = error.get("sys") or {}
            details = error.get("details") or {}
            if error_sys.get("id") == "notResolvable" and isinstance(details, dict):
                link_type, link_id = details.get("linkType"), details.get("id")
                if isinstance(link_type, str) and isinstance(link_id, str):
                    run.not_resolvable.add((link_type, link_id))
        return items, includes

    def _build_batch(self, items: List[Any], includes: List[Any], run: BuildRun) -> CollectionResult:
        issues_before = len(run.issues)
        slots: List[Union[_Pending, BuildFailure]] = []
        pending: List[_Pending] = []

        # Phase 1: validate and register everything before resolving any link
        for index, raw in enumerate(items):
            try:
                entry = self._register(index, raw, run)
            except ResourceBuildError as exc:
                self._record_failure(exc, run, index)
                slots.append(BuildFailure(index=index, error=exc, raw=raw))
                continue
            slots.append(entry)
            pending.append(entry)
        for raw in includes:
            try:
                pending.append(self._register(None, raw, run))
            except ResourceBuildError as exc:
                self._record_failure(exc, run, None)

        # Phase 2: build state in dependency order (stable within a kind)
        for entry in sorted(pending, key=lambda p: _BUILD_ORDER[p.sys.type]):
            if entry.action == _KEEP:
                continue
            try:
                built = self._construct(entry.cls, entry.sys, entry.raw, run)
            except ResourceBuildError as exc:
                entry.failure = exc
                if entry.action == _BUILD:
                    self.session.identity_map.discard(entry.key)
                self._record_failure(exc, run, entry.index)
                continue
            if entry.action == _BUILD:
                self.session.identity_map.complete(entry.key, built)
            else:
                self.session.identity_map.update(entry.key, built)
            self._after_build(entry.instance)

        self._unlink_failed(pending, run)

        result_items: List[Union[Resource, BuildFailure]] = []
        for slot in slots:
            if isinstance(slot, BuildFailure):
                result_items.append(slot)
            elif slot.failure is not None:
                result_items.append(BuildFailure(index=slot.index, error=slot.failure, raw=slot.raw))
            elif slot.action == _KEEP:
                result_items.append(self._settle(slot, run))
            else:
                result_items.append(slot.instance)
        return CollectionResult(items=result_items, issues=run.issues[issues_before:])

    def _unlink_failed(self, pending: List[_Pending], run: BuildRun) -> None:
        """Replace links to resources whose build failed in this batch with UnresolvableLink markers.

        Resources built earlier in phase 2 may already hold the registered
        (now discarded) instance of a document that failed later.
        """
        failed = {id(p.instance): p for p in pending if p.failure is not None and p.action == _BUILD}
        if not failed:
            return

        def replace(value: Any) -> Any:
            if isinstance(value, list):
                return [replace(item) for item in value]
            target = failed.get(id(value))
            if target is None or target.instance is not value:
                return value
            link = Link(link_type=target.sys.type.value, id=target.sys.id)
            return self.resolver.unresolvable(link, "build failed", run)

        for entry in pending:
            if entry.failure is None and entry.action != _KEEP and isinstance(entry.instance, FieldedResource):
                entry.instance._replace_values(replace)

    def _settle(self, slot: _Pending, run: BuildRun) -> Union[Resource, BuildFailure]:
        """Return the cached instance of a kept document once it is fully built.

        Top-level builds wait for another thread still building the same
        resource. Builds triggered by fetches do not wait: the instance may be
        in progress in the very batch that is waiting on the fetch.
        """
        identity_map = self.session.identity_map
        if run.depth == 0:
            identity_map.wait_until_built(slot.key)
        if identity_map.get(slot.key) is slot.instance:
            return slot.instance
        # The build it was waiting for failed: build this document itself
        item = self._build_batch([slot.raw], [], run).items[0]
        if isinstance(item, BuildFailure):
            return BuildFailure(index=slot.index, error=item.error, raw=slot.raw)
        return item

    def _record_failure(self, exc: ResourceBuildError, run: BuildRun, index: Optional[int]) -> None:
        position = f"item {index}" if index is not None else "include"
        logger.warning(f"Could not build {position}: {exc.message}")
        code = IssueCode.UNKNOWN_RESOURCE_TYPE if isinstance(exc, UnknownResourceType) else IssueCode.MALFORMED_PAYLOAD
        run.issue(code, exc.message, resource_type=exc.resource_type, resource_id=exc.resource_id)

    def _parse_sys(self, raw: Any) -> Tuple[SystemProperties, Type[Resource]]:
        """Validate the 'sys' block and select the resource class from 'sys.type'."""
        if not isinstance(raw, dict):
            raise MalformedPayload(f"resource payload must be a JSON object, got {type(raw).__name__}")
        sys = raw.get("sys")
        if not isinstance(sys, dict):
            raise MalformedPayload("resource payload has no 'sys' object")
        type_tag = sys.get("type")
        resource_id = sys.get("id")
        if not isinstance(type_tag, str) or not type_tag:
            raise MalformedPayload(
                "'sys.type' is missing", resource_id=resource_id if isinstance(resource_id, str) else None
            )
        if not isinstance(resource_id, str) or not resource_id:
            raise MalformedPayload("'sys.id' is missing", resource_type=type_tag)
        cls = RESOURCE_CLASSES.get(type_tag)
        if cls is None:
            raise UnknownResourceType(type_tag, resource_id)
        try:
            props = SystemProperties.model_validate(sys)
        except ValidationError as exc:
            raise MalformedPayload(
                f"invalid 'sys' block: {_summarize(exc)}", resource_type=type_tag, resource_id=resource_id
            ) from exc
        return props, cls

    def _register(self, index: Optional[int], raw: Any, run: BuildRun) -> _Pending:
        sys, cls = self._parse_sys(raw)
        key = self.session.key_for(sys)
        instance, created = self.session.identity_map.get_or_create(
            key, lambda: cls(sys, session=self.session), in_progress=True
        )
        if created:
            action = _BUILD
        else:
            incoming = sys.effective_revision
            cached = instance.sys.effective_revision
            if incoming > cached:
                action = _UPDATE
            else:
                action = _KEEP
                if incoming < cached:
                    logger.warning(f"StaleUpdateIgnored: {key} revision {incoming} is older than cached revision {cached}")
                    run.issue(
                        IssueCode.STALE_UPDATE_IGNORED,
                        f"Revision {incoming} is older than cached revision {cached}",
                        resource_type=sys.type.value,
                        resource_id=sys.id,
                    )
        return _Pending(index=index, raw=raw, sys=sys, cls=cls, key=key, instance=instance, action=action)

    def _construct(self, cls: Type[Resource], sys: SystemProperties, raw: Dict[str, Any], run: BuildRun) -> Resource:
        """Build the full state of a resource as a new, unregistered instance."""
        if cls is ContentType:
            try:
                return ContentType.from_json(raw, session=self.session)
            except ValidationError as exc:
                raise MalformedPayload(
                    f"invalid content type: {_summarize(exc)}", resource_type=sys.type.value, resource_id=sys.id
                ) from exc
            except ValueError as exc:
                raise MalformedPayload(str(exc), resource_type=sys.type.value, resource_id=sys.id) from exc
        if cls is Entry:
            return self._construct_entry(sys, raw, run)
        if cls is Asset:
            values, warnings = self._build_fields(asset_schema(), sys, raw, run)
            return Asset(sys, self.session, values=values, coercion_warnings=warnings)
        if cls is Space:
            locales = raw.get("locales") or []
            if not isinstance(locales, list):
                raise MalformedPayload("space 'locales' must be a list", resource_type=sys.type.value, resource_id=sys.id)
            try:
                infos = [LocaleInfo.model_validate(locale) for locale in locales]
            except ValidationError as exc:
                raise MalformedPayload(
                    f"invalid space locale: {_summarize(exc)}", resource_type=sys.type.value, resource_id=sys.id
                ) from exc
            return Space(sys, self.session, name=_optional_str(raw, "name", sys), locales=infos)
        if cls is Environment:
            return Environment(sys, self.session, name=_optional_str(raw, "name", sys))
        if cls is Locale:
            code = _optional_str(raw, "code", sys)
            if code is None:
                raise MalformedPayload("locale has no 'code'", resource_type=sys.type.value, resource_id=sys.id)
            return Locale(
                sys,
                self.session,
                code=code,
                name=_optional_str(raw, "name", sys),
                fallback_code=_optional_str(raw, "fallbackCode", sys),
                default=bool(raw.get("default", False)),
            )
        return cls(sys, session=self.session)

    def _construct_entry(self, sys: SystemProperties, raw: Dict[str, Any], run: BuildRun) -> Entry:
        content_type = None
        if sys.content_type_id is not None:
            content_type = self.resolver.resolve_content_type(
                sys.content_type_id, run, sys.space_id, sys.environment_id
            )
        if content_type is None:
            missing = sys.content_type_id or "(none)"
            logger.warning(f"Entry {sys.id}: content type {missing} is not available, fields degrade to Unknown")
            run.issue(
                IssueCode.MISSING_CONTENT_TYPE,
                f"Content type {missing} is not available",
                resource_type=sys.type.value,
                resource_id=sys.id,
            )
            content_type = ContentType.placeholder(sys.content_type_id or sys.id, session=self.session)
        values, warnings = self._build_fields(content_type, sys, raw, run)
        return Entry(sys, self.session, content_type=content_type, values=values, coercion_warnings=warnings)

    def _build_fields(
        self,
        schema: ContentType,
        sys: SystemProperties,
        raw: Dict[str, Any],
        run: BuildRun,
    ) -> Tuple[Dict[str, Dict[str, Any]], List[FieldCoercionWarning]]:
        """Coerce, validate and link-resolve every field value of an entry or asset.

        Single-locale payloads (sys.locale set) hold plain values; all-locale
        payloads hold {locale: value} maps. Plain values in an all-locale
        payload are taken to be in the default locale.
        """
        raw_fields = raw.get("fields") or {}
        if not isinstance(raw_fields, dict):
            raise MalformedPayload("'fields' must be a JSON object", resource_type=sys.type.value, resource_id=sys.id)

        values: Dict[str, Dict[str, Any]] = {}
        warnings: List[FieldCoercionWarning] = []
        for field_id, raw_value in raw_fields.items():
            field_def = schema.get_field(field_id)
            if field_def is None:
                field_def = schema.add_unknown_field(field_id)
                logger.debug(f"{sys.type.value} {sys.id}: field '{field_id}' is not in schema {schema.id}")
                run.issue(
                    IssueCode.UNKNOWN_FIELD,
                    f"Field '{field_id}' is not declared by content type {schema.id}",
                    resource_type=sys.type.value,
                    resource_id=sys.id,
                    field_id=field_id,
                )

            if sys.locale is not None:
                per_locale = {sys.locale: raw_value}
            elif self._is_locale_map(field_def, raw_value):
                per_locale = raw_value
            else:
                per_locale = {self.session.default_locale: raw_value}

            localized: Dict[str, Any] = {}
            for locale, value in per_locale.items():
                coerced, field_warnings = coerce_value(field_def, value, locale)
                field_warnings.extend(apply_validations(field_def, coerced, locale))
                for warning in field_warnings:
                    logger.warning(f"{sys.type.value} {sys.id}: field '{field_id}' [{locale}]: {warning.message}")
                    run.issue(
                        warning.code,
                        warning.message,
                        resource_type=sys.type.value,
                        resource_id=sys.id,
                        field_id=field_id,
                        locale=locale,
                    )
                warnings.extend(field_warnings)
                localized[locale] = self.resolver.resolve_value(
                    coerced, run, sys.space_id, sys.environment_id, sys.locale
                )
            values[field_id] = localized
        return values, warnings

    def _after_build(self, resource: Resource) -> None:
        """Feed locale information into the session fallback table; drop deletion markers of live resources."""
        if isinstance(resource, (Entry, Asset)):
            marker_type = _DELETION_MARKERS[resource.type.value]
            marker_key = self.session.link_key(
                marker_type, resource.id, resource.sys.space_id, resource.sys.environment_id
            )
            if self.session.identity_map.discard(marker_key) is not None:
                logger.debug(f"{resource.type.value} {resource.id} is live again, dropped {marker_type} marker")
        elif isinstance(resource, Locale) and resource.code is not None:
            self.session.register_locale(resource.code, resource.fallback_code, resource.default)
        elif isinstance(resource, Space):
            for info in resource.locales:
                self.session.register_locale(info.code, info.fallback_code, info.default)

    def _is_locale_map(self, field_def: FieldDefinition, value: Any) -> bool:
        """Whether a value of an all-locale payload is a {locale: value} map.

        Location, Object and RichText values are objects themselves; for those
        only a map keyed by known locale codes counts.
        """
        if not isinstance(value, dict) or _is_link_shaped(value):
            return False
        if field_def.type not in _OBJECT_VALUED:
            return True
        known = self.session.known_locales()
        return bool(value) and all(code in known for code in value)


def _is_link_shaped(value: Dict[str, Any]) -> bool:
    return Link.from_raw(value) is not None


def _optional_str(raw: Dict[str, Any], key: str, sys: SystemProperties) -> Optional[str]:
    value = raw.get(key)
    if value is not None and not isinstance(value, str):
        raise MalformedPayload(f"'{key}' must be a string", resource_type=sys.type.value, resource_id=sys.id)
    return value


def _summarize(exc: ValidationError) -> str:
    """One-line summary of a pydantic validation error."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "(root)"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


def _loads(data: Union[str, bytes]) -> Any:
    try:
        return json.loads(data)
    except (TypeError, ValueError) as exc:
        raise MalformedPayload(f"payload is not valid JSON: {exc}") from exc
