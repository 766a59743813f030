"""Typed resources built from 'sys'-tagged raw documents."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from deliverygraph.contracts import FieldCoercionWarning
from .system_properties import ResourceType, SystemProperties

if TYPE_CHECKING:
    from .content_type import ContentType
    from .session import BuildSession


_MISSING = object()


class Resource:
    """Base for every typed resource.

    Holds the immutable SystemProperties and a back-reference to the owning
    session, used to look up weakly referenced resources (space, environment)
    through the identity map.
    """

    resource_type: ResourceType

    def __init__(self, sys: SystemProperties, session: Optional["BuildSession"] = None):
        if sys.type != self.resource_type:
            raise ValueError(
                f"{type(self).__name__} requires sys.type '{self.resource_type.value}', got '{sys.type.value}'"
            )
        self.sys = sys
        self._session = session

    @property
    def id(self) -> str:
        return self.sys.id

    @property
    def type(self) -> ResourceType:
        return self.sys.type

    @property
    def revision(self) -> Optional[int]:
        return self.sys.revision

    @property
    def created_at(self) -> Optional[datetime]:
        return self.sys.created_at

    @property
    def updated_at(self) -> Optional[datetime]:
        return self.sys.updated_at

    @property
    def space(self) -> Optional["Space"]:
        """The owning space, if it has been built in this session."""
        if self._session is None or self.sys.space_id is None:
            return None
        key = self._session.link_key(ResourceType.SPACE, self.sys.space_id)
        return self._session.identity_map.get(key)

    @property
    def environment(self) -> Optional["Environment"]:
        """The owning environment, if it has been built in this session."""
        if self._session is None or self.sys.environment_id is None:
            return None
        key = self._session.link_key(ResourceType.ENVIRONMENT, self.sys.environment_id, space_id=self.sys.space_id)
        return self._session.identity_map.get(key)

    def _adopt(self, other: "Resource") -> None:
        """Replace this instance's whole state with another instance's.

        Identity is kept, so every resource linking here sees the new state.
        """
        if type(other) is not type(self):
            raise TypeError(f"cannot adopt {type(other).__name__} state into {type(self).__name__}")
        self.__dict__.clear()
        self.__dict__.update(other.__dict__)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} revision={self.revision!r}>"


class FieldedResource(Resource):
    """Shared field storage for entries and assets: field id -> locale -> value."""

    def __init__(
        self,
        sys: SystemProperties,
        session: Optional["BuildSession"] = None,
        values: Optional[Dict[str, Dict[str, Any]]] = None,
        coercion_warnings: Optional[List[FieldCoercionWarning]] = None,
    ):
        super().__init__(sys, session)
        self._values: Dict[str, Dict[str, Any]] = values or {}
        self.coercion_warnings: List[FieldCoercionWarning] = list(coercion_warnings or [])

    @property
    def locale(self) -> Optional[str]:
        """Locale the payload was fetched for, or None for all-locale payloads."""
        return self.sys.locale

    def _locale_chain(self, locale: Optional[str]) -> List[str]:
        requested = locale or self.sys.locale
        if self._session is not None:
            return self._session.locale_chain(requested)
        return [requested] if requested else []

    def get(self, field_id: str, locale: Optional[str] = None, default: Any = None) -> Any:
        """Get a field value, following the locale fallback chain.

        Returns default when the field has no value in any locale of the chain.
        """
        values = self._values.get(field_id)
        if not values:
            return default
        chain = self._locale_chain(locale)
        if not chain:
            return next(iter(values.values()))
        for code in chain:
            if code in values:
                return values[code]
        return default

    def get_localized(self, field_id: str) -> Dict[str, Any]:
        """All values of a field keyed by locale code."""
        return dict(self._values.get(field_id, {}))

    def fields(self, locale: Optional[str] = None) -> Dict[str, Any]:
        """Field values for one locale, in payload order."""
        result = {}
        for field_id in self._values:
            value = self.get(field_id, locale, default=_MISSING)
            if value is not _MISSING:
                result[field_id] = value
        return result

    def _replace_values(self, replace: Callable[[Any], Any]) -> None:
        """Pass every stored value through replace, in place."""
        for localized in self._values.values():
            for locale, value in localized.items():
                localized[locale] = replace(value)

    def field_ids(self) -> List[str]:
        return list(self._values)

    def __getitem__(self, field_id: str) -> Any:
        value = self.get(field_id, default=_MISSING)
        if value is _MISSING:
            raise KeyError(field_id)
        return value

    def __contains__(self, field_id: str) -> bool:
        return field_id in self._values


class Entry(FieldedResource):
    """A content entry whose fields follow its content type."""

    resource_type = ResourceType.ENTRY

    def __init__(
        self,
        sys: SystemProperties,
        session: Optional["BuildSession"] = None,
        content_type: Optional["ContentType"] = None,
        values: Optional[Dict[str, Dict[str, Any]]] = None,
        coercion_warnings: Optional[List[FieldCoercionWarning]] = None,
    ):
        super().__init__(sys, session, values, coercion_warnings)
        self.content_type = content_type


class Asset(FieldedResource):
    """A media asset: title, description and file metadata."""

    resource_type = ResourceType.ASSET

    @property
    def title(self) -> Optional[str]:
        return self.get("title")

    @property
    def description(self) -> Optional[str]:
        return self.get("description")

    @property
    def file(self) -> Optional[Dict[str, Any]]:
        return self.get("file")

    @property
    def url(self) -> Optional[str]:
        file = self.file
        if isinstance(file, dict):
            return file.get("url")
        return None


class LocaleInfo(BaseModel):
    """A locale as listed inside a space payload."""
    code: str
    name: Optional[str] = None
    fallback_code: Optional[str] = Field(None, alias="fallbackCode")
    default: bool = False

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class Space(Resource):
    resource_type = ResourceType.SPACE

    def __init__(
        self,
        sys: SystemProperties,
        session: Optional["BuildSession"] = None,
        name: Optional[str] = None,
        locales: Optional[List[LocaleInfo]] = None,
    ):
        super().__init__(sys, session)
        self.name = name
        self.locales: List[LocaleInfo] = list(locales or [])

    @property
    def default_locale(self) -> Optional[LocaleInfo]:
        for locale in self.locales:
            if locale.default:
                return locale
        return None


class Environment(Resource):
    resource_type = ResourceType.ENVIRONMENT

    def __init__(self, sys: SystemProperties, session: Optional["BuildSession"] = None, name: Optional[str] = None):
        super().__init__(sys, session)
        self.name = name


class Locale(Resource):
    resource_type = ResourceType.LOCALE

    def __init__(
        self,
        sys: SystemProperties,
        session: Optional["BuildSession"] = None,
        code: Optional[str] = None,
        name: Optional[str] = None,
        fallback_code: Optional[str] = None,
        default: bool = False,
    ):
        super().__init__(sys, session)
        self.code = code
        self.name = name
        self.fallback_code = fallback_code
        self.default = default


class DeletedResource(Resource):
    """Deletion marker; links to its id resolve to UnresolvableLink."""

    @property
    def deleted_at(self) -> Optional[datetime]:
        return self.sys.deleted_at


class DeletedEntry(DeletedResource):
    resource_type = ResourceType.DELETED_ENTRY


class DeletedAsset(DeletedResource):
    resource_type = ResourceType.DELETED_ASSET
