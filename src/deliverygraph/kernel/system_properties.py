"""System properties: the immutable 'sys' metadata block attached to every resource."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from .links import Link


class ResourceType(str, Enum):
    """Closed set of resource kinds selected by the 'sys.type' discriminator."""
    CONTENT_TYPE = "ContentType"
    ENTRY = "Entry"
    ASSET = "Asset"
    SPACE = "Space"
    ENVIRONMENT = "Environment"
    LOCALE = "Locale"
    DELETED_ENTRY = "DeletedEntry"
    DELETED_ASSET = "DeletedAsset"


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime (naive values are taken to be UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a timestamp the way the delivery API writes them: 2018-01-01T12:00:00.000Z."""
    value = as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"


_TIMESTAMP_KEYS = ("createdAt", "updatedAt", "deletedAt")


class SystemProperties(BaseModel):
    """Metadata record shared by all resources.

    Created once at parse time and never mutated: an update of the same
    resource id produces a new SystemProperties. Unknown 'sys' keys are kept
    so the block re-serializes without loss.
    Timestamps and key order are re-serialized as they arrived on the wire.
    """
    id: str = Field(..., min_length=1)
    type: ResourceType
    revision: Optional[int] = Field(None, ge=0)
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    deleted_at: Optional[datetime] = Field(None, alias="deletedAt")
    space: Optional[Link] = None  # Weak reference: id + lookup through the identity map
    environment: Optional[Link] = None
    content_type: Optional[Link] = Field(None, alias="contentType")  # Entries only
    locale: Optional[str] = None  # Set when the payload was fetched for a single locale

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    _wire_timestamps: Dict[str, str] = PrivateAttr(default_factory=dict)
    _wire_order: Tuple[str, ...] = PrivateAttr(default=())

    @model_validator(mode="wrap")
    @classmethod
    def keep_wire_form(cls, data, handler):
        """Remember the original timestamp strings and key order of a raw sys block."""
        props = handler(data)
        if isinstance(data, dict):
            props._wire_timestamps = {key: data[key] for key in _TIMESTAMP_KEYS if isinstance(data.get(key), str)}
            props._wire_order = tuple(key for key in data if isinstance(key, str))
        return props

    @field_validator("space", "environment", "content_type", mode="before")
    @classmethod
    def validate_link(cls, v):
        """Accept raw link objects ({"sys": {"type": "Link", ...}})."""
        if v is None or isinstance(v, Link):
            return v
        link = Link.from_raw(v)
        if link is None:
            raise ValueError("expected a link object ({'sys': {'type': 'Link', 'linkType': ..., 'id': ...}})")
        return link

    @model_validator(mode="after")
    def validate_timestamps(self):
        """updatedAt may never precede createdAt."""
        if self.created_at is not None and self.updated_at is not None:
            if as_utc(self.updated_at) < as_utc(self.created_at):
                raise ValueError(
                    f"updatedAt ({format_timestamp(self.updated_at)}) precedes "
                    f"createdAt ({format_timestamp(self.created_at)})"
                )
        return self

    @property
    def effective_revision(self) -> int:
        """Revision used for last-writer-wins ordering (missing revisions count as 0)."""
        return self.revision if self.revision is not None else 0

    @property
    def space_id(self) -> Optional[str]:
        return self.space.id if self.space is not None else None

    @property
    def environment_id(self) -> Optional[str]:
        return self.environment.id if self.environment is not None else None

    @property
    def content_type_id(self) -> Optional[str]:
        return self.content_type.id if self.content_type is not None else None

    def to_json(self) -> dict:
        """Serialize to the wire shape of the 'sys' block, omitting absent values."""
        data = {"id": self.id, "type": self.type.value}
        if self.revision is not None:
            data["revision"] = self.revision
        if self.created_at is not None:
            data["createdAt"] = self._timestamp("createdAt", self.created_at)
        if self.updated_at is not None:
            data["updatedAt"] = self._timestamp("updatedAt", self.updated_at)
        if self.deleted_at is not None:
            data["deletedAt"] = self._timestamp("deletedAt", self.deleted_at)
        if self.space is not None:
            data["space"] = self.space.to_json()
        if self.environment is not None:
            data["environment"] = self.environment.to_json()
        if self.content_type is not None:
            data["contentType"] = self.content_type.to_json()
        if self.locale is not None:
            data["locale"] = self.locale
        for key, value in (self.model_extra or {}).items():
            data[key] = value
        if not self._wire_order:
            return data
        ordered = {key: data[key] for key in self._wire_order if key in data}
        ordered.update(data)
        return ordered

    def _timestamp(self, key: str, value: datetime) -> str:
        return self._wire_timestamps.get(key) or format_timestamp(value)
