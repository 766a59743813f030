"""Content types: named schemas that define the fields of entries."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

from .fields import FieldDefinition
from .resources import Resource
from .system_properties import ResourceType, SystemProperties

if TYPE_CHECKING:
    from .session import BuildSession


class ContentType(Resource):
    """Content types are schemas that define the fields of entries.

    Every entry can only contain values in the fields defined by its content
    type, and the values of those fields must match the declared data type.
    Fields are kept in insertion order, which is the default display order.
    """

    resource_type = ResourceType.CONTENT_TYPE

    def __init__(
        self,
        sys: SystemProperties,
        name: str = "",
        description: Optional[str] = None,
        fields: Iterable[FieldDefinition] = (),
        display_field: Optional[str] = None,
        session: Optional["BuildSession"] = None,
    ):
        super().__init__(sys, session)
        self.name = name
        self.description = description
        self._lock = threading.Lock()
        # Replaced, never mutated in place, so readers can iterate without the lock
        self._fields: Dict[str, FieldDefinition] = {}
        for field in fields:
            # Later duplicates overwrite earlier ones
            self._fields[field.id] = field
        self.display_field = display_field
        if display_field is not None and display_field not in self._fields:
            # Tolerate schemas whose display field is not (yet) declared
            self.add_unknown_field(display_field)

    def get_fields(self) -> Dict[str, FieldDefinition]:
        """All fields keyed by id, in schema order."""
        return dict(self._fields)

    def get_field(self, field_id: str) -> Optional[FieldDefinition]:
        """Return the field for the passed id, or None if it does not exist."""
        return self._fields.get(field_id)

    def get_display_field(self) -> Optional[FieldDefinition]:
        """Return the display field (commonly the title), or None if none is set."""
        if self.display_field is None:
            return None
        return self.get_field(self.display_field)

    def add_unknown_field(self, name: str) -> FieldDefinition:
        """Register a runtime field of type Unknown and return it."""
        with self._lock:
            field = FieldDefinition.unknown(name)
            fields = dict(self._fields)
            fields[name] = field
            self._fields = fields
            return field

    def to_json(self) -> Dict[str, Any]:
        """Serialize to the API shape: {name, description, displayField, sys, fields}."""
        return {
            "name": self.name,
            "description": self.description,
            "displayField": self.display_field,
            "sys": self.sys.to_json(),
            "fields": [field.to_json() for field in self._fields.values()],
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any], session: Optional["BuildSession"] = None) -> "ContentType":
        """Re-hydrate a content type from its serialized form (pure, no I/O).

        Raises:
            pydantic.ValidationError: If 'sys' or a field definition is invalid
            ValueError: If the document shape is wrong
        """
        if not isinstance(data, dict):
            raise ValueError("content type payload must be a JSON object")
        raw_fields = data.get("fields") or []
        if not isinstance(raw_fields, list):
            raise ValueError("content type 'fields' must be a list")
        name = data.get("name")
        description = data.get("description")
        display_field = data.get("displayField")
        if name is not None and not isinstance(name, str):
            raise ValueError("content type 'name' must be a string")
        if description is not None and not isinstance(description, str):
            raise ValueError("content type 'description' must be a string")
        if display_field is not None and not isinstance(display_field, str):
            raise ValueError("content type 'displayField' must be a string")
        sys = SystemProperties.model_validate(data.get("sys"))
        return cls(
            sys,
            name=name if name is not None else sys.id,
            description=description,
            fields=[FieldDefinition.model_validate(raw) for raw in raw_fields],
            display_field=display_field,
            session=session,
        )

    @classmethod
    def placeholder(cls, content_type_id: str, session: Optional["BuildSession"] = None) -> "ContentType":
        """An empty schema standing in for a content type that is not available."""
        sys = SystemProperties(id=content_type_id, type=ResourceType.CONTENT_TYPE)
        return cls(sys, name=content_type_id, session=session)

    def __contains__(self, field_id: str) -> bool:
        return field_id in self._fields
