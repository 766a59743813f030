"""Field definitions: the per-field schema of a content type."""

from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FieldType(str, Enum):
    """Data type tags a field definition may declare."""
    SYMBOL = "Symbol"
    TEXT = "Text"
    RICH_TEXT = "RichText"  # Carried as an opaque document
    INTEGER = "Integer"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE = "Date"
    LOCATION = "Location"
    LINK = "Link"
    ARRAY = "Array"
    OBJECT = "Object"
    UNKNOWN = "Unknown"  # Synthesized for values the schema does not declare


LinkTargetType = Literal["Entry", "Asset"]


class FieldItems(BaseModel):
    """Item schema of an Array field."""
    type: FieldType
    link_type: Optional[LinkTargetType] = Field(None, alias="linkType")
    validations: Tuple[Dict[str, Any], ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @model_validator(mode="after")
    def validate_item_type(self):
        """Arrays hold scalars or links, never nested arrays."""
        if self.type == FieldType.ARRAY:
            raise ValueError("Array items cannot themselves be arrays")
        if self.link_type is not None and self.type != FieldType.LINK:
            raise ValueError(f"linkType is only allowed on Link items, got items of type {self.type.value}")
        return self

    def to_json(self) -> dict:
        data: Dict[str, Any] = {"type": self.type.value}
        if self.link_type is not None:
            data["linkType"] = self.link_type
        data["validations"] = [dict(rule) for rule in self.validations]
        return data


class FieldDefinition(BaseModel):
    """One schema field of a content type.

    Identified by id within its owning content type. Immutable after parsing.
    """
    id: str = Field(..., min_length=1)
    name: str
    type: FieldType
    link_type: Optional[LinkTargetType] = Field(None, alias="linkType")  # Link fields only
    items: Optional[FieldItems] = None  # Array fields only
    localized: bool = False
    required: bool = False
    validations: Tuple[Dict[str, Any], ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def default_name(cls, data: Any) -> Any:
        """A field without a display name is shown by its id."""
        if isinstance(data, dict) and data.get("name") is None and isinstance(data.get("id"), str):
            data = {**data, "name": data["id"]}
        return data

    @model_validator(mode="after")
    def validate_type_specific_keys(self):
        """linkType belongs to Link fields and items to Array fields."""
        if self.link_type is not None and self.type != FieldType.LINK:
            raise ValueError(f"Field '{self.id}': linkType is only allowed on Link fields")
        if self.items is not None and self.type != FieldType.ARRAY:
            raise ValueError(f"Field '{self.id}': items is only allowed on Array fields")
        return self

    @classmethod
    def unknown(cls, field_id: str) -> "FieldDefinition":
        """Synthesize a placeholder for a field id the schema does not declare."""
        return cls(id=field_id, name=field_id, type=FieldType.UNKNOWN)

    @property
    def link_target_type(self) -> Optional[str]:
        """Resource type a Link (or Array of Links) field points at."""
        if self.type == FieldType.LINK:
            return self.link_type
        if self.type == FieldType.ARRAY and self.items is not None and self.items.type == FieldType.LINK:
            return self.items.link_type
        return None

    def to_json(self) -> dict:
        """Serialize to {id, name, type, linkType?, items?, localized, required, validations}."""
        data: Dict[str, Any] = {"id": self.id, "name": self.name, "type": self.type.value}
        if self.link_type is not None:
            data["linkType"] = self.link_type
        if self.items is not None:
            data["items"] = self.items.to_json()
        data["localized"] = self.localized
        data["required"] = self.required
        data["validations"] = [dict(rule) for rule in self.validations]
        return data
