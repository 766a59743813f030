"""Link descriptors embedded in raw entry and asset data."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Link(BaseModel):
    """A reference to another resource, carrying only its type and id.

    Links are transient: the resolver replaces them with the concrete
    resource, or with an UnresolvableLink marker.
    """
    link_type: str = Field(..., alias="linkType")  # Entry, Asset, ContentType, Space, Environment, ...
    id: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    @classmethod
    def from_raw(cls, value: Any) -> Optional["Link"]:
        """Parse a link-shaped dict ({"sys": {"type": "Link", ...}}), or return None."""
        if not isinstance(value, dict):
            return None
        sys = value.get("sys")
        if not isinstance(sys, dict) or sys.get("type") != "Link":
            return None
        link_type = sys.get("linkType")
        link_id = sys.get("id")
        if not isinstance(link_type, str) or not isinstance(link_id, str) or not link_id:
            return None
        return cls(link_type=link_type, id=link_id)

    def to_json(self) -> dict:
        return {"sys": {"id": self.id, "type": "Link", "linkType": self.link_type}}

    def __str__(self) -> str:
        return f"{self.link_type}:{self.id}"


def is_link(value: Any) -> bool:
    """Check whether a raw value is a link-shaped dict."""
    return Link.from_raw(value) is not None


class UnresolvableLink(BaseModel):
    """Placeholder left in a field whose link could not be resolved.

    Distinct from None so callers can tell an empty field from a broken reference.
    """
    link: Link
    reason: str  # "deleted", "not found", "fetch timed out", ...

    model_config = ConfigDict(frozen=True)

    @property
    def id(self) -> str:
        return self.link.id

    @property
    def link_type(self) -> str:
        return self.link.link_type
