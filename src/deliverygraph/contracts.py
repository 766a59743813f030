"""Public issue models attached to build results."""

from typing import Optional
from pydantic import BaseModel, ConfigDict

from deliverygraph.codes import IssueCode


class FieldCoercionWarning(BaseModel):
    """A field value that could not be converted to its declared type, or failed a validation rule."""
    code: IssueCode = IssueCode.FIELD_COERCION  # FIELD_COERCION | VALIDATION_FAILED
    field_id: str
    locale: Optional[str] = None
    expected_type: str  # Field type tag from the content type, e.g. "Integer"
    actual_type: str  # Python type name of the raw value, e.g. "str"
    message: str

    model_config = ConfigDict(frozen=True)


class BuildIssue(BaseModel):
    """A non-fatal finding recorded while building a resource graph."""
    code: IssueCode
    message: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    field_id: Optional[str] = None
    locale: Optional[str] = None

    model_config = ConfigDict(frozen=True)
