"""Issue code constants for non-fatal build findings.

These constants prevent stringly-typed issue codes and ensure
client code filters build issues with the correct values.
"""

from enum import Enum


class IssueCode(str, Enum):
    """Build failure and warning codes."""

    # Failures (fatal to a single resource, never to a batch)
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    UNKNOWN_RESOURCE_TYPE = "UNKNOWN_RESOURCE_TYPE"

    # Warnings (non-blocking)
    FIELD_COERCION = "FIELD_COERCION"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    UNKNOWN_FIELD = "UNKNOWN_FIELD"
    UNRESOLVABLE_LINK = "UNRESOLVABLE_LINK"
    STALE_UPDATE_IGNORED = "STALE_UPDATE_IGNORED"
    MISSING_CONTENT_TYPE = "MISSING_CONTENT_TYPE"
