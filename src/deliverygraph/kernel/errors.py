"""Exceptions raised while building resources from raw payloads."""

from typing import Optional


class ResourceBuildError(ValueError):
    """Base exception for resource build failures.

    Fatal to the single resource being built, never to a batch.
    """

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None):
        self.message = message
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class MalformedPayload(ResourceBuildError):
    """Raised when a payload is not a JSON object or carries an invalid 'sys' block or body."""


class UnknownResourceType(MalformedPayload):
    """Raised when 'sys.type' names a resource kind this builder does not know."""

    def __init__(self, type_tag: str, resource_id: Optional[str] = None):
        self.type_tag = type_tag
        super().__init__(
            f"Unknown resource type '{type_tag}'",
            resource_type=type_tag,
            resource_id=resource_id,
        )
