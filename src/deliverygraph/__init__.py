"""deliverygraph: typed resource graphs from headless-CMS delivery payloads."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("deliverygraph")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from deliverygraph.api import build, build_collection, load_content_type, dump_content_type
from deliverygraph.codes import IssueCode
from deliverygraph.contracts import BuildIssue, FieldCoercionWarning
from deliverygraph.kernel.builder import BuildFailure, CollectionResult, ResourceBuilder
from deliverygraph.kernel.content_type import ContentType
from deliverygraph.kernel.errors import MalformedPayload, ResourceBuildError, UnknownResourceType
from deliverygraph.kernel.fields import FieldDefinition, FieldType
from deliverygraph.kernel.identity_map import IdentityMap, ResourceKey
from deliverygraph.kernel.links import Link, UnresolvableLink
from deliverygraph.kernel.resources import (
    Asset,
    DeletedAsset,
    DeletedEntry,
    Entry,
    Environment,
    Locale,
    Resource,
    Space,
)
from deliverygraph.kernel.session import BuildSession, MappingFetcher, ResourceFetcher
from deliverygraph.kernel.system_properties import ResourceType, SystemProperties

__all__ = [
    "__version__",
    "build",
    "build_collection",
    "load_content_type",
    "dump_content_type",
    "IssueCode",
    "BuildIssue",
    "FieldCoercionWarning",
    "BuildFailure",
    "CollectionResult",
    "ResourceBuilder",
    "ContentType",
    "MalformedPayload",
    "ResourceBuildError",
    "UnknownResourceType",
    "FieldDefinition",
    "FieldType",
    "IdentityMap",
    "ResourceKey",
    "Link",
    "UnresolvableLink",
    "Asset",
    "DeletedAsset",
    "DeletedEntry",
    "Entry",
    "Environment",
    "Locale",
    "Resource",
    "Space",
    "BuildSession",
    "MappingFetcher",
    "ResourceFetcher",
    "ResourceType",
    "SystemProperties",
]
