"""Public API for deliverygraph.

High-level functions for callers that do not manage a BuildSession
themselves. Each call without an explicit session uses a fresh one, so
instances are only shared between calls that pass the same session.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from deliverygraph._internal.canonical_json import compute_fingerprint
from deliverygraph.kernel.builder import CollectionResult
from deliverygraph.kernel.content_type import ContentType
from deliverygraph.kernel.resources import Resource
from deliverygraph.kernel.session import BuildSession


def _normalize_path(path: Union[str, os.PathLike, Path]) -> Path:
    """Normalize path input to Path object."""
    return Path(path) if not isinstance(path, Path) else path


def _load_json_from_path(path: Path) -> Any:
    """Load a JSON document from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def build(raw: Dict[str, Any], session: Optional[BuildSession] = None) -> Resource:
    """Build one resource from a raw delivery API document.

    Raises:
        MalformedPayload: If the document or its 'sys' block is invalid
        UnknownResourceType: If 'sys.type' is not a known resource kind
    """
    session = session or BuildSession()
    return session.builder.build(raw)


def build_collection(raw: Union[list, Dict[str, Any]], session: Optional[BuildSession] = None) -> CollectionResult:
    """Build a list of documents or an Array envelope; failures are returned per item."""
    session = session or BuildSession()
    return session.builder.build_collection(raw)


def load_content_type(
    source: Union[Dict[str, Any], str, os.PathLike, Path],
    session: Optional[BuildSession] = None,
) -> ContentType:
    """Re-hydrate a cached content type from a dict or a JSON file path.

    The content type is registered in the session like any built resource.
    """
    data = source if isinstance(source, dict) else _load_json_from_path(_normalize_path(source))
    session = session or BuildSession()
    resource = session.builder.build(data)
    if not isinstance(resource, ContentType):
        raise TypeError(f"expected a ContentType document, got {resource.type.value}")
    return resource


def dump_content_type(content_type: ContentType) -> str:
    """Serialize a content type to JSON for caching, keeping field order."""
    return json.dumps(content_type.to_json(), ensure_ascii=False, separators=(",", ":"))


def content_type_fingerprint(content_type: ContentType) -> str:
    """Stable SHA256 fingerprint of a content type schema (prefixed with "sha256:")."""
    return compute_fingerprint(content_type.to_json())
