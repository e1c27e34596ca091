"""ProjectCache serialization to the on-disk JSON format."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from .cache_schema import ProjectCache
from .exceptions import InvalidCacheError, MalformedCacheError, UnsupportedVersionError

SCHEMA_VERSION = 1
SUPPORTED_SCHEMA_VERSIONS = frozenset({1})
VERSION_KEY = "schema_version"


def encode(cache: ProjectCache) -> bytes:
    """
    Serialize a ProjectCache to bytes.

    Format: UTF-8 JSON, sorted keys, ISO 8601 timestamps, tagged with
    schema_version. The same cache always encodes to the same bytes.

    The dumped document is validated exactly as decode will read it, so a
    cache whose history or counters were mutated into an invalid state is
    refused instead of being written as an unreadable file.

    Raises:
        InvalidCacheError: If the cache breaks a schema invariant or holds
            text that is not valid UTF-8
    """
    try:
        document = cache.model_dump(mode="json", by_alias=True)
        ProjectCache.model_validate(document, context={"allow_empty_summary": True})
        document[VERSION_KEY] = SCHEMA_VERSION
        text = json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False)
        return (text + "\n").encode("utf-8")
    except (ValidationError, PydanticSerializationError, UnicodeEncodeError) as e:
        raise InvalidCacheError(f"cache cannot be encoded: {e}") from e


def decode(data: bytes | str, path: Path | None = None) -> ProjectCache:
    """
    Deserialize bytes back to a ProjectCache.

    Inverse of encode. Documents without a schema_version tag are read as
    version 1. A history over the capacity limit is rejected, not truncated.

    Args:
        data: Raw file contents
        path: Source file, used only in error messages

    Raises:
        MalformedCacheError: Truncated, non-JSON, or schema-invalid input
        UnsupportedVersionError: schema_version present but not supported
    """
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedCacheError(f"not valid UTF-8: {e}", path=path) from e
    else:
        text = data

    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedCacheError(f"invalid JSON: {e}", path=path) from e
    except RecursionError as e:
        raise MalformedCacheError("JSON nested too deeply", path=path) from e

    if not isinstance(document, dict):
        raise MalformedCacheError(
            f"expected a JSON object, got {type(document).__name__}", path=path
        )

    version = document.pop(VERSION_KEY, SCHEMA_VERSION)
    # bool is an int subclass
    if isinstance(version, bool) or not isinstance(version, int):
        raise MalformedCacheError(f"invalid {VERSION_KEY}: {version!r}", path=path)
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        raise UnsupportedVersionError(version, path=path)

    try:
        # Entries on disk were validated when created
        return ProjectCache.model_validate(document, context={"allow_empty_summary": True})
    except (ValidationError, RecursionError) as e:
        raise MalformedCacheError(f"schema validation failed: {e}", path=path) from e


__all__ = [
    "SCHEMA_VERSION",
    "SUPPORTED_SCHEMA_VERSIONS",
    "VERSION_KEY",
    "encode",
    "decode",
]
