"""Exceptions raised by the session cache."""

from __future__ import annotations

from pathlib import Path


class CacheError(Exception):
    """Base exception for resume-cache."""
    pass


class DecodeError(CacheError):
    """Cache bytes exist but cannot be interpreted."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class MalformedCacheError(DecodeError):
    """Truncated, unparseable, or schema-invalid cache document."""
    pass


class UnsupportedVersionError(DecodeError):
    """Cache document carries a schema version this release cannot read."""

    def __init__(self, version: int, path: Path | None = None):
        self.version = version
        super().__init__(f"unsupported schema version: {version}", path=path)


class InvalidCacheError(CacheError):
    """In-memory cache breaks a schema invariant and cannot be written."""
    pass


class CacheIOError(CacheError):
    """Filesystem operation on a cache file failed."""

    def __init__(self, operation: str, path: Path, reason: str = ""):
        self.operation = operation
        self.path = Path(path)
        message = f"{operation} failed for {self.path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


__all__ = [
    "CacheError",
    "DecodeError",
    "MalformedCacheError",
    "UnsupportedVersionError",
    "InvalidCacheError",
    "CacheIOError",
]
