"""resume-cache: per-project session cache for resuming prior work.

Keeps project metadata and the last ten work sessions for each project,
with crash-safe saves and backup-based recovery.

Layout per project:
- project.cache: current document
- project.cache.bkp: previous good document
- project_<hash>.cache: legacy documents, read-only fallback
"""

__version__ = "0.1.0"

# Schema
from .cache_schema import (
    MAX_SESSION_HISTORY,
    BuildStatus,
    ProjectCache,
    ProjectMetadata,
    SessionEntry,
)

# Codec & Store
from .cache_codec import SCHEMA_VERSION, decode, encode
from .cache_store import CacheSource, CacheStore, LoadResult
from .exceptions import (
    CacheError,
    CacheIOError,
    DecodeError,
    InvalidCacheError,
    MalformedCacheError,
    UnsupportedVersionError,
)

# Config & Collaborators
from .config import CacheConfig, project_key
from .metadata import MetadataGatherer, ProjectFileGatherer, gather_doc_index, gather_metadata
from .resume import format_resume_context, open_project_cache, record_session

__all__ = [
    # Schema
    "MAX_SESSION_HISTORY",
    "BuildStatus",
    "ProjectCache",
    "ProjectMetadata",
    "SessionEntry",
    # Codec & Store
    "SCHEMA_VERSION",
    "encode",
    "decode",
    "CacheSource",
    "CacheStore",
    "LoadResult",
    "CacheError",
    "CacheIOError",
    "DecodeError",
    "InvalidCacheError",
    "MalformedCacheError",
    "UnsupportedVersionError",
    # Config & Collaborators
    "CacheConfig",
    "project_key",
    "MetadataGatherer",
    "ProjectFileGatherer",
    "gather_doc_index",
    "gather_metadata",
    "format_resume_context",
    "open_project_cache",
    "record_session",
]
