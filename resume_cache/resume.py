"""Open a project's cache, record sessions, and render resume context."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from .cache_schema import ProjectCache, SessionEntry
from .cache_store import CacheStore, LoadResult
from .config import CacheConfig
from .metadata import MetadataGatherer, ProjectFileGatherer

logger = logging.getLogger(__name__)


def open_project_cache(
    project_root: Path | str,
    config: CacheConfig | None = None,
    gatherer: MetadataGatherer | None = None,
) -> tuple[CacheStore, LoadResult]:
    """
    Load (or start) the cache for a project and refresh its metadata.

    The refreshed metadata lives only in memory until the next save.

    Args:
        project_root: Project directory
        config: Cache configuration (default: CacheConfig.load())
        gatherer: Metadata source (default: ProjectFileGatherer)

    Returns:
        (store, load result)
    """
    root = Path(project_root)
    gatherer = gatherer or ProjectFileGatherer()

    store = CacheStore.for_project(root, config)
    result = store.load_or_create()
    result.cache.apply_metadata(
        gatherer.gather_metadata(root),
        gatherer.gather_doc_index(root),
    )

    logger.debug(
        "Opened project cache for %s (source=%s, sessions=%d)",
        root,
        result.source.value,
        result.cache.session_count,
    )
    return store, result


def record_session(
    store: CacheStore,
    cache: ProjectCache,
    task: str,
    summary: str,
    *,
    when: datetime | None = None,
    allow_empty_summary: bool = False,
) -> SessionEntry:
    """
    Append a finished session to cache and persist it.

    The append is applied to a copy first; cache only changes once the save
    succeeds, so a failed save can be retried with the same arguments.

    Raises:
        CacheIOError: If the save fails; cache is left unchanged
    """
    entry = SessionEntry.create(
        task,
        summary,
        when=when,
        allow_empty_summary=allow_empty_summary,
    )
    candidate = cache.model_copy(deep=True)
    candidate.append_session(entry)
    store.save(candidate)

    cache.session_count = candidate.session_count
    cache.session_history = candidate.session_history
    return entry


def format_resume_context(cache: ProjectCache, limit: int = 3) -> str:
    """
    Short plain-text overview of a project's recent work.

    Newest sessions first, at most ``limit`` of them.
    """
    name = cache.project_name or "unnamed project"
    header = f"Project: {name}"
    if cache.version:
        header += f" {cache.version}"

    lines = [header]
    if cache.repository:
        lines.append(f"Repository: {cache.repository}")
    lines.append(f"Build: {cache.build_status.value}")
    lines.append(f"Sessions: {cache.session_count}")

    recent = list(reversed(cache.session_history))[: max(limit, 0)]
    if recent:
        lines.append("")
        lines.append("Recent sessions:")
        for entry in recent:
            when = entry.timestamp.strftime("%Y-%m-%d %H:%M")
            lines.append(f"- {when} {entry.task}")
            if entry.summary.strip():
                lines.append(f"  {entry.summary.strip()}")

    return "\n".join(lines)


__all__ = [
    "open_project_cache",
    "record_session",
    "format_resume_context",
]
