"""
Schema models for the per-project session cache.

Pydantic models for the document stored in project.cache: project metadata
plus a bounded, chronological history of past work sessions.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

# Rotation keeps only this many sessions; session_count keeps counting.
MAX_SESSION_HISTORY = 10


def _require_utf8(value: str) -> str:
    """Reject strings that cannot be written as UTF-8 (e.g. surrogate escapes)."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValueError(f"text is not valid UTF-8: {value!r}") from e
    return value


class BuildStatus(str, Enum):
    """Last known build state of the project."""

    UNKNOWN = "unknown"
    BUILDING = "building"
    PASSING = "passing"
    FAILING = "failing"


class SessionEntry(BaseModel):
    """
    One past work session.

    Immutable once created. An empty summary is rejected unless the
    validation context carries ``allow_empty_summary``; use ``create`` to
    pass that flag.
    """

    timestamp: datetime = Field(alias="datetime")
    task: str
    summary: str

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "extra": "forbid",
    }

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("task")
    @classmethod
    def _task_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("task must not be empty")
        return value

    @field_validator("summary")
    @classmethod
    def _summary_required(cls, value: str, info: ValidationInfo) -> str:
        allow_empty = bool(info.context and info.context.get("allow_empty_summary"))
        if not value.strip() and not allow_empty:
            raise ValueError("summary must not be empty")
        return value

    @field_validator("task", "summary")
    @classmethod
    def _encodable(cls, value: str) -> str:
        return _require_utf8(value)

    @classmethod
    def create(
        cls,
        task: str,
        summary: str,
        *,
        when: datetime | None = None,
        allow_empty_summary: bool = False,
    ) -> "SessionEntry":
        """
        Build a validated entry.

        Args:
            task: Short description of what the session worked on
            summary: Session summary text, produced elsewhere
            when: Session time (default: now, UTC)
            allow_empty_summary: Accept an empty summary

        Returns:
            New SessionEntry

        Raises:
            pydantic.ValidationError: If task is blank, or summary is blank
                and not allowed
        """
        return cls.model_validate(
            {
                "datetime": when or datetime.now(timezone.utc),
                "task": task,
                "summary": summary,
            },
            context={"allow_empty_summary": allow_empty_summary},
        )


class ProjectMetadata(BaseModel):
    """Structured project information produced by a metadata gatherer."""

    name: str | None = None
    version: str | None = None
    repository: str | None = None
    license: str | None = None
    build_status: BuildStatus = BuildStatus.UNKNOWN


class ProjectCache(BaseModel):
    """
    The persisted cache document for one project.

    session_history is chronological and holds at most MAX_SESSION_HISTORY
    entries. session_count counts every appended session over the cache's
    lifetime and is never reduced by rotation.
    """

    project_name: str | None = None
    version: str | None = None
    repository: str | None = None
    license: str | None = None
    build_status: BuildStatus = BuildStatus.UNKNOWN
    doc_index: list[str] = Field(default_factory=list)
    session_history: list[SessionEntry] = Field(default_factory=list)
    session_count: int = Field(default=0, ge=0)

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
    }

    @field_validator("project_name", "version", "repository", "license")
    @classmethod
    def _encodable_text(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return _require_utf8(value)

    @field_validator("doc_index")
    @classmethod
    def _encodable_paths(cls, value: list[str]) -> list[str]:
        for path in value:
            _require_utf8(path)
        return value

    @model_validator(mode="after")
    def _check_history(self) -> "ProjectCache":
        history = self.session_history
        if len(history) > MAX_SESSION_HISTORY:
            raise ValueError(
                f"session_history holds {len(history)} entries, limit is {MAX_SESSION_HISTORY}"
            )
        for previous, current in zip(history, history[1:]):
            if current.timestamp < previous.timestamp:
                raise ValueError("session_history timestamps must be non-decreasing")
        if self.session_count < len(history):
            raise ValueError("session_count is smaller than session_history length")
        return self

    @classmethod
    def fresh(
        cls,
        metadata: ProjectMetadata | None = None,
        doc_index: Iterable[str] | None = None,
    ) -> "ProjectCache":
        """Create an empty cache, optionally seeded with project metadata."""
        cache = cls()
        if metadata is not None or doc_index is not None:
            cache.apply_metadata(metadata, doc_index)
        return cache

    @property
    def last_session(self) -> SessionEntry | None:
        """Most recent session, if any."""
        if not self.session_history:
            return None
        return self.session_history[-1]

    def append_session(self, entry: SessionEntry) -> None:
        """
        Append a session and rotate the history.

        Increments session_count, then evicts the oldest entries until the
        history is back at MAX_SESSION_HISTORY. No I/O; persist with
        CacheStore.save.

        Raises:
            ValueError: If entry is older than the newest stored session
        """
        last = self.last_session
        if last is not None and entry.timestamp < last.timestamp:
            raise ValueError(
                f"session at {entry.timestamp.isoformat()} is older than "
                f"last recorded session at {last.timestamp.isoformat()}"
            )

        # Count first so every validated assignment keeps count >= length
        self.session_count += 1
        self.session_history = [*self.session_history, entry][-MAX_SESSION_HISTORY:]

    def apply_metadata(
        self,
        metadata: ProjectMetadata | None = None,
        doc_index: Iterable[str] | None = None,
    ) -> None:
        """
        Copy gathered project metadata and documentation index onto the cache.

        Fields the gatherer could not determine (None, or an unknown build
        status) keep their cached values.

        Raises:
            pydantic.ValidationError: If a value is not valid UTF-8 text
        """
        if metadata is not None:
            if metadata.name is not None:
                self.project_name = metadata.name
            if metadata.version is not None:
                self.version = metadata.version
            if metadata.repository is not None:
                self.repository = metadata.repository
            if metadata.license is not None:
                self.license = metadata.license
            if metadata.build_status is not BuildStatus.UNKNOWN:
                self.build_status = metadata.build_status
        if doc_index is not None:
            self.doc_index = sorted(set(doc_index))


__all__ = [
    "MAX_SESSION_HISTORY",
    "BuildStatus",
    "SessionEntry",
    "ProjectMetadata",
    "ProjectCache",
]
