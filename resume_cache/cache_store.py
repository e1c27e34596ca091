"""
CacheStore - crash-safe persistence for a project's ProjectCache.

Each project directory holds:

    project.cache          current document (primary)
    project.cache.bkp      previous good document (backup)
    project_<hash>.cache   legacy documents, read-only

Loads walk primary -> backup -> legacy and return the first document that
decodes. Saves copy a decodable primary to the backup before replacing the
primary through a temp file and an atomic rename.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from .cache_codec import decode, encode
from .cache_schema import ProjectCache, ProjectMetadata
from .config import (
    DEFAULT_BACKUP_SUFFIX,
    DEFAULT_LEGACY_PATTERN,
    DEFAULT_PRIMARY_NAME,
    CacheConfig,
)
from .exceptions import CacheIOError, DecodeError

logger = logging.getLogger(__name__)


class CacheSource(str, Enum):
    """Where a loaded cache came from."""

    PRIMARY = "primary"
    BACKUP = "backup"
    LEGACY = "legacy"
    FRESH = "fresh"


@dataclass
class LoadResult:
    """A loaded (or freshly created) cache and its origin."""

    cache: ProjectCache
    source: CacheSource
    path: Path | None = None

    @property
    def recovered(self) -> bool:
        """True when the primary was unusable and a fallback served the load."""
        return self.source in (CacheSource.BACKUP, CacheSource.LEGACY)


class CacheStore:
    """
    Owns the primary, backup and legacy cache files of one project.

    Single writer: callers must not run two stores against the same
    directory concurrently.
    """

    def __init__(
        self,
        directory: Path | str,
        primary_name: str = DEFAULT_PRIMARY_NAME,
        backup_suffix: str = DEFAULT_BACKUP_SUFFIX,
        legacy_pattern: str = DEFAULT_LEGACY_PATTERN,
        fsync: bool = True,
    ):
        """
        Initialize cache store.

        Args:
            directory: Per-project cache directory (created on first save)
            primary_name: File name of the primary document
            backup_suffix: Suffix appended to primary_name for the backup
            legacy_pattern: Glob matching read-only legacy documents
            fsync: fsync written files before renaming them into place
        """
        self.directory = Path(directory)
        self.primary_name = primary_name
        self.backup_suffix = backup_suffix
        self.legacy_pattern = legacy_pattern
        self.fsync = fsync

    @classmethod
    def for_project(
        cls,
        project_root: Path | str,
        config: CacheConfig | None = None,
    ) -> "CacheStore":
        """Create the store for a project under the configured cache root."""
        config = config or CacheConfig.load()
        return cls(
            config.project_dir(project_root),
            primary_name=config.primary_name,
            backup_suffix=config.backup_suffix,
            legacy_pattern=config.legacy_pattern,
            fsync=config.fsync,
        )

    @property
    def primary_path(self) -> Path:
        return self.directory / self.primary_name

    @property
    def backup_path(self) -> Path:
        return self.directory / (self.primary_name + self.backup_suffix)

    def legacy_paths(self) -> list[Path]:
        """Legacy documents, newest first."""
        if not self.directory.is_dir():
            return []

        owned = {self.primary_path.name, self.backup_path.name}
        candidates = []
        for path in self.directory.glob(self.legacy_pattern):
            if path.name in owned or not path.is_file():
                continue
            try:
                mtime = path.stat().st_mtime
            except FileNotFoundError:
                continue
            candidates.append((mtime, path.name, path))

        candidates.sort(key=lambda c: (-c[0], c[1]))
        return [path for _, _, path in candidates]

    def _sources(self) -> Iterable[tuple[CacheSource, Path]]:
        yield CacheSource.PRIMARY, self.primary_path
        yield CacheSource.BACKUP, self.backup_path
        for path in self.legacy_paths():
            yield CacheSource.LEGACY, path

    def _read(self, path: Path) -> bytes | None:
        """Read a cache file. Returns None if it does not exist."""
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheIOError("read", path, str(e)) from e

    def load(self) -> LoadResult | None:
        """
        Load the newest usable cache.

        Tries the primary, then the backup, then legacy files. Decode errors
        are logged and the next source is tried.

        Returns:
            LoadResult, or None if no source exists or decodes

        Raises:
            CacheIOError: If a cache file exists but cannot be read
        """
        for source, path in self._sources():
            data = self._read(path)
            if data is None:
                logger.debug("No %s cache at %s", source.value, path)
                continue

            try:
                cache = decode(data, path=path)
            except DecodeError as e:
                logger.warning("Skipping unusable %s cache: %s", source.value, e)
                continue

            result = LoadResult(cache=cache, source=source, path=path)
            if result.recovered:
                logger.info("Recovered project cache from %s file %s", source.value, path)
            return result

        return None

    def load_or_create(
        self,
        metadata: ProjectMetadata | None = None,
        doc_index: Iterable[str] | None = None,
    ) -> LoadResult:
        """Load the cache, or start a fresh one when nothing usable exists."""
        result = self.load()
        if result is None:
            logger.debug("Starting fresh project cache in %s", self.directory)
            return LoadResult(
                cache=ProjectCache.fresh(metadata, doc_index),
                source=CacheSource.FRESH,
            )
        return result

    def save(self, cache: ProjectCache) -> Path:
        """
        Persist cache as the new primary.

        A decodable primary is first copied to the backup. The new primary
        is written to a temp file and renamed into place, so a failure at any
        point leaves the previous primary intact.

        Args:
            cache: Cache to persist

        Returns:
            Path to the primary file

        Raises:
            InvalidCacheError: If cache breaks a schema invariant; nothing
                is written
            CacheIOError: If any filesystem operation fails
        """
        data = encode(cache)

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError("mkdir", self.directory, str(e)) from e

        self._rotate_backup()
        self._write_atomic(self.primary_path, data)
        logger.debug("Saved project cache to %s", self.primary_path)

        return self.primary_path

    def _rotate_backup(self) -> None:
        """Copy the current primary over the backup if it decodes."""
        current = self._read(self.primary_path)
        if current is None:
            return

        try:
            decode(current, path=self.primary_path)
        except DecodeError as e:
            # Backup must only ever hold a good document
            logger.warning("Primary cache is unusable, keeping existing backup: %s", e)
            return

        self._write_atomic(self.backup_path, current)

    def _write_atomic(self, target: Path, data: bytes) -> None:
        """
        Atomically write bytes to target.

        Uses write-to-temp-then-rename pattern to prevent torn files.
        """
        try:
            fd, temp_path = tempfile.mkstemp(
                prefix=f".{target.name}.",
                suffix=".tmp",
                dir=target.parent,
            )
        except OSError as e:
            raise CacheIOError("write", target, str(e)) from e

        try:
            f = os.fdopen(fd, "wb")
        except OSError as e:
            os.close(fd)
            self._discard(temp_path)
            raise CacheIOError("write", target, str(e)) from e

        try:
            with f:
                f.write(data)
                if self.fsync:
                    f.flush()
                    os.fsync(f.fileno())
            # Atomic rename
            os.replace(temp_path, target)
        except OSError as e:
            self._discard(temp_path)
            raise CacheIOError("write", target, str(e)) from e

    @staticmethod
    def _discard(temp_path: str) -> None:
        """Remove a leftover temp file, ignoring errors."""
        try:
            os.unlink(temp_path)
        except OSError:
            pass


__all__ = [
    "CacheSource",
    "LoadResult",
    "CacheStore",
]
