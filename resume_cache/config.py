"""
Configuration management for resume-cache.

The cache root is an explicit value threaded into CacheStore. Resolution
order when not given directly:

1. RESUME_CACHE_DIR environment variable
2. cache_root in the JSON config file (RESUME_CACHE_CONFIG, default
   ~/.config/resume-cache/config.json)
3. $XDG_CACHE_HOME/resume-cache, falling back to ~/.cache/resume-cache
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CACHE_DIR_ENV = "RESUME_CACHE_DIR"
CONFIG_PATH_ENV = "RESUME_CACHE_CONFIG"

DEFAULT_PRIMARY_NAME = "project.cache"
DEFAULT_BACKUP_SUFFIX = ".bkp"
DEFAULT_LEGACY_PATTERN = "project_*.cache"


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


def default_config_path() -> Path:
    """Location of the JSON config file."""
    env_value = os.getenv(CONFIG_PATH_ENV)
    if env_value:
        return Path(env_value).expanduser()
    return Path.home() / ".config" / "resume-cache" / "config.json"


def default_cache_root() -> Path:
    """Per-user cache directory used when nothing else is configured."""
    xdg_cache = os.getenv("XDG_CACHE_HOME")
    if xdg_cache:
        return Path(xdg_cache).expanduser() / "resume-cache"
    return Path.home() / ".cache" / "resume-cache"


def project_key(project_root: Path | str) -> str:
    """
    Stable directory name for a project.

    "<dirname>-<12 hex chars of sha256(resolved path)>", so two checkouts
    with the same name do not share a cache.
    """
    resolved = Path(project_root).expanduser().resolve()
    digest = hashlib.sha256(str(resolved).encode("utf-8")).hexdigest()[:12]
    name = resolved.name or "root"
    return f"{name}-{digest}"


@dataclass
class CacheConfig:
    """
    Where and how project caches are stored.

    Attributes:
        cache_root: Directory holding one subdirectory per project
        primary_name: File name of the current cache document
        backup_suffix: Appended to primary_name for the backup file
        legacy_pattern: Glob for read-only files from earlier releases
        fsync: Flush written files to disk before renaming them into place
    """

    cache_root: Path = field(default_factory=default_cache_root)
    primary_name: str = DEFAULT_PRIMARY_NAME
    backup_suffix: str = DEFAULT_BACKUP_SUFFIX
    legacy_pattern: str = DEFAULT_LEGACY_PATTERN
    fsync: bool = True

    def __post_init__(self):
        self.cache_root = Path(self.cache_root).expanduser()

    @property
    def backup_name(self) -> str:
        return self.primary_name + self.backup_suffix

    def project_dir(self, project_root: Path | str) -> Path:
        """Cache directory for one project."""
        return self.cache_root / project_key(project_root)

    @classmethod
    def load(cls, path: Path | None = None) -> "CacheConfig":
        """
        Load configuration from file, then apply the environment override.

        A missing file means defaults. An unreadable or invalid file is
        logged and ignored.
        """
        if path is None:
            path = default_config_path()

        data: dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    data = loaded
                else:
                    logger.warning("Ignoring config %s: expected a JSON object", path)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Ignoring unreadable config %s: %s", path, e)

        env_value = os.getenv(CACHE_DIR_ENV)
        if env_value:
            data["cache_root"] = env_value

        return cls(**_filter_dataclass_fields(data, cls))

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = default_config_path()

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(
                {
                    "cache_root": str(self.cache_root),
                    "primary_name": self.primary_name,
                    "backup_suffix": self.backup_suffix,
                    "legacy_pattern": self.legacy_pattern,
                    "fsync": self.fsync,
                },
                f,
                indent=2,
            )


__all__ = [
    "CACHE_DIR_ENV",
    "CONFIG_PATH_ENV",
    "CacheConfig",
    "default_cache_root",
    "default_config_path",
    "project_key",
]
