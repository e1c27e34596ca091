"""
Project metadata gathering.

The cache only consumes the results: a ProjectMetadata record and the set
of documentation files present. The default gatherer reads the common
manifest files (pyproject.toml, package.json, Cargo.toml); callers with
other project layouts pass their own MetadataGatherer.
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Callable, Protocol

from .cache_schema import BuildStatus, ProjectMetadata

logger = logging.getLogger(__name__)

# Top-level files whose upper-cased name starts with one of these
DOC_PREFIXES = ("README", "CHANGELOG", "CONTRIBUTING", "LICENSE", "SPEC", "DESIGN")
DOC_DIRS = ("docs", "doc")
DOC_SUFFIXES = frozenset({".md", ".rst", ".txt"})

REPOSITORY_URL_KEYS = ("repository", "source", "source code", "homepage")


class MetadataGatherer(Protocol):
    """Source of project information for the cache."""

    def gather_metadata(self, project_root: Path) -> ProjectMetadata:
        ...

    def gather_doc_index(self, project_root: Path) -> set[str]:
        ...


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _table(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _license_text(value: Any) -> str | None:
    """License as a string, or from a {text=...} / {file=...} / {type=...} table."""
    if isinstance(value, dict):
        return _text(value.get("text")) or _text(value.get("type")) or _text(value.get("file"))
    return _text(value)


def _repository_from_urls(urls: dict[str, Any]) -> str | None:
    lowered = {str(k).lower(): v for k, v in urls.items()}
    for key in REPOSITORY_URL_KEYS:
        url = _text(lowered.get(key))
        if url:
            return url
    return None


def _read_pyproject(path: Path) -> dict[str, str | None]:
    with open(path, "rb") as f:
        data = tomllib.load(f)

    section = _table(data.get("project"))
    if not section:
        section = _table(_table(data.get("tool")).get("poetry"))
    if not section:
        return {}

    repository = (
        _text(section.get("repository"))
        or _repository_from_urls(_table(section.get("urls")))
        or _text(section.get("homepage"))
    )
    return {
        "name": _text(section.get("name")),
        "version": _text(section.get("version")),
        "repository": repository,
        "license": _license_text(section.get("license")),
    }


def _read_package_json(path: Path) -> dict[str, str | None]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        return {}

    repository = data.get("repository")
    if isinstance(repository, dict):
        repository = repository.get("url")

    return {
        "name": _text(data.get("name")),
        "version": _text(data.get("version")),
        "repository": _text(repository) or _text(data.get("homepage")),
        "license": _license_text(data.get("license")),
    }


def _read_cargo_toml(path: Path) -> dict[str, str | None]:
    with open(path, "rb") as f:
        data = tomllib.load(f)

    package = _table(data.get("package"))
    if not package:
        return {}

    return {
        "name": _text(package.get("name")),
        "version": _text(package.get("version")),
        "repository": _text(package.get("repository")) or _text(package.get("homepage")),
        "license": _text(package.get("license")) or _text(package.get("license-file")),
    }


# Checked in order; the first manifest that yields fields wins
MANIFEST_READERS: tuple[tuple[str, Callable[[Path], dict[str, str | None]]], ...] = (
    ("pyproject.toml", _read_pyproject),
    ("package.json", _read_package_json),
    ("Cargo.toml", _read_cargo_toml),
)


def gather_metadata(
    project_root: Path | str,
    build_status: BuildStatus = BuildStatus.UNKNOWN,
) -> ProjectMetadata:
    """
    Read project metadata from the first usable manifest file.

    Unparseable manifests are logged and skipped. The name falls back to the
    project directory name.

    Args:
        project_root: Project directory
        build_status: Build state known to the caller

    Returns:
        ProjectMetadata with whatever could be determined
    """
    root = Path(project_root)
    found: dict[str, str | None] = {}

    for filename, reader in MANIFEST_READERS:
        manifest = root / filename
        if not manifest.is_file():
            continue
        try:
            found = reader(manifest)
        except (OSError, ValueError) as e:
            # TOMLDecodeError and JSONDecodeError are ValueErrors
            logger.warning("Could not read project manifest %s: %s", manifest, e)
            continue
        if found:
            logger.debug("Read project metadata from %s", manifest)
            break

    return ProjectMetadata(
        name=found.get("name") or root.resolve().name or None,
        version=found.get("version"),
        repository=found.get("repository"),
        license=found.get("license"),
        build_status=build_status,
    )


def gather_doc_index(project_root: Path | str) -> set[str]:
    """
    List documentation and spec files present in the project.

    Names that cannot be stored as UTF-8 text (undecodable bytes on POSIX)
    are skipped with a warning.

    Returns:
        Relative POSIX paths; empty if the root does not exist
    """
    root = Path(project_root)
    if not root.is_dir():
        return set()

    found: set[str] = set()

    def add(path: Path) -> None:
        rel = path.relative_to(root).as_posix()
        try:
            rel.encode("utf-8")
        except UnicodeEncodeError:
            logger.warning("Skipping doc file with undecodable name: %r", rel)
            return
        found.add(rel)

    for path in root.iterdir():
        if path.is_file() and path.name.upper().startswith(DOC_PREFIXES):
            add(path)

    for dirname in DOC_DIRS:
        docs_dir = root / dirname
        if not docs_dir.is_dir():
            continue
        for path in docs_dir.rglob("*"):
            if path.is_file() and path.suffix.lower() in DOC_SUFFIXES:
                add(path)

    return found


class ProjectFileGatherer:
    """Default MetadataGatherer backed by gather_metadata and gather_doc_index."""

    def __init__(self, build_status: BuildStatus = BuildStatus.UNKNOWN):
        self.build_status = build_status

    def gather_metadata(self, project_root: Path) -> ProjectMetadata:
        return gather_metadata(project_root, build_status=self.build_status)

    def gather_doc_index(self, project_root: Path) -> set[str]:
        return gather_doc_index(project_root)


__all__ = [
    "MetadataGatherer",
    "ProjectFileGatherer",
    "gather_metadata",
    "gather_doc_index",
]
