"""
Unit tests for the resume module.

Exercises the full open -> record -> reopen cycle against a temp cache root.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from pydantic import ValidationError

from resume_cache.cache_codec import decode, encode
from resume_cache.cache_schema import BuildStatus, ProjectCache, ProjectMetadata, SessionEntry
from resume_cache.cache_store import CacheSource
from resume_cache.config import CacheConfig
from resume_cache.exceptions import CacheIOError
from resume_cache.resume import format_resume_context, open_project_cache, record_session

BASE_TIME = datetime(2026, 7, 1, 10, 0, tzinfo=timezone.utc)


class StubGatherer:
    """Fixed metadata source for tests."""

    def __init__(self, metadata=None, docs=None):
        self.metadata = metadata or ProjectMetadata(name="stubbed", build_status=BuildStatus.PASSING)
        self.docs = docs if docs is not None else {"README.md"}
        self.calls = []

    def gather_metadata(self, project_root):
        self.calls.append(("metadata", project_root))
        return self.metadata

    def gather_doc_index(self, project_root):
        self.calls.append(("docs", project_root))
        return self.docs


@pytest.fixture
def config(tmp_path):
    return CacheConfig(cache_root=tmp_path / "cache", fsync=False)


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "widget"
    root.mkdir()
    (root / "pyproject.toml").write_text('[project]\nname = "widget"\nversion = "2.0.0"\n')
    (root / "README.md").write_text("# widget\n")
    return root


class TestOpenProjectCache:
    """Tests for open_project_cache."""

    def test_first_open_is_fresh(self, project, config):
        """A project with no cache starts fresh with gathered metadata."""
        store, result = open_project_cache(project, config)

        assert result.source is CacheSource.FRESH
        assert result.cache.project_name == "widget"
        assert result.cache.version == "2.0.0"
        assert result.cache.doc_index == ["README.md"]
        assert store.directory.parent == config.cache_root
        assert not store.primary_path.exists()

    def test_custom_gatherer(self, project, config):
        """A supplied gatherer replaces the manifest reader."""
        gatherer = StubGatherer()
        _, result = open_project_cache(project, config, gatherer=gatherer)

        assert result.cache.project_name == "stubbed"
        assert result.cache.build_status is BuildStatus.PASSING
        assert [c[0] for c in gatherer.calls] == ["metadata", "docs"]

    def test_reopen_keeps_sessions(self, project, config):
        """Sessions recorded in one run are there in the next."""
        store, result = open_project_cache(project, config)
        record_session(store, result.cache, "write parser", "Parser handles nested lists.", when=BASE_TIME)

        _, reopened = open_project_cache(project, config)

        assert reopened.source is CacheSource.PRIMARY
        assert reopened.cache.session_count == 1
        assert reopened.cache.last_session.task == "write parser"

    def test_reopen_refreshes_metadata(self, project, config):
        """Metadata changes in the project show up on reopen."""
        store, result = open_project_cache(project, config)
        store.save(result.cache)

        (project / "pyproject.toml").write_text('[project]\nname = "widget"\nversion = "2.1.0"\n')
        (project / "CHANGELOG.md").write_text("changes")

        _, reopened = open_project_cache(project, config)

        assert reopened.cache.version == "2.1.0"
        assert reopened.cache.doc_index == ["CHANGELOG.md", "README.md"]

    def test_reopen_recovers_from_backup(self, project, config):
        """A corrupted primary is reported as a recovered load."""
        store, result = open_project_cache(project, config)
        record_session(store, result.cache, "first", "one", when=BASE_TIME)
        record_session(store, result.cache, "second", "two", when=BASE_TIME + timedelta(hours=1))
        store.primary_path.write_bytes(b"\x00" * 16)

        _, reopened = open_project_cache(project, config)

        assert reopened.recovered is True
        assert reopened.source is CacheSource.BACKUP
        assert reopened.cache.last_session.task == "first"


class TestRecordSession:
    """Tests for record_session."""

    def test_record_appends_and_saves(self, project, config):
        """record_session returns the entry and persists it."""
        store, result = open_project_cache(project, config)

        entry = record_session(store, result.cache, "task", "summary", when=BASE_TIME)

        assert entry == SessionEntry.create("task", "summary", when=BASE_TIME)
        assert store.load().cache.session_history == [entry]

    def test_empty_summary_needs_permission(self, project, config):
        """Empty summaries are rejected unless allowed, and nothing is saved."""
        store, result = open_project_cache(project, config)

        with pytest.raises(ValidationError):
            record_session(store, result.cache, "task", "", when=BASE_TIME)
        assert not store.primary_path.exists()

        record_session(store, result.cache, "task", "", when=BASE_TIME, allow_empty_summary=True)
        assert store.load().cache.last_session.summary == ""

    def test_eleven_sessions(self, project, config):
        """After eleven recorded sessions the first has rotated out."""
        store, result = open_project_cache(project, config)
        for i in range(1, 12):
            record_session(store, result.cache, f"task-{i}", f"s{i}", when=BASE_TIME + timedelta(minutes=i))

        loaded = store.load().cache

        assert [e.task for e in loaded.session_history] == [f"task-{i}" for i in range(2, 12)]
        assert loaded.session_count == 11

    def test_failed_save_leaves_cache_unchanged(self, project, config, monkeypatch):
        """A save that fails does not touch the in-memory cache, so a retry records once."""
        store, result = open_project_cache(project, config)
        cache = result.cache
        record_session(store, cache, "first", "s1", when=BASE_TIME)

        real_replace = os.replace

        def crash_on_primary(src, dst):
            if Path(dst) == store.primary_path:
                raise OSError("disk full")
            return real_replace(src, dst)

        monkeypatch.setattr(os, "replace", crash_on_primary)

        with pytest.raises(CacheIOError):
            record_session(store, cache, "second", "s2", when=BASE_TIME + timedelta(minutes=1))

        assert cache.session_count == 1
        assert [e.task for e in cache.session_history] == ["first"]

        monkeypatch.undo()
        record_session(store, cache, "second", "s2", when=BASE_TIME + timedelta(minutes=1))

        loaded = store.load().cache
        assert loaded == cache
        assert loaded.session_count == 2
        assert [e.task for e in loaded.session_history] == ["first", "second"]

    @pytest.mark.skipif(not sys.platform.startswith("linux"), reason="needs byte file names")
    def test_undecodable_doc_name_does_not_block_saves(self, project, config):
        """A project with a non-UTF-8 doc file name still opens and records sessions."""
        (project / "docs").mkdir()
        with open(os.path.join(os.fsencode(project / "docs"), b"notes-\xff.md"), "wb") as f:
            f.write(b"x")

        store, result = open_project_cache(project, config)
        record_session(store, result.cache, "task", "summary", when=BASE_TIME)

        loaded = store.load().cache
        assert loaded.doc_index == ["README.md"]
        assert loaded.session_count == 1


class TestFormatResumeContext:
    """Tests for format_resume_context."""

    def test_empty_cache(self):
        """A fresh cache renders the header lines only."""
        text = format_resume_context(ProjectCache())

        assert text == "Project: unnamed project\nBuild: unknown\nSessions: 0"

    def test_recent_sessions_newest_first(self):
        """Recent sessions are listed newest first, limited."""
        cache = ProjectCache(
            project_name="widget",
            version="2.0.0",
            repository="https://example.com/widget",
            build_status=BuildStatus.PASSING,
        )
        for i in range(1, 6):
            cache.append_session(SessionEntry.create(f"task-{i}", f"summary {i}", when=BASE_TIME + timedelta(days=i)))

        text = format_resume_context(cache, limit=2)
        lines = text.splitlines()

        assert lines[0] == "Project: widget 2.0.0"
        assert "Repository: https://example.com/widget" in lines
        assert "Build: passing" in lines
        assert "Sessions: 5" in lines
        assert "- 2026-07-06 10:00 task-5" in lines
        assert "  summary 5" in lines
        assert "- 2026-07-05 10:00 task-4" in lines
        assert "task-3" not in text
        assert text.index("task-5") < text.index("task-4")

    def test_empty_summary_line_omitted(self):
        """Sessions without a summary show only the task line."""
        cache = ProjectCache()
        cache.append_session(SessionEntry.create("peek", "", when=BASE_TIME, allow_empty_summary=True))

        assert format_resume_context(cache).splitlines()[-1] == "- 2026-07-01 10:00 peek"

    def test_stored_cache_renders(self, tmp_path):
        """Rendering works on a cache that went through the codec."""
        cache = ProjectCache(project_name="widget")
        cache.append_session(SessionEntry.create("a", "b", when=BASE_TIME))
        path = tmp_path / "project.cache"
        path.write_bytes(encode(cache))

        text = format_resume_context(decode(path.read_bytes()))

        assert "Sessions: 1" in text
        assert "- 2026-07-01 10:00 a" in text
