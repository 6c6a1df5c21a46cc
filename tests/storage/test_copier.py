"""
Tests for the bulk copier.

Uses the in-memory FakeStorage so enumeration, prefixing, concurrency limits,
retry and fail-fast behaviour can be observed directly.
"""
from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from ffmpeg_gateway.errors import StorageError
from ffmpeg_gateway.storage.copier import copy_tree, iter_entries

from .fakes import FakeStorage


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "work"
    (root / "hls").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "index.m3u8").write_text("#EXTM3U\n")
    (root / "hls" / "seg_000.ts").write_bytes(b"a" * 10)
    (root / "hls" / "seg_001.ts").write_bytes(b"b" * 20)
    return root


class TestIterEntries:
    """Test workspace enumeration."""

    def test_all_files_sorted(self, workspace):
        rels = [rel for _, rel in iter_entries(workspace)]
        assert rels == ["index.m3u8", "hls/seg_000.ts", "hls/seg_001.ts"]

    def test_directories_are_not_entries(self, workspace):
        rels = [rel for _, rel in iter_entries(workspace)]
        assert "empty" not in rels
        assert "hls" not in rels

    def test_pattern_matches_relative_path(self, workspace):
        assert [rel for _, rel in iter_entries(workspace, "*.ts")] == ["hls/seg_000.ts", "hls/seg_001.ts"]
        assert [rel for _, rel in iter_entries(workspace, "*.m3u8")] == ["index.m3u8"]
        assert list(iter_entries(workspace, "*.mp4")) == []

    def test_absolute_paths_point_into_root(self, workspace):
        for abs_path, rel in iter_entries(workspace):
            assert abs_path == workspace / rel


class TestCopyTree:
    """Test copy_tree through the StorageHandle default method."""

    def test_copy_to_root(self, workspace):
        storage = FakeStorage()
        result = asyncio.run(storage.copy_tree(workspace))

        assert set(storage.objects) == {"index.m3u8", "hls/seg_000.ts", "hls/seg_001.ts"}
        assert storage.objects["hls/seg_001.ts"] == b"b" * 20
        assert len(result) == 3
        assert result.total_bytes == 8 + 10 + 20
        assert [e.relpath for e in result.entries] == ["index.m3u8", "hls/seg_000.ts", "hls/seg_001.ts"]

    @pytest.mark.parametrize("prefix", ["renditions", "renditions/"])
    def test_copy_below_prefix(self, workspace, prefix):
        storage = FakeStorage()
        result = asyncio.run(storage.copy_tree(workspace, "*", prefix))

        assert set(storage.objects) == {
            "renditions/index.m3u8",
            "renditions/hls/seg_000.ts",
            "renditions/hls/seg_001.ts",
        }
        assert result.entries[0].remote_path == "renditions/index.m3u8"

    def test_empty_workspace_is_empty_transfer(self, tmp_path):
        storage = FakeStorage()
        result = asyncio.run(storage.copy_tree(tmp_path))
        assert len(result) == 0
        assert result.total_bytes == 0
        assert storage.put_calls == []

    def test_concurrency_is_bounded(self, tmp_path):
        for i in range(10):
            (tmp_path / f"frame_{i:03d}.png").write_bytes(b"p")
        storage = FakeStorage()

        result = asyncio.run(copy_tree(storage, tmp_path, concurrency=3))

        assert len(result) == 10
        assert 1 < storage.max_in_flight <= 3

    def test_invalid_concurrency(self, workspace):
        with pytest.raises(ValueError, match="concurrency must be at least 1"):
            asyncio.run(copy_tree(FakeStorage(), workspace, concurrency=0))

    def test_missing_root_fails(self, tmp_path):
        storage = FakeStorage()
        with pytest.raises(StorageError, match="Failed to enumerate"):
            asyncio.run(copy_tree(storage, tmp_path / "missing"))
        assert storage.put_calls == []

    def test_unreadable_subdirectory_fails_whole_copy(self, workspace, monkeypatch):
        real_scandir = os.scandir

        def scandir(path):
            if Path(path).name == "hls":
                raise PermissionError(13, "Permission denied", str(path))
            return real_scandir(path)

        monkeypatch.setattr(os, "scandir", scandir)
        storage = FakeStorage()

        with pytest.raises(StorageError, match="Permission denied"):
            asyncio.run(copy_tree(storage, workspace))
        assert storage.put_calls == []

    def test_first_failure_aborts_copy(self, tmp_path):
        for i in range(20):
            (tmp_path / f"frame_{i:03d}.png").write_bytes(b"p")
        storage = FakeStorage()
        storage.failing_paths = {"frame_000.png"}

        with pytest.raises(StorageError, match="frame_000.png"):
            asyncio.run(copy_tree(storage, tmp_path, concurrency=2))

        # Entries still waiting for a slot were cancelled
        assert len(storage.put_calls) < 20

    def test_earliest_failing_entry_reported(self, tmp_path):
        for name in ("a.ts", "b.ts"):
            (tmp_path / name).write_bytes(b"x")
        storage = FakeStorage()
        storage.failing_paths = {"a.ts", "b.ts"}

        with pytest.raises(StorageError, match="a.ts"):
            asyncio.run(copy_tree(storage, tmp_path, concurrency=2))

    def test_transient_failure_retried(self, workspace):
        storage = FakeStorage()
        storage.transient_failures = 1

        result = asyncio.run(copy_tree(storage, workspace, retry=1))

        assert len(result) == 3
        assert storage.put_calls.count("index.m3u8") == 2

    def test_no_retry_by_default(self, workspace):
        storage = FakeStorage()
        storage.transient_failures = 1

        with pytest.raises(StorageError, match="transient"):
            asyncio.run(copy_tree(storage, workspace))
        assert storage.put_calls.count("index.m3u8") == 1

    def test_unsafe_prefix_rejected(self, workspace):
        with pytest.raises(ValueError, match="unsafe path"):
            asyncio.run(copy_tree(FakeStorage(), workspace, "*", "../elsewhere"))
