"""
Tests for result delivery.

Drives the fake tool through both strategies against FakeStorage and checks
the outcome rules: exit status first, then transfer, with full diagnostics in
every case and no committed object after a failed run.
"""
from __future__ import annotations

import asyncio

import pytest

from ffmpeg_gateway.errors import ToolError, TransferError
from ffmpeg_gateway.process import run_tool
from ffmpeg_gateway.transfer import deliver_files, deliver_stream, join, settle, tool_failure

from .storage.fakes import FakeStorage

CHUNK = 64 * 1024


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


async def _stream(fake_tool, storage, args, path="out.mp4"):
    async with run_tool([str(fake_tool), *args], capture_stdout=True) as proc:
        return await deliver_stream(proc, storage, path, chunk_size=4096)


async def _files(fake_tool, storage, args, workdir, path=""):
    async with run_tool([str(fake_tool), *args], cwd=workdir) as proc:
        return await deliver_files(proc, storage, path, workdir)


class TestSettle:
    """Test the join primitives."""

    def test_results_in_argument_order(self):
        async def value(v, delay):
            await asyncio.sleep(delay)
            return v

        results, errors = asyncio.run(settle(value("a", 0.02), value("b", 0)))
        assert results == ["a", "b"]
        assert errors == []

    def test_all_members_finish_despite_failure(self):
        finished = []

        async def fail():
            raise RuntimeError("first")

        async def slow():
            await asyncio.sleep(0.02)
            finished.append("slow")
            return "done"

        results, errors = asyncio.run(settle(fail(), slow()))
        assert finished == ["slow"]
        assert results[1] == "done"
        assert isinstance(results[0], RuntimeError)
        assert [str(e) for e in errors] == ["first"]

    def test_errors_in_completion_order(self):
        async def fail(msg, delay):
            await asyncio.sleep(delay)
            raise ValueError(msg)

        _, errors = asyncio.run(settle(fail("late", 0.03), fail("early", 0)))
        assert [str(e) for e in errors] == ["early", "late"]

    def test_join_raises_first_observed(self):
        async def fail(msg, delay):
            await asyncio.sleep(delay)
            raise ValueError(msg)

        with pytest.raises(ValueError, match="early"):
            asyncio.run(join(fail("late", 0.03), fail("early", 0)))

    def test_join_returns_tuple(self):
        async def value(v):
            return v

        assert asyncio.run(join(value(1), value(2))) == (1, 2)


class TestToolFailure:
    """Test ToolError construction."""

    def test_quotes_last_diagnostic_line(self):
        error = tool_failure("ffmpeg", 1, "ffmpeg version 6\nin.mp4: No such file or directory\n\n")
        assert str(error) == "ffmpeg failed with exit status 1: in.mp4: No such file or directory"
        assert error.returncode == 1
        assert error.stderr.startswith("ffmpeg version 6")

    def test_empty_diagnostics(self):
        assert str(tool_failure("ffmpeg", 137, "")) == "ffmpeg failed with exit status 137"


class TestDeliverStream:
    """Test the streaming strategy."""

    def test_success(self, fake_tool):
        storage = FakeStorage()
        delivery = asyncio.run(_stream(fake_tool, storage, ["--stderr", "frame=42", "--stdout", "payload", "-"]))

        assert storage.objects == {"out.mp4": b"payload"}
        assert delivery.stderr == "frame=42\n"
        assert delivery.returncode == 0
        assert delivery.bytes_streamed == 7
        assert storage.writers[0].closed

    def test_empty_payload_still_committed(self, fake_tool):
        storage = FakeStorage()
        asyncio.run(_stream(fake_tool, storage, ["-"]))
        assert storage.objects == {"out.mp4": b""}

    @pytest.mark.slow
    def test_interleaved_output_does_not_deadlock(self, fake_tool):
        storage = FakeStorage()
        delivery = asyncio.run(asyncio.wait_for(_stream(fake_tool, storage, ["--interleave", "64", "-"]), timeout=60))

        assert len(storage.objects["out.mp4"]) == 64 * CHUNK
        assert len(delivery.stderr) == 64 * CHUNK

    def test_nonzero_exit_aborts_writer(self, fake_tool):
        storage = FakeStorage()
        args = ["--stdout", "half a file", "--stderr", "Conversion failed!", "--exit", "1", "-"]

        with pytest.raises(ToolError, match="exit status 1: Conversion failed!") as exc_info:
            asyncio.run(_stream(fake_tool, storage, args))

        assert exc_info.value.stderr == "Conversion failed!\n"
        assert storage.objects == {}
        assert storage.writers[0].aborted
        assert not storage.writers[0].closed

    def test_write_failure_with_success_exit(self, fake_tool):
        storage = FakeStorage()
        storage.fail_write_after = 10

        with pytest.raises(TransferError, match="Failed to deliver ffmpeg output to out.mp4") as exc_info:
            asyncio.run(asyncio.wait_for(
                _stream(fake_tool, storage, ["--stderr", "done", "--stdout-bytes", "500000", "-"]),
                timeout=30,
            ))

        assert exc_info.value.stderr == "done\n"
        assert storage.objects == {}
        assert storage.writers[0].aborted

    def test_tool_failure_supersedes_write_failure(self, fake_tool):
        storage = FakeStorage()
        storage.fail_write_after = 0

        with pytest.raises(ToolError) as exc_info:
            asyncio.run(_stream(fake_tool, storage, ["--stdout-bytes", "100000", "--exit", "2", "-"]))
        assert exc_info.value.returncode == 2

    def test_open_failure(self, fake_tool):
        storage = FakeStorage()
        storage.fail_open = True

        with pytest.raises(TransferError, match="injected open failure"):
            asyncio.run(asyncio.wait_for(
                _stream(fake_tool, storage, ["--stdout-bytes", "500000", "-"]),
                timeout=30,
            ))
        assert storage.objects == {}

    def test_close_failure(self, fake_tool):
        storage = FakeStorage()
        storage.fail_close = True

        with pytest.raises(TransferError, match="injected close failure"):
            asyncio.run(_stream(fake_tool, storage, ["--stdout", "payload", "-"]))
        assert storage.objects == {}


class TestDeliverFiles:
    """Test the copy strategy."""

    def test_success(self, fake_tool, workdir):
        storage = FakeStorage()
        args = ["--stderr", "muxing", "--file", "hls/seg_000.ts", "ts", "-i", "in.mp4", "index.m3u8"]

        delivery = asyncio.run(_files(fake_tool, storage, args, workdir, path="renditions"))

        assert storage.objects == {
            "renditions/hls/seg_000.ts": b"ts",
            "renditions/index.m3u8": b"transcoded:index.m3u8",
        }
        assert delivery.stderr == "muxing\n"
        assert len(delivery.copied) == 2

    def test_nothing_produced(self, fake_tool, workdir):
        storage = FakeStorage()
        delivery = asyncio.run(_files(fake_tool, storage, ["-f", "null"], workdir))
        assert storage.objects == {}
        assert len(delivery.copied) == 0

    def test_nonzero_exit_copies_nothing(self, fake_tool, workdir):
        storage = FakeStorage()
        args = ["--file", "partial.ts", "x", "--stderr", "Killed", "--exit", "137"]

        with pytest.raises(ToolError, match="exit status 137: Killed"):
            asyncio.run(_files(fake_tool, storage, args, workdir))
        assert storage.put_calls == []

    def test_upload_failure(self, fake_tool, workdir):
        storage = FakeStorage()
        storage.failing_paths = {"out.mp4"}

        with pytest.raises(TransferError, match="Failed to copy ffmpeg output to /") as exc_info:
            asyncio.run(_files(fake_tool, storage, ["--stderr", "ok", "-i", "in.mp4", "out.mp4"], workdir))
        assert exc_info.value.stderr == "ok\n"
