"""Root pytest configuration for ffmpeg-gateway tests."""
import os
import stat
import sys
from pathlib import Path

import pytest

from ffmpeg_gateway.operations import GatewayService
from ffmpeg_gateway.settings import Settings
from ffmpeg_gateway.storage.resolver import StorageResolver

from .storage.fakes import FakeStorage

FAKE_TOOL = Path(__file__).parent / "helpers" / "fake_tool.py"


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


# Keep the developer's real credentials and overrides out of the tests
@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Automatically clear gateway/cloud environment variables."""
    for key in list(os.environ):
        if key.startswith(("FFMPEG_GATEWAY_", "AWS_", "AZURE_STORAGE_")):
            monkeypatch.delenv(key, raising=False)


def _write_tool(path: Path) -> Path:
    path.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_TOOL}" "$@"\n')
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_tool(tmp_path):
    """Executable standing in for ffmpeg/ffprobe (see helpers/fake_tool.py)."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    return _write_tool(bin_dir / "ffmpeg")


@pytest.fixture
def fake_probe(fake_tool):
    return _write_tool(fake_tool.parent / "ffprobe")


@pytest.fixture
def scratch_dir(tmp_path):
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def settings(fake_tool, fake_probe, scratch_dir):
    """Standard test settings wired to the fake tool."""
    return Settings(
        ffmpeg_bin=str(fake_tool),
        ffprobe_bin=str(fake_probe),
        scratch_dir=str(scratch_dir),
        chunk_size=4096,
    )


@pytest.fixture
def storage():
    """Fake storage served as mem://bucket."""
    return FakeStorage("bucket")


@pytest.fixture
def resolver(settings, storage):
    """Resolver with only the in-memory backend registered."""
    return StorageResolver(settings, {"mem": lambda authority, _settings: storage})


@pytest.fixture
def service(settings, resolver):
    return GatewayService(settings=settings, resolver=resolver)


