"""Shared fixtures for the history server tests."""

import pytest

from history_server.infrastructure.mirror import LocalMirror
from history_server.infrastructure.processing import JsonArchiveDecoder

from helpers import RecordingFrontend


@pytest.fixture
def mirror_root(tmp_path):
    return tmp_path / "mirror"


@pytest.fixture
def mirror(mirror_root):
    """A LocalMirror whose directory is not created yet."""
    return LocalMirror(mirror_root)


@pytest.fixture
def decoder():
    return JsonArchiveDecoder()


@pytest.fixture
def frontend():
    return RecordingFrontend()


@pytest.fixture
def archive_dirs(tmp_path):
    """Two local refresh locations, both empty."""
    first = tmp_path / "remote-a"
    second = tmp_path / "remote-b"
    first.mkdir()
    second.mkdir()
    return first, second
