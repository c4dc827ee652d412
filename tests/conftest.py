"""Pytest configuration and fixtures."""

import pytest

from signature_sweep.lib.cache import CacheStore
from tests.fakes import FakeRemoteSource, RecordingSleep


@pytest.fixture
def cache_dir(tmp_path):
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def cache_store(cache_dir):
    return CacheStore(cache_dir)


@pytest.fixture
def fake_source():
    return FakeRemoteSource()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
