"""Shared pytest fixtures for relay tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from helpers import FakeBlobStore, FakeClock, make_settings  # noqa: E402


@pytest.fixture
def clock():
    """Monotonic clock advanced by hand."""
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def blob_store():
    return FakeBlobStore()
