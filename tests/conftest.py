import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
TESTS_DIR = Path(__file__).resolve().parent
for path in (ROOT_DIR, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

import pytest

from helpers import FakeClock, FakeUpstream, make_client


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def fetch_client(upstream, clock):
    return make_client(upstream, clock)


@pytest.fixture
def snapshot_path(tmp_path):
    """Path to an on-disk snapshot; tests write their own content with write_snapshot()."""
    return tmp_path / "env_snapshot.json"


@pytest.fixture
def bundled_snapshot_path():
    return ROOT_DIR / "assets" / "env_snapshot.json"
