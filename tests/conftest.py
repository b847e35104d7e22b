"""Pytest configuration and shared fixtures.

Automatically loads .env file for all tests, so live integration tests can
pick up provider credentials. Unit tests build their own settings and never
depend on the environment.
"""

import sys
from pathlib import Path

import pytest

# Make `src.*` importable when running from a checkout
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.common.env import load_env  # noqa: E402
from src.common.testing import FakeClock, RecordingSink  # noqa: E402

load_env()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
