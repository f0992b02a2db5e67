"""Shared pytest fixtures."""

import pytest

from proxydiff.config.settings import Settings
from tests.fakes import FakeBackends


@pytest.fixture
def settings() -> Settings:
    return Settings(scenario_timeout=5.0, connect_timeout=1.0)


@pytest.fixture
def fake_backends():
    """Factory fixture: fake_backends(pages) -> FakeBackends."""
    return FakeBackends
