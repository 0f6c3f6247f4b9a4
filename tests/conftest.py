from __future__ import annotations

from pathlib import Path

import pytest

from exactpilot.auth.session import SessionState
from exactpilot.config import ExactPilotConfig
from tests.helpers import BASE, FakeClock


@pytest.fixture
def config(tmp_path: Path) -> ExactPilotConfig:
    return ExactPilotConfig(
        api=BASE,
        client_id="test_client",
        client_secret="test_secret",
        redirect_uri="https://myapp.com/callback",
        data_dir=str(tmp_path),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session(config: ExactPilotConfig, clock: FakeClock) -> SessionState:
    """An authenticated session whose token is still valid."""
    s = SessionState.create(config, clock=clock)
    s.access_token = "access"
    s.refresh_token = "refresh"
    s.refresh_at = int(clock.now) + 500
    s.current_division = 42
    return s


@pytest.fixture
def anonymous_session(config: ExactPilotConfig, clock: FakeClock) -> SessionState:
    return SessionState.create(config, clock=clock)
