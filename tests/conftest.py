"""Pytest configuration for sdlc_flow tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from sdlc_flow.settings import FlowSettings


@pytest.fixture
def fast_settings() -> FlowSettings:
    """Settings with timings small enough for in-memory fakes."""
    return FlowSettings(
        sonar_new_pass='rotated-pass-1',
        poll_interval_seconds=0.01,
        http_timeout_seconds=1.0,
        sonar_ready_timeout_seconds=0.5,
        gitea_ready_timeout_seconds=0.5,
        install_timeout_seconds=0.5,
        build_timeout_seconds=0.5,
        job_appearance_timeout_seconds=0.5,
        propagation_timeout_seconds=0.5,
        verify_timeout_seconds=0.2,
        settle_seconds=0.0,
    )
