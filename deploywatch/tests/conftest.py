from __future__ import annotations

import pytest

from deploywatch.core.config import get_settings
from deploywatch.services.telemetry import reset_telemetry


@pytest.fixture(autouse=True)
def isolate_process_state() -> None:
    # Settings are cached and telemetry is module-global; start every test clean.
    get_settings.cache_clear()
    reset_telemetry()
    yield
    get_settings.cache_clear()
    reset_telemetry()
