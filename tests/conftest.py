import pytest

from smirkle.config import Settings


@pytest.fixture
def manual_settings():
    # timers effectively never fire; tests feed samples and ticks by hand
    return Settings(DETECTION_INTERVAL_MS=3_600_000, SCORE_INTERVAL_SECONDS=3600)
