from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from gls_calibration.core.model import LightSeries, SiteCoordinate, TwilightList
from gls_calibration.logging_config import reset_logging
from gls_calibration.synthetic import synthetic_light_series, synthetic_twilights

# ---------- Shared fixtures ----------


@pytest.fixture
def colony() -> SiteCoordinate:
    """Known site used by most calibration tests (Baja California)."""
    return SiteCoordinate(28.0, -115.0, "colony")


@pytest.fixture
def square_wave_frame() -> pd.DataFrame:
    """72 hourly samples alternating 6 h of 0.5 lux and 6 h of 4 lux."""
    dates = pd.date_range("2024-01-01", periods=72, freq="h", tz="UTC")
    light = np.tile(np.r_[np.full(6, 0.5), np.full(6, 4.0)], 6)
    return pd.DataFrame({"Date": dates, "Light": light})


@pytest.fixture(scope="session")
def stationary_light() -> LightSeries:
    """Six days of 1-minute light at (28, -115), crossing 2 lux at -6 deg."""
    site = SiteCoordinate(28.0, -115.0, "colony")
    return synthetic_light_series(
        site, "2024-06-01T00:00:00Z", days=6, step_s=60.0, sun_elevation_deg=-6.0
    )


@pytest.fixture(scope="session")
def exact_twilights() -> TwilightList:
    """Thirty noise-free twilights at (28, -115) for a -6 deg sun."""
    site = SiteCoordinate(28.0, -115.0, "colony")
    return synthetic_twilights(site, "2024-06-01T00:00:00Z", 30, sun_elevation_deg=-6.0)


@pytest.fixture
def clean_logging():
    """Remove handlers installed by setup_logging before and after a test."""
    reset_logging()
    yield
    reset_logging()

