"""
synthetic_calibration_example.py
================================

Purpose
-------
Minimal example showing how to run `gls_calibration.pipeline.process_individual`
on a synthetic deployment: the logger spends its first days at the colony
(known site), then moves to a foraging area. The calibration should recover
the sun elevation used to generate the light curve, and the positions after
the move should be close to the foraging area.

What this example does
----------------------
1) Builds a light series: 4 days at the colony, 20 days at sea.
2) Writes it as a .lux file and reads it back (the usual input path).
3) Calibrates at the colony and estimates positions.
4) Prints the calibration and the median position.

Usage
-----
Run the example:

    python examples/synthetic_calibration_example.py

Adapt `COLONY`, `AT_SEA` and `TRUE_ELEVATION_DEG` as needed.
"""

import tempfile
from pathlib import Path

import numpy as np

from gls_calibration.core.model import LightSeries, SiteCoordinate
from gls_calibration.io.lux import read_lux_file, write_lux_file
from gls_calibration.logging_config import setup_logging
from gls_calibration.pipeline import process_individual
from gls_calibration.synthetic import synthetic_light_series

setup_logging()

COLONY = SiteCoordinate(27.85, -115.17, "colony")
AT_SEA = SiteCoordinate(22.0, -121.0, "at sea")
TRUE_ELEVATION_DEG = -5.0
START = "2017-06-01T00:00:00Z"

# 1) Colony period followed by the foraging trip (2-minute sampling).
colony = synthetic_light_series(
    COLONY, START, days=4, step_s=120, sun_elevation_deg=TRUE_ELEVATION_DEG
)
trip = synthetic_light_series(
    AT_SEA,
    colony.end + 120,
    days=20,
    step_s=120,
    sun_elevation_deg=TRUE_ELEVATION_DEG,
    noise_lux=0.05,
    seed=1,
)
light = LightSeries(
    np.concatenate([colony.times, trip.times]),
    np.concatenate([colony.light, trip.light]),
)

# 2) Round trip through the .lux format.
with tempfile.TemporaryDirectory() as tmp:
    path = Path(tmp) / "SYN01_synthetic.lux"
    write_lux_file(path, light)
    light = read_lux_file(path)

# 3) Calibrate and invert.
result = process_individual(light, COLONY, "SYN01_synthetic")
if not result.ok:
    raise SystemExit(f"Pipeline failed at {result.stage}: {result.message}")

# 4) Report.
s = result.summary
print(f"Calibration window: {s.calib_start} .. {s.calib_end} ({s.calib_days} d)")
print(
    f"Sun elevation: {s.sun_elevation:.2f} deg "
    f"(true {TRUE_ELEVATION_DEG:.2f}), zenith {s.zenith:.2f} deg"
)
print(f"Positions: {s.n_positions}, hemisphere check: {s.hemisphere_check}")
print(
    f"Median position: lat {s.lat_median:.2f}, lon {s.lon_median:.2f} "
    f"(true at sea: {AT_SEA.latitude_deg:.2f}, {AT_SEA.longitude_deg:.2f})"
)
