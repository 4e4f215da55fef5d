import numpy as np
import pytest

from gls_calibration.core.calibration import (
    PENALTY_MIN,
    estimate_sun_elevation,
    make_objective,
    timing_residuals_min,
)
from gls_calibration.core.errors import InsufficientCalibrationDataError
from gls_calibration.core.model import SiteCoordinate, TwilightList
from gls_calibration.core.prediction import predict_twilight_times, predict_twilights

H = 3600.0


# ----- Predictor -----


def test_prediction_reproduces_its_own_events(colony, exact_twilights):
    pred = predict_twilights(exact_twilights, colony, -6.0)
    assert np.all(np.isfinite(pred))
    assert np.max(np.abs(pred - exact_twilights.times)) < 10.0


def test_lower_sun_means_earlier_rise_and_later_set(colony, exact_twilights):
    deep = predict_twilights(exact_twilights, colony, -10.0)
    shallow = predict_twilights(exact_twilights, colony, -2.0)
    rise = exact_twilights.rise
    assert np.all(deep[rise] < shallow[rise])
    assert np.all(deep[~rise] > shallow[~rise])


def test_predictions_stay_near_observed_day(colony, exact_twilights):
    pred = predict_twilights(exact_twilights, colony, -9.0)
    assert np.max(np.abs(pred - exact_twilights.times)) < 12 * H


def test_unreachable_elevation_does_not_raise():
    # Midnight sun: at 70 N in June the sun never goes below -6 deg
    site = SiteCoordinate(70.0, 20.0)
    t = np.array([1718928000.0, 1718971200.0])  # 2024-06-21 00:00 / 12:00 UTC
    pred = predict_twilight_times(t, [True, False], site, -6.0)
    assert pred.shape == t.shape


def test_non_converged_events_become_nan(colony, exact_twilights):
    off = exact_twilights.times + 3 * H
    strict = predict_twilight_times(
        off, exact_twilights.rise, colony, -6.0, iterations=2, tolerance_s=1e-6
    )
    assert np.all(np.isnan(strict))
    relaxed = predict_twilight_times(
        off, exact_twilights.rise, colony, -6.0, iterations=2, tolerance_s=None
    )
    assert np.all(np.isfinite(relaxed))


def test_predictor_argument_checks(colony):
    with pytest.raises(ValueError):
        predict_twilight_times([0.0], [True], colony, -6.0, iterations=0)
    assert predict_twilight_times([], [], colony, -6.0).size == 0


# ----- Calibrator -----


def test_calibration_recovers_sun_elevation(colony, exact_twilights):
    res = estimate_sun_elevation(exact_twilights, colony)
    assert res.sun_elevation_deg == pytest.approx(-6.0, abs=0.05)
    assert res.zenith_deg == pytest.approx(90.0 - res.sun_elevation_deg)
    assert res.fit_residual_min < 0.2
    assert res.n_events == len(exact_twilights)
    assert 0 < res.n_evaluations <= 500


def test_calibration_on_twelve_hour_seeds():
    # Seeds every 12 h from 2024-06-01, alternating rise/set
    site = SiteCoordinate(28.0, -115.0)
    seeds = 1717200000.0 + 12 * H * np.arange(30)
    rise = np.arange(30) % 2 == 0
    observed = predict_twilight_times(seeds, rise, site, -6.0, tolerance_s=None)
    twl = TwilightList(observed, rise)
    res = estimate_sun_elevation(twl, site)
    assert abs(res.sun_elevation_deg - (-6.0)) < 0.5


def test_calibration_stays_inside_interval(colony, exact_twilights):
    res = estimate_sun_elevation(exact_twilights, colony, interval=(-4.0, 2.0))
    assert -4.0 <= res.sun_elevation_deg <= 2.0
    assert res.sun_elevation_deg == pytest.approx(-4.0, abs=0.05)


def test_calibration_needs_four_events(colony, exact_twilights):
    few = exact_twilights.select(np.arange(len(exact_twilights)) < 3)
    with pytest.raises(InsufficientCalibrationDataError) as ei:
        estimate_sun_elevation(few, colony)
    assert ei.value.stage == "calibration"
    assert ei.value.n_input == 3


def test_calibration_interval_must_be_ordered(colony, exact_twilights):
    with pytest.raises(ValueError):
        estimate_sun_elevation(exact_twilights, colony, interval=(2.0, -12.0))


def test_residuals_vanish_at_true_elevation(colony, exact_twilights):
    res = timing_residuals_min(exact_twilights, colony, -6.0)
    assert np.max(np.abs(res)) < 0.2


def test_objective_penalty_when_nothing_converges(colony, exact_twilights):
    shifted = TwilightList(exact_twilights.times + 3 * H, exact_twilights.rise)
    f = make_objective(shifted, colony, iterations=2, tolerance_s=1e-6)
    assert f(-6.0) == PENALTY_MIN


def test_objective_is_minimal_near_truth(colony, exact_twilights):
    f = make_objective(exact_twilights, colony)
    assert f(-6.0) < f(-5.0)
    assert f(-6.0) < f(-7.0)
