import numpy as np
import pandas as pd
import pytest

from gls_calibration.core.errors import InvalidInputError
from gls_calibration.core.model import (
    EphemerisState,
    LightSeries,
    PipelineConfig,
    PositionSequence,
    SiteCoordinate,
    TwilightEvent,
    TwilightList,
    from_posix,
    iso_utc,
    to_posix,
)


def test_to_posix_accepts_numbers_strings_and_timestamps():
    assert to_posix(0.0)[0] == 0.0
    assert to_posix("1970-01-02T00:00:00Z")[0] == 86400.0
    assert to_posix(pd.Timestamp("2024-01-01", tz="UTC"))[0] == 1704067200.0
    # naive datetimes are UTC
    assert to_posix(np.datetime64("2024-01-01T00:00:00"))[0] == 1704067200.0


def test_to_posix_rejects_booleans():
    with pytest.raises(InvalidInputError):
        to_posix([True, False])


def test_from_posix_and_iso_utc():
    idx = from_posix([1704067200.0])
    assert str(idx.tz) == "UTC"
    assert idx[0] == pd.Timestamp("2024-01-01", tz="UTC")
    assert iso_utc(1704067200.0) == "2024-01-01T00:00:00Z"


def test_site_coordinate_validates_ranges():
    SiteCoordinate(90.0, -180.0)
    with pytest.raises(ValueError):
        SiteCoordinate(91.0, 0.0)
    with pytest.raises(ValueError):
        SiteCoordinate(0.0, 181.0)


def test_light_series_drops_missing_and_sorts():
    s = LightSeries([30.0, 10.0, np.nan, 20.0], [3.0, 1.0, 5.0, np.nan])
    assert list(s.times) == [10.0, 30.0]
    assert list(s.light) == [1.0, 3.0]
    assert not s.times.flags.writeable


def test_light_series_between_is_inclusive():
    s = LightSeries(np.arange(10.0), np.ones(10))
    assert list(s.between(2.0, 5.0).times) == [2.0, 3.0, 4.0, 5.0]
    assert len(s.between(8.0)) == 2


def test_light_series_from_frame_requires_columns():
    with pytest.raises(InvalidInputError):
        LightSeries.from_frame(pd.DataFrame({"time": [1], "Light": [1.0]}))


def test_light_series_frame_round_trip(square_wave_frame):
    s = LightSeries.from_frame(square_wave_frame)
    assert len(s) == 72
    back = s.to_frame()
    assert list(back.columns) == ["Date", "Light"]
    assert back["Date"].iloc[0] == pd.Timestamp("2024-01-01", tz="UTC")


def test_twilight_list_is_sorted_and_counts_directions():
    twl = TwilightList([200.0, 100.0, 300.0], [False, True, True])
    assert list(twl.times) == [100.0, 200.0, 300.0]
    assert list(twl.rise) == [True, False, True]
    assert twl.n_rise == 2 and twl.n_set == 1
    assert twl.has_both_directions()
    assert isinstance(twl[0], TwilightEvent)


def test_twilight_list_rejects_bad_input():
    with pytest.raises(InvalidInputError):
        TwilightList([1.0, 2.0], [True])
    with pytest.raises(InvalidInputError):
        TwilightList([1.0, np.nan], [True, False])


def test_twilight_list_gaps_hours():
    twl = TwilightList([0.0, 3600.0, 3 * 3600.0], [True, False, True])
    gaps = twl.gaps_hours()
    assert np.isnan(gaps[0])
    assert list(gaps[1:]) == [1.0, 2.0]


def test_twilight_list_frame_round_trip():
    twl = TwilightList([0.0, 43200.0], [True, False])
    df = twl.to_frame()
    assert list(df.columns) == ["Twilight", "Rise"]
    again = TwilightList.from_frame(df)
    assert list(again.times) == [0.0, 43200.0]
    assert list(again.rise) == [True, False]


def test_ephemeris_state_units():
    st = EphemerisState(
        solar_time_deg=90.0, equation_of_time_min=0.0, sin_dec=0.5, cos_dec=np.sqrt(0.75)
    )
    assert st.solar_time_min == pytest.approx(360.0)
    assert st.declination_deg == pytest.approx(30.0)


def test_position_sequence_frame_and_select():
    pos = PositionSequence([0.0, 86400.0], [-115.0, -116.0], [28.0, 29.0])
    assert len(pos.select([False, True])) == 1
    df = pos.to_frame()
    assert list(df.columns) == ["datetime", "Longitude", "Latitude"]


def test_pipeline_config_from_dict_coerces_and_warns(caplog):
    cfg = PipelineConfig.from_dict(
        {
            "detection": {"threshold": 3},
            "calibration": {"min_twilights": 4, "elevation_interval_deg": [-10, 0]},
            "positions": {"exclude_periods": [["2024-03-01", "2024-03-31"]]},
            "filter": {"not_a_key": 1},
            "site": {"latitude": 1.0},
        }
    )
    assert cfg.detection.threshold == 3.0
    assert isinstance(cfg.detection.threshold, float)
    assert cfg.calibration.min_twilights == 4
    assert cfg.calibration.elevation_interval_deg == (-10.0, 0.0)
    assert cfg.positions.exclude_periods == (("2024-03-01", "2024-03-31"),)
    assert "not_a_key" in caplog.text


@pytest.mark.parametrize(
    "section",
    [
        {"detection": {"threshold": "high"}},
        {"calibration": {"min_twilights": 2.5}},
        {"calibration": {"elevation_interval_deg": [-10.0]}},
        {"detection": {"threshold": True}},
        {"filter": 3},
    ],
)
def test_pipeline_config_from_dict_rejects_wrong_types(section):
    with pytest.raises(ValueError):
        PipelineConfig.from_dict(section)
