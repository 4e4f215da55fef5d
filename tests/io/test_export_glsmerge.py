import numpy as np
import pandas as pd
import pytest

from gls_calibration.core.model import CalibrationResult, PositionSequence
from gls_calibration.io.export import (
    GLSMERGE_COLUMNS,
    POSITION_COLUMNS,
    POSITION_METHOD,
    convert_to_glsmerge,
    gls_id_from_individual,
    positions_to_frame,
    write_combined_outputs,
    write_csv_atomic,
    write_individual_outputs,
)


@pytest.fixture
def positions_frame():
    t = np.array(
        [
            pd.Timestamp("2017-06-03T07:10:00Z").timestamp(),
            pd.Timestamp("2017-06-03T19:45:00Z").timestamp(),
        ]
    )
    pos = PositionSequence(t, [-115.2, -115.1], [27.9, np.nan])
    cal = CalibrationResult(zenith_deg=95.04, sun_elevation_deg=-5.04)
    return positions_to_frame(pos, "BW01_2017", cal)


def test_positions_frame_layout(positions_frame):
    df = positions_frame
    assert list(df.columns) == POSITION_COLUMNS
    assert (df["individual_id"] == "BW01_2017").all()
    assert (df["method"] == POSITION_METHOD).all()
    assert df["date"].tolist() == ["2017-06-03", "2017-06-03"]
    assert df["zenith"].iloc[0] == pytest.approx(95.04)


def test_gls_id_is_prefix_before_underscore():
    assert gls_id_from_individual("BW01_2017_colony") == "BW01"
    assert gls_id_from_individual("BW01") == "BW01"


def test_convert_to_glsmerge(positions_frame):
    gm = convert_to_glsmerge(positions_frame, "BW01_2017")
    assert list(gm.columns) == GLSMERGE_COLUMNS
    assert gm["Index"].tolist() == [1, 2]
    assert (gm["GLS"] == "BW01").all()
    assert gm["First"].tolist() == ["06/03/2017", "06/03/2017"]
    assert gm["Second"].tolist() == ["03/06/2017 07:10", "03/06/2017 19:45"]
    assert gm["mese"].tolist() == [6, 6]
    assert gm["Type"].tolist() == ["Midnight", "Midday"]
    assert (gm["Quality_1"] == 9).all() and (gm["Quality_2"] == 9).all()
    assert gm["ElevAngle"].tolist() == [-5.0, -5.0]
    assert gm["ID"].isna().all()


def test_convert_to_glsmerge_with_explicit_zenith(positions_frame):
    df = positions_frame.drop(columns=["sun_elevation"])
    gm = convert_to_glsmerge(df, "BW01", zenith=96.26)
    assert gm["ElevAngle"].tolist() == [-6.3, -6.3]
    with pytest.raises(ValueError):
        convert_to_glsmerge(df, "BW01")


def test_convert_to_glsmerge_empty():
    empty = pd.DataFrame(columns=POSITION_COLUMNS)
    gm = convert_to_glsmerge(empty, "BW01", zenith=96.0)
    assert len(gm) == 0
    assert list(gm.columns) == GLSMERGE_COLUMNS


def test_write_csv_atomic_writes_na(tmp_path, positions_frame):
    p = write_csv_atomic(positions_frame, tmp_path / "sub" / "out.csv")
    assert p.exists()
    assert not (tmp_path / "sub" / "out.csv.tmp").exists()
    text = p.read_text(encoding="utf-8")
    assert "2017-06-03 07:10:00" in text
    assert ",NA," in text


def test_individual_and_combined_outputs(tmp_path, positions_frame):
    gm = convert_to_glsmerge(positions_frame, "BW01_2017")
    paths = write_individual_outputs(tmp_path, "BW01_2017", positions_frame, gm)
    assert paths["calibrated"].name == "BW01_2017_calibrated.csv"
    assert paths["glsmerge"].name == "BW01_2017_GLSmergedata.csv"

    log_df = pd.DataFrame([{"individual_id": "BW01_2017", "success": True}])
    summary = pd.DataFrame([{"individual_id": "BW01_2017", "zenith": 95.04}])
    out = write_combined_outputs(tmp_path, summary, positions_frame, gm, log_df)
    assert set(out) == {"processing_log", "summary", "positions", "glsmerge"}
    assert (tmp_path / "GLSmergedata.csv").exists()


def test_combined_outputs_without_success(tmp_path):
    log_df = pd.DataFrame([{"individual_id": "X", "success": False}])
    out = write_combined_outputs(
        tmp_path,
        pd.DataFrame(),
        pd.DataFrame(columns=POSITION_COLUMNS),
        pd.DataFrame(columns=GLSMERGE_COLUMNS),
        log_df,
    )
    assert set(out) == {"processing_log"}
    assert not (tmp_path / "calibration_summary.csv").exists()
