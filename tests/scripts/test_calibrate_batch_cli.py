# tests/scripts/test_calibrate_batch_cli.py
"""
End-to-end and error-path tests for `calibrate_batch.py`.

Covers:
- `--examples` output;
- configuration errors (missing site, unknown profile, bad --exclude-period);
- `--dump-effective-config` precedence (profile < flags < --set);
- missing input directory and empty input directory;
- happy path with one good and one failing individual.

The script runs in a subprocess with the repository `src/` on PYTHONPATH and
a temporary working directory (where `config/<name>.toml` profiles live).
"""

from __future__ import annotations

import os
import subprocess
import sys
import tomllib
from pathlib import Path

from gls_calibration.core.model import LightSeries
from gls_calibration.io.lux import write_lux_file

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _run(args, cwd: Path) -> subprocess.CompletedProcess:
    env = os.environ.copy()
    src = str(_repo_root() / "src")
    env["PYTHONPATH"] = src + os.pathsep + env.get("PYTHONPATH", "")
    env["LOG_LEVEL"] = "WARNING"
    cmd = [sys.executable, str(_repo_root() / "scripts" / "calibrate_batch.py"), *args]
    return subprocess.run(cmd, cwd=cwd, env=env, capture_output=True, text=True)


SITE = ["--site-lat", "28.0", "--site-lon", "-115.0"]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_examples(tmp_path):
    res = _run(["--examples"], tmp_path)
    assert res.returncode == 0
    assert "Command-line usage examples" in res.stdout
    assert "--site-lat 27.85" in res.stdout
    assert "Parameters (selected)" not in res.stdout


def test_missing_site_is_usage_error(tmp_path):
    res = _run(["--data", str(tmp_path)], tmp_path)
    assert res.returncode == 2
    assert "site coordinates are required" in res.stderr


def test_unknown_profile_is_usage_error(tmp_path):
    res = _run(["--config", "nope", "--data", str(tmp_path), *SITE], tmp_path)
    assert res.returncode == 2
    assert "nope.toml" in res.stderr


def test_bad_exclude_period(tmp_path):
    res = _run(["--data", str(tmp_path), *SITE, "--exclude-period", "2017-03-06"], tmp_path)
    assert res.returncode == 2
    assert "START:END" in res.stderr


def test_dump_effective_config_precedence(tmp_path):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "colony.toml").write_text(
        "[site]\nlatitude = 27.85\nlongitude = -115.17\nname = \"Isla Natividad\"\n"
        "[detection]\nthreshold = 3.0\n"
        "[calibration]\nelevation_interval_deg = [-10.0, 0.0]\n",
        encoding="utf-8",
    )
    res = _run(
        [
            "--config",
            "colony",
            "--threshold",
            "1.5",
            "--elevation-max",
            "1.0",
            "--set",
            "site.name=Natividad",
            "--exclude-period",
            "2017-03-06:2017-04-03",
            "--dump-effective-config",
        ],
        tmp_path,
    )
    assert res.returncode == 0, res.stderr
    cfg = tomllib.loads(res.stdout)
    assert cfg["site"] == {"latitude": 27.85, "longitude": -115.17, "name": "Natividad"}
    assert cfg["detection"]["threshold"] == 1.5
    assert cfg["calibration"]["elevation_interval_deg"] == [-10.0, 1.0]
    assert cfg["positions"]["exclude_periods"] == [["2017-03-06", "2017-04-03"]]


def test_missing_data_directory(tmp_path):
    res = _run(["--data", str(tmp_path / "absent"), *SITE], tmp_path)
    assert res.returncode == 1
    assert "data directory not found" in res.stderr


def test_no_lux_files(tmp_path):
    (tmp_path / "raw").mkdir()
    (tmp_path / "raw" / "notes.txt").write_text("nothing", encoding="utf-8")
    res = _run(["--data", str(tmp_path / "raw"), *SITE], tmp_path)
    assert res.returncode == 1
    assert "no .lux files" in res.stderr


def test_happy_path(tmp_path, stationary_light):
    raw = tmp_path / "raw"
    raw.mkdir()
    write_lux_file(raw / "BW01_2024.lux", stationary_light)
    short = LightSeries(stationary_light.times[:50], stationary_light.light[:50])
    write_lux_file(raw / "BW02_short.lux", short)
    out = tmp_path / "results"

    res = _run(
        ["--data", str(raw), "--outdir", str(out), *SITE, "--log-dir", str(out / "logs")],
        tmp_path,
    )
    assert res.returncode == 0, res.stderr
    assert "Total individuals: 2" in res.stdout
    assert "Successfully processed: 1" in res.stdout
    assert "Failed: 1" in res.stdout
    assert "[OK] BW01_2024" in res.stdout
    assert "[FAILED] BW02_short: calibration_window" in res.stdout
    assert (out / "data" / "calibration_summary.csv").exists()
    assert (out / "data" / "processing_log.csv").exists()
    assert (out / "logs" / "run.jsonl").exists()
