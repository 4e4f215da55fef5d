import json
import logging
import sys

from gls_calibration.logging_config import (
    JsonFormatter,
    StepTimer,
    get_run_id,
    reset_logging,
    setup_logging,
)


def _root_handlers_of(kind):
    return [h for h in logging.getLogger().handlers if type(h) is kind]


def test_setup_logging_is_idempotent(clean_logging):
    setup_logging()
    setup_logging()
    assert len(_root_handlers_of(logging.StreamHandler)) == 1
    reset_logging()
    assert _root_handlers_of(logging.StreamHandler) == []


def test_json_lines_file_carries_extras(clean_logging, tmp_path):
    setup_logging(log_dir=str(tmp_path), console_level=logging.ERROR)
    log = logging.getLogger("gls_calibration.test")
    log.info(
        "calibrated %s",
        "BW01",
        extra={"individual_id": "BW01", "stage": "calibration", "counts": {"n": 4}},
    )
    log.debug("detail")
    for h in logging.getLogger().handlers:
        h.flush()

    lines = (tmp_path / "run.jsonl").read_text(encoding="utf-8").splitlines()
    records = [json.loads(line) for line in lines]
    first = records[0]
    assert first["message"] == "calibrated BW01"
    assert first["level"] == "INFO"
    assert first["individual_id"] == "BW01"
    assert first["stage"] == "calibration"
    assert first["counts"] == {"n": 4}
    assert first["run_id"] == get_run_id()
    assert any(r["message"] == "detail" for r in records)


def test_json_formatter_includes_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        exc_info = sys.exc_info()
    record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), exc_info)
    out = json.loads(JsonFormatter().format(record))
    assert out["message"] == "failed"
    assert "ValueError: boom" in out["exception"]
    assert "individual_id" not in out


def test_log_level_from_environment(clean_logging, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    setup_logging()
    (console,) = _root_handlers_of(logging.StreamHandler)
    assert console.level == logging.WARNING


def test_step_timer_measures_elapsed_time():
    with StepTimer() as t:
        sum(range(1000))
    assert t.elapsed >= 0.0
