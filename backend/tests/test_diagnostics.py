"""Tests for diagnostics — crash handler, structured logging, faulthandler."""

import json
import logging
import os
import sys
import threading
import time
from unittest.mock import patch

import pytest

import diagnostics
from diagnostics import (
    FAULT_FILENAME,
    LOG_FILENAME,
    MAX_CRASH_REPORTS,
    MAX_LOG_AGE_DAYS,
    JSONFormatter,
    _cleanup_old_crash_reports,
    _cleanup_old_logs,
    _validate_log_dir,
    setup_excepthook,
    setup_faulthandler,
    setup_structured_logging,
    write_crash_report,
)

pytestmark = pytest.mark.smoke


@pytest.fixture
def crash_dir(tmp_path):
    d = tmp_path / "crash_reports"
    d.mkdir()
    return d


@pytest.fixture
def restore_hooks():
    saved = sys.excepthook, threading.excepthook
    yield
    sys.excepthook, threading.excepthook = saved


def _exc_info(exc):
    try:
        raise exc
    except type(exc):
        return sys.exc_info()


def test_write_crash_report_fields(crash_dir):
    path = write_crash_report(*_exc_info(ValueError("bad pixel")), str(crash_dir))
    data = json.loads(open(path).read())
    assert data["exception_type"] == "ValueError"
    assert data["exception_message"] == "bad pixel"
    assert data["traceback"]


def test_crash_report_permissions(crash_dir):
    path = write_crash_report(*_exc_info(RuntimeError("x")), str(crash_dir))
    assert os.stat(path).st_mode & 0o777 == 0o600


def test_crash_report_strips_home(crash_dir):
    home = os.path.expanduser("~")
    path = write_crash_report(
        *_exc_info(FileNotFoundError(f"{home}/Pictures/me.png")), str(crash_dir)
    )
    assert home not in open(path).read()


def test_old_crash_reports_cleaned_up(crash_dir):
    for i in range(10):
        f = crash_dir / f"crash_2024010{i}T000000Z.json"
        f.write_text("{}")
        os.utime(f, (1704067200 + i * 3600, 1704067200 + i * 3600))

    _cleanup_old_crash_reports(str(crash_dir))

    assert len(list(crash_dir.glob("crash_*.json"))) == MAX_CRASH_REPORTS


def test_excepthook_writes_and_chains(crash_dir, restore_hooks):
    setup_excepthook(str(crash_dir))
    with patch("sys.__excepthook__") as original:
        sys.excepthook(*_exc_info(KeyError("k")))
        original.assert_called_once()
    assert len(list(crash_dir.glob("crash_*.json"))) == 1


def test_excepthook_failure_doesnt_recurse(crash_dir, restore_hooks):
    setup_excepthook(str(crash_dir))
    with patch("diagnostics.write_crash_report", side_effect=RuntimeError("broken")):
        with patch("sys.__excepthook__") as original:
            sys.excepthook(*_exc_info(TypeError("t")))
            original.assert_called_once()


def test_thread_excepthook_writes_report(crash_dir, restore_hooks):
    setup_excepthook(str(crash_dir))

    def worker():
        raise RuntimeError("worker died")

    with patch("threading.__excepthook__") as original:
        t = threading.Thread(target=worker)
        t.start()
        t.join()
        original.assert_called_once()
    assert len(list(crash_dir.glob("crash_*.json"))) == 1


def test_json_formatter():
    record = logging.LogRecord("engine.mapper", logging.INFO, __file__, 1, "took %dms", (5,), None)
    entry = json.loads(JSONFormatter().format(record))
    assert entry["level"] == "INFO"
    assert entry["logger"] == "engine.mapper"
    assert entry["message"] == "took 5ms"
    assert "exception" not in entry


def test_json_formatter_includes_exception():
    record = logging.LogRecord(
        "x", logging.ERROR, __file__, 1, "failed", (), _exc_info(ValueError("v"))
    )
    entry = json.loads(JSONFormatter().format(record))
    assert entry["exception"]["type"] == "ValueError"


def test_structured_logging_writes_json(tmp_path, monkeypatch):
    monkeypatch.setattr(diagnostics, "APP_DIR", str(tmp_path))
    monkeypatch.setenv("CHROMAFLOW_LOG_LEVEL", "DEBUG")
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        log_dir = setup_structured_logging(str(tmp_path / "logs"))
        logging.getLogger("test.diag").info("hello %s", "world")
        for h in root.handlers:
            h.flush()
        lines = (tmp_path / "logs" / "chromaflow.log").read_text().splitlines()
        assert json.loads(lines[-1])["message"] == "hello world"
        assert log_dir == os.path.realpath(str(tmp_path / "logs"))
    finally:
        for h in root.handlers[:]:
            if h not in before:
                root.removeHandler(h)
                h.close()
        root.setLevel(level)


def test_log_dir_outside_app_dir_rejected():
    result = _validate_log_dir("/tmp/evil/logs")
    assert result == os.path.expanduser("~/.chromaflow/logs")


def test_log_dir_inside_app_dir_accepted():
    test_dir = os.path.expanduser("~/.chromaflow/custom-logs")
    assert _validate_log_dir(test_dir) == os.path.realpath(test_dir)


def test_empty_log_dir_uses_default():
    assert _validate_log_dir("") == os.path.expanduser("~/.chromaflow/logs")


def test_faulthandler_writes_to_own_file(tmp_path):
    with patch("diagnostics.faulthandler.enable") as enable:
        setup_faulthandler(str(tmp_path))
    fault_path = tmp_path / FAULT_FILENAME
    assert fault_path.exists()
    assert os.stat(fault_path).st_mode & 0o777 == 0o600
    assert enable.call_args.kwargs["all_threads"] is True
    enable.call_args.kwargs["file"].close()


def test_faulthandler_unwritable_dir_logs_warning(tmp_path, caplog):
    with patch("diagnostics.faulthandler.enable") as enable:
        with caplog.at_level(logging.WARNING, logger="diagnostics"):
            setup_faulthandler(str(tmp_path / "missing"))
    enable.assert_not_called()
    assert "faulthandler" in caplog.text


def test_old_rotated_logs_cleaned_up(tmp_path):
    stale = tmp_path / f"{LOG_FILENAME}.3"
    fresh = tmp_path / f"{LOG_FILENAME}.1"
    unrelated = tmp_path / "notes.txt"
    for f in (stale, fresh, unrelated):
        f.write_text("x")
    old = time.time() - (MAX_LOG_AGE_DAYS + 1) * 86400
    os.utime(stale, (old, old))
    os.utime(unrelated, (old, old))

    _cleanup_old_logs(str(tmp_path))

    assert not stale.exists()
    assert fresh.exists()
    assert unrelated.exists()


def test_init_diagnostics_wires_all_layers(tmp_path):
    with patch("diagnostics.setup_structured_logging", return_value=str(tmp_path)) as logs, \
            patch("diagnostics.setup_faulthandler") as fault, \
            patch("diagnostics.setup_excepthook") as hook:
        diagnostics.init_diagnostics()
    logs.assert_called_once_with()
    fault.assert_called_once_with(str(tmp_path))
    hook.assert_called_once_with()
