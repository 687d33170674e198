"""Test result manifest plugin — writes .test-manifest.json after each session.

Registered via pytest_plugins in conftest.py. Records outcome counts,
duration and the slowest tests so regressions in render time show up
between runs.
"""

import json
import time
from datetime import datetime, timezone
from pathlib import Path

SLOWEST_TO_KEEP = 10

_start_time: float = 0.0
_counts = {"passed": 0, "failed": 0, "skipped": 0}
_durations: list[tuple[float, str]] = []


def pytest_sessionstart(session):
    global _start_time
    _start_time = time.monotonic()
    _counts.update({"passed": 0, "failed": 0, "skipped": 0})
    _durations.clear()


def pytest_runtest_logreport(report):
    """Count call-phase outcomes and remember durations."""
    if report.when != "call":
        if report.when == "setup" and report.skipped:
            _counts["skipped"] += 1
        return

    if report.passed:
        _counts["passed"] += 1
    elif report.failed:
        _counts["failed"] += 1
    elif report.skipped:
        _counts["skipped"] += 1
    _durations.append((report.duration, report.nodeid))


def pytest_sessionfinish(session, exitstatus):
    """Write the manifest next to pyproject.toml."""
    slowest = sorted(_durations, reverse=True)[:SLOWEST_TO_KEEP]
    manifest = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "framework": "pytest",
        **_counts,
        "duration_seconds": round(time.monotonic() - _start_time, 2),
        "green": _counts["failed"] == 0 and int(exitstatus) == 0,
        "slowest": [
            {"name": name, "duration_s": round(d, 4)} for d, name in slowest
        ],
    }
    root = Path(session.config.rootpath)
    try:
        (root / ".test-manifest.json").write_text(json.dumps(manifest, indent=2) + "\n")
    except OSError:
        # read-only checkouts still get a test run
        pass
