"""Runtime entry point for presentation layers embedding the duotone core.

There is no CLI: a UI imports this module, calls init_runtime() once and
drives a DuotoneSession per user.
"""

import logging
import os
from pathlib import Path
from typing import Callable

import sentry_sdk

from _version import __version__
from diagnostics import init_diagnostics
from engine.mapping import ColorMapping, parse_mapping
from engine.session import DuotoneSession, SessionState
from security import strip_pii

logger = logging.getLogger(__name__)

CONSENT_PATH = "~/.chromaflow/telemetry_consent"

_initialized = False


def _telemetry_dsn() -> str:
    """Consent-gated DSN: empty unless the consent file says 'yes'."""
    consent = Path(os.path.expanduser(CONSENT_PATH))
    if consent.exists() and consent.read_text().strip() == "yes":
        return os.environ.get("SENTRY_DSN", "")
    return ""


def init_sentry():
    sentry_sdk.init(
        dsn=_telemetry_dsn(),
        release=f"chromaflow@{__version__}",
        environment=os.environ.get("SENTRY_ENV", "development"),
        traces_sample_rate=0.1,
        before_send=strip_pii,
        max_breadcrumbs=50,
    )


def init_runtime(with_diagnostics: bool = True):
    """Initialise Sentry and diagnostics once per process."""
    global _initialized
    if _initialized:
        return
    init_sentry()
    if with_diagnostics:
        init_diagnostics()
    _initialized = True
    logger.info("ChromaFlow %s ready", __version__)


def create_session(
    options: dict | ColorMapping | None = None,
    on_change: Callable[[SessionState], None] | None = None,
) -> DuotoneSession:
    """Build a session from presentation-layer options or a ColorMapping."""
    if options is None or isinstance(options, dict):
        mapping = parse_mapping(options)
    else:
        mapping = options
    return DuotoneSession(mapping=mapping, on_change=on_change)
