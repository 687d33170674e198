"""Processing session — last-writer-wins background rendering.

Every upload or parameter change takes a new generation ticket and renders
in a worker thread. When a worker finishes, its result is settled against
the current state: only the latest ticket may change what is displayed,
older completions are discarded as SUPERSEDED.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable

import sentry_sdk

from engine import pipeline
from engine.mapping import DEFAULT_MAPPING, ColorMapping
from engine.pipeline import PipelineResult, PipelineStatus
from imaging.buffer import PixelBuffer
from imaging.encoder import ImageArtifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionState:
    """Everything the presentation layer renders. Replaced, never mutated."""

    original: PixelBuffer | None = None
    artifact: ImageArtifact | None = None
    mapping: ColorMapping = DEFAULT_MAPPING
    processing: bool = False
    generation: int = 0
    notification: str | None = None

    def to_dict(self) -> dict:
        return {
            "has_original": self.original is not None,
            "has_artifact": self.artifact is not None,
            "mapping": self.mapping.to_options(),
            "processing": self.processing,
            "generation": self.generation,
            "notification": self.notification,
        }


def begin(state: SessionState, mapping: ColorMapping | None = None) -> SessionState:
    """Issue a new generation ticket and mark the state as processing."""
    return replace(
        state,
        mapping=mapping if mapping is not None else state.mapping,
        processing=True,
        generation=state.generation + 1,
        notification=None,
    )


def settle(
    state: SessionState, ticket: int, result: PipelineResult
) -> tuple[SessionState, PipelineStatus]:
    """Fold a finished pipeline result into the state.

    Returns the new state and the effective outcome. A ticket older than
    the current generation leaves the state untouched (SUPERSEDED).
    """
    if ticket != state.generation:
        return state, PipelineStatus.SUPERSEDED

    if result.status == PipelineStatus.SUCCESS:
        return (
            replace(
                state,
                original=result.original,
                artifact=result.artifact,
                processing=False,
                notification=None,
            ),
            PipelineStatus.SUCCESS,
        )

    # Failure clears both so an original/result pair never mismatches
    return (
        replace(
            state,
            original=None,
            artifact=None,
            processing=False,
            notification=result.error or pipeline.GENERIC_ERROR,
        ),
        PipelineStatus.FAILURE,
    )


@dataclass
class _Job:
    ticket: int
    mapping: ColorMapping
    thread: threading.Thread | None = field(default=None, repr=False)


class DuotoneSession:
    """Owns the displayed artifact and processing flag for one user.

    Args:
        mapping:   Initial ColorMapping (defaults to the pink/green duotone).
        on_change: Called with every committed SessionState (from worker
                   threads). Used to surface notifications to the user.
    """

    def __init__(
        self,
        mapping: ColorMapping = DEFAULT_MAPPING,
        on_change: Callable[[SessionState], None] | None = None,
    ):
        self._lock = threading.Lock()
        self._state = SessionState(mapping=mapping)
        self._jobs: list[_Job] = []
        self._on_change = on_change

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    def upload(
        self,
        source,
        mapping: ColorMapping | None = None,
        mime_type: str | None = None,
    ) -> int:
        """Start rendering a new source. Returns the generation ticket.

        The previous original is dropped immediately so it can never be
        paired with the new source's result.
        """
        with self._lock:
            self._state = replace(begin(self._state, mapping), original=None)
            ticket = self._state.generation
            effective = self._state.mapping
        self._notify()
        logger.debug("Upload accepted as generation %d", ticket)
        return self._spawn(
            ticket,
            effective,
            lambda: pipeline.process_source(source, effective, mime_type=mime_type),
        )

    def set_mapping(self, mapping: ColorMapping) -> int | None:
        """Re-render the retained original with new parameters.

        Returns the generation ticket, or None when there is no original yet
        (the mapping is recorded for the next upload).
        """
        with self._lock:
            original = self._state.original
            if original is None:
                self._state = replace(self._state, mapping=mapping)
                return None
            self._state = begin(self._state, mapping)
            ticket = self._state.generation
        self._notify()
        logger.debug("Parameter change accepted as generation %d", ticket)
        return self._spawn(
            ticket, mapping, lambda: pipeline.process_original(original, mapping)
        )

    def clear(self):
        """Drop original and artifact ("New Photo"); pending work is superseded."""
        with self._lock:
            self._state = replace(
                self._state,
                original=None,
                artifact=None,
                processing=False,
                generation=self._state.generation + 1,
                notification=None,
            )
        self._notify()

    def wait(self, timeout: float | None = None) -> SessionState:
        """Join outstanding workers, including follow-up renders they start."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                pending = [j for j in self._jobs if j.thread and j.thread.is_alive()]
            if not pending:
                break
            for job in pending:
                remaining = None
                if deadline is not None:
                    remaining = max(0.0, deadline - time.monotonic())
                job.thread.join(remaining)
            if deadline is not None and time.monotonic() >= deadline:
                break
        return self.state

    def _spawn(
        self,
        ticket: int,
        mapping: ColorMapping,
        work: Callable[[], PipelineResult],
    ) -> int:
        job = _Job(ticket=ticket, mapping=mapping)
        thread = threading.Thread(
            target=self._run, args=(job, work), name=f"duotone-{ticket}", daemon=True
        )
        job.thread = thread
        with self._lock:
            self._jobs = [j for j in self._jobs if j.thread and j.thread.is_alive()]
            self._jobs.append(job)
            thread.start()
        return ticket

    def _run(self, job: _Job, work: Callable[[], PipelineResult]):
        try:
            result = work()
        except Exception as e:
            # pipeline entry points are not supposed to raise
            sentry_sdk.capture_exception(e)
            logger.exception("Render worker crashed")
            result = PipelineResult(
                status=PipelineStatus.FAILURE,
                error=pipeline.GENERIC_ERROR,
                error_type=type(e).__name__,
            )

        with self._lock:
            rerender = (
                job.ticket == self._state.generation
                and result.ok
                and self._state.mapping != job.mapping
            )
            if rerender:
                # Parameters changed while the upload was decoding: keep the
                # decoded original but never present the outdated artifact.
                self._state = replace(begin(self._state), original=result.original)
                ticket = self._state.generation
                latest_mapping = self._state.mapping
                original = result.original
            else:
                self._state, outcome = settle(self._state, job.ticket, result)

        if rerender:
            logger.debug(
                "Generation %d rendered with outdated parameters, re-rendering as %d",
                job.ticket,
                ticket,
            )
            self._spawn(
                ticket,
                latest_mapping,
                lambda: pipeline.process_original(original, latest_mapping),
            )
            return

        if outcome == PipelineStatus.SUPERSEDED:
            logger.debug("Discarded superseded result for generation %d", job.ticket)
            return
        if outcome == PipelineStatus.FAILURE:
            logger.warning(
                "Generation %d failed: %s", job.ticket, result.error_type
            )
        self._notify()

    def _notify(self):
        if self._on_change is None:
            return
        try:
            self._on_change(self.state)
        except Exception:
            logger.exception("on_change callback failed")
