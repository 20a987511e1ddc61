"""
Tagged step outcomes for the ingestion state machine.

Every pipeline step (materialize, resolve, extract, persist) reports
how the coordinator should proceed by returning a ``StepOutcome``
instead of jumping out of nested loops.  The coordinator owns a single
transition table keyed on ``OutcomeKind``:

- CONTINUE:        go to the next phase.
- SKIP_ROW:        used inside the extractor only; the row is dropped.
- RETRY_SNAPSHOT:  re-enter materialization for the same date, after an
                   optional cooldown / cookie clear / scroll backoff.
- RESTART_SESSION: tear down and recreate the browser, then retry the
                   same date.
- FATAL:           log and re-raise ``error``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OutcomeKind(str, Enum):
    CONTINUE = "continue"
    SKIP_ROW = "skip_row"
    RETRY_SNAPSHOT = "retry_snapshot"
    RESTART_SESSION = "restart_session"
    FATAL = "fatal"


@dataclass(frozen=True)
class StepOutcome:
    """Result tag of a pipeline step.

    Attributes:
        kind: Which transition to take.
        reason: Human-readable cause, logged by the coordinator.
        cooldown: Seconds to sleep before retrying (RETRY_SNAPSHOT only).
        clear_cookies: Clear browser cookies before retrying.
        backoff: Increase the sticky scroll delay before retrying.
        error: The exception to raise (FATAL only).
    """

    kind: OutcomeKind
    reason: str = ""
    cooldown: float = 0.0
    clear_cookies: bool = False
    backoff: bool = False
    error: Exception | None = None

    @classmethod
    def proceed(cls) -> StepOutcome:
        return cls(OutcomeKind.CONTINUE)

    @classmethod
    def skip_row(cls, reason: str) -> StepOutcome:
        return cls(OutcomeKind.SKIP_ROW, reason)

    @classmethod
    def retry(
        cls,
        reason: str,
        *,
        cooldown: float = 0.0,
        clear_cookies: bool = False,
        backoff: bool = False,
    ) -> StepOutcome:
        return cls(
            OutcomeKind.RETRY_SNAPSHOT,
            reason,
            cooldown=cooldown,
            clear_cookies=clear_cookies,
            backoff=backoff,
        )

    @classmethod
    def restart_session(cls, reason: str) -> StepOutcome:
        return cls(OutcomeKind.RESTART_SESSION, reason)

    @classmethod
    def fatal(cls, reason: str, error: Exception) -> StepOutcome:
        return cls(OutcomeKind.FATAL, reason, error=error)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.CONTINUE
