"""
Ingestion coordinator for cmc-hist-ingest.

Drives the series forward one snapshot date at a time.  For each date
the phases are::

    MATERIALIZING -> RESOLVING -> EXTRACTING -> PERSISTING -> ADVANCING

Each phase reports a ``StepOutcome``; ``_transitions`` maps the outcome
kind to the action taken:

- CONTINUE:        the cursor advances and the watchdog is reset.
- RETRY_SNAPSHOT:  optional scroll backoff, cookie clear and cooldown,
                   then the same date from MATERIALIZING.
- RESTART_SESSION: the browser is torn down and recreated, then the same
                   date from MATERIALIZING.
- FATAL:           logged with the date and re-raised.

The cursor only moves after the store reports a committed batch, so a
fatal stop followed by a re-run resumes at the same date.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from selenium.common.exceptions import StaleElementReferenceException, WebDriverException

from cmc_hist_ingest.browser.materialize import PageMaterializer
from cmc_hist_ingest.browser.session import BrowserSession
from cmc_hist_ingest.config import IngestConfig, RunState, ScheduleConfig
from cmc_hist_ingest.exceptions import (
    DuplicateKeyError,
    LayoutError,
    PersistenceError,
)
from cmc_hist_ingest.extract import SnapshotExtractor
from cmc_hist_ingest.outcome import OutcomeKind, StepOutcome
from cmc_hist_ingest.store import SnapshotStore
from cmc_hist_ingest.transforms.columns import resolve_columns
from cmc_hist_ingest.watchdog import Watchdog

logger = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class Phase(str, Enum):
    MATERIALIZING = "materializing"
    RESOLVING = "resolving"
    EXTRACTING = "extracting"
    PERSISTING = "persisting"
    ADVANCING = "advancing"


@dataclass
class SeriesCursor:
    """Next snapshot date to acquire."""

    next_date: date
    period: timedelta

    @classmethod
    def from_store(cls, store: SnapshotStore, schedule: ScheduleConfig) -> SeriesCursor:
        period = timedelta(days=schedule.period_days)
        latest = store.latest_snapshot_date()
        if latest is None:
            logger.info("No stored snapshots; starting at %s", schedule.epoch_start)
            return cls(schedule.epoch_start, period)
        return cls(latest + period, period)

    def advance(self) -> date:
        self.next_date = self.next_date + self.period
        return self.next_date

    def caught_up(self, today: date) -> bool:
        return self.next_date >= today


@dataclass
class RunSummary:
    """What one ``run()`` did."""

    snapshots: int = 0
    rows_inserted: int = 0
    rows_skipped: int = 0
    retries: int = 0
    session_restarts: int = 0
    first_date: date | None = None
    last_date: date | None = None
    next_date: date | None = None


class IngestionCoordinator:
    """Runs the acquisition loop until the series reaches today.

    Args:
        config: Validated run configuration.
        store: Persistence sink (table must already exist).
        session: Browser session; recreated on watchdog timeouts.
        sleep: Injected for tests.
        today: Clock returning the current date; defaults to UTC today.
        watchdog: Injected for tests; defaults to one closing *session*.
    """

    def __init__(
        self,
        config: IngestConfig,
        store: SnapshotStore,
        session: BrowserSession,
        *,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = utc_today,
        watchdog: Watchdog | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.session = session
        self.sleep = sleep
        self.today = today
        self.state = RunState.from_config(config.browser)
        self.materializer = PageMaterializer(
            config.browser, self.state, config.max_load_more_clicks, sleep
        )
        self.extractor = SnapshotExtractor(config.extract)
        self.phase: Phase | None = None
        self.watchdog = watchdog or Watchdog(
            config.schedule.timeout_minutes * 60, on_fire=session.close
        )
        self._transitions: dict[OutcomeKind, Callable[[StepOutcome, date, RunSummary], None]] = {
            OutcomeKind.RETRY_SNAPSHOT: self._retry,
            OutcomeKind.RESTART_SESSION: self._restart,
            OutcomeKind.FATAL: self._fatal,
        }

    def run(self) -> RunSummary:
        cursor = SeriesCursor.from_store(self.store, self.config.schedule)
        summary = RunSummary(next_date=cursor.next_date)

        with self.watchdog:
            while not cursor.caught_up(self.today()):
                day = cursor.next_date
                # A fire outside any attempt (e.g. during a cooldown) has
                # already closed the session; recover once before retrying.
                if self.watchdog.fired:
                    self._restart(StepOutcome.restart_session("watchdog timeout"), day, summary)
                outcome = self.acquire(day, summary)
                if outcome.kind is not OutcomeKind.FATAL and not outcome.ok and self.watchdog.fired:
                    outcome = StepOutcome.restart_session("watchdog timeout")

                if outcome.ok:
                    self._advance(cursor, day, summary)
                    continue
                self._transitions[outcome.kind](outcome, day, summary)

        logger.info(
            "Series caught up: %d snapshot(s), %d row(s) inserted, next date %s",
            summary.snapshots,
            summary.rows_inserted,
            summary.next_date,
        )
        return summary

    def acquire(self, day: date, summary: RunSummary) -> StepOutcome:
        """Take *day* once through materialize -> resolve -> extract -> persist.

        The watchdog flag is clear on entry, so a fire seen at PERSISTING
        happened during this attempt.
        """
        logger.info("Beginning snapshot %s", day)
        self.phase = Phase.MATERIALIZING
        try:
            driver = self.session.driver
            outcome = self.materializer.materialize(driver, day)
            if not outcome.ok:
                return outcome

            self.phase = Phase.RESOLVING
            table = self.materializer.locate_table(driver)
            if table is None:
                return StepOutcome.retry(
                    "header row absent, likely rate limited",
                    cooldown=self.config.schedule.rate_limit_cooldown,
                    clear_cookies=True,
                )
            columns = resolve_columns(table.header, self.config.columns)

            self.phase = Phase.EXTRACTING
            result = self.extractor.extract(table, columns, day)
            if not result.outcome.ok:
                return result.outcome

            self.phase = Phase.PERSISTING
            if self.watchdog.fired:
                return StepOutcome.restart_session("watchdog timeout")
            inserted = self.store.insert_batch(result.records)
        except (LayoutError, PersistenceError, DuplicateKeyError) as exc:
            return StepOutcome.fatal(f"{self.phase.value}: {exc}", exc)
        except StaleElementReferenceException:
            return StepOutcome.retry(f"page re-rendered while {self.phase.value}")
        except WebDriverException as exc:
            return StepOutcome.restart_session(
                f"browser failure while {self.phase.value}: {exc.msg}"
            )

        logger.info("Inserted %d row(s) for snapshot %s", inserted, day)
        summary.rows_inserted += inserted
        summary.rows_skipped += result.rows_skipped
        return StepOutcome.proceed()

    def _advance(self, cursor: SeriesCursor, day: date, summary: RunSummary) -> None:
        self.phase = Phase.ADVANCING
        summary.snapshots += 1
        summary.first_date = summary.first_date or day
        summary.last_date = day
        summary.next_date = cursor.advance()
        self.watchdog.reset()

    def _retry(self, outcome: StepOutcome, day: date, summary: RunSummary) -> None:
        summary.retries += 1
        logger.warning("Retrying snapshot %s: %s", day, outcome.reason)
        if outcome.backoff:
            self.state.increase_scroll_delay()
        if outcome.clear_cookies:
            self._clear_cookies()
        if outcome.cooldown:
            logger.info("Waiting %.0fs before retrying", outcome.cooldown)
            self.sleep(outcome.cooldown)

    def _restart(self, outcome: StepOutcome, day: date, summary: RunSummary) -> None:
        summary.session_restarts += 1
        logger.warning("Restarting browser session for snapshot %s: %s", day, outcome.reason)
        self.session.restart()
        self.watchdog.reset()

    def _fatal(self, outcome: StepOutcome, day: date, summary: RunSummary) -> None:
        logger.error("Fatal error at snapshot %s: %s", day, outcome.reason)
        raise outcome.error

    def _clear_cookies(self) -> None:
        try:
            self.session.driver.delete_all_cookies()
        except WebDriverException as exc:
            logger.warning("Could not clear cookies: %s", exc)
