"""
Snapshot extractor for cmc-hist-ingest.

Turns a rendered, column-resolved table into a batch of
``SnapshotRecord`` for one date.  Body rows are read in document order,
which is taken as the authoritative rank order.

Per-row policy:
  - fewer cells than header columns -> the page had not finished
    rendering; the whole snapshot is retried with a slower scroll.
  - market cap is a sentinel and ``skip_no_market_cap`` is set -> the
    row is skipped (not stored with a null market cap).
  - unreadable rank -> the whole snapshot is retried.
  - any other unparsable number -> fatal.

The batch stops growing at ``max_rows``; reaching ``row_ceiling`` halts
the run, since the caps then need raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from selenium.webdriver.common.by import By

from cmc_hist_ingest.browser.materialize import RenderedTable
from cmc_hist_ingest.config import ExtractConfig
from cmc_hist_ingest.exceptions import (
    DuplicateKeyError,
    NumberFormatError,
    RankFormatError,
    RowCeilingError,
)
from cmc_hist_ingest.outcome import OutcomeKind, StepOutcome
from cmc_hist_ingest.records import SnapshotRecord, epoch_seconds
from cmc_hist_ingest.transforms.columns import ColumnIndex
from cmc_hist_ingest.transforms.numbers import (
    is_sentinel,
    normalize_money,
    normalize_percent,
    normalize_supply,
    parse_rank,
)

logger = logging.getLogger(__name__)


@dataclass
class ExtractResult:
    """Output of one extraction pass.

    ``records`` is only meaningful when ``outcome.ok``; on any other
    outcome it is empty so nothing half-read can reach the store.
    """

    outcome: StepOutcome
    records: list[SnapshotRecord] = field(default_factory=list)
    rows_seen: int = 0
    rows_skipped: int = 0


class SnapshotExtractor:
    """Applies the row policy to every body row of a snapshot table."""

    def __init__(self, config: ExtractConfig) -> None:
        self.config = config

    def extract(self, table: RenderedTable, columns: ColumnIndex, day: date) -> ExtractResult:
        records: list[SnapshotRecord] = []
        keys: set[tuple[int, str]] = set()
        skipped = 0
        seen = 0

        for position, row in enumerate(table.rows, start=1):
            cells = [cell.text for cell in row.find_elements(By.CSS_SELECTOR, "td")]
            seen += 1
            if len(cells) < columns.width:
                logger.warning(
                    "Row %d has %d cells, expected %d; scroll pace too fast",
                    position, len(cells), columns.width,
                )
                return ExtractResult(
                    outcome=StepOutcome.retry(
                        f"row {position} not fully rendered", backoff=True
                    ),
                    rows_seen=seen,
                    rows_skipped=skipped,
                )

            outcome, record = self.parse_row(cells, columns, day, position)
            if outcome.kind is OutcomeKind.SKIP_ROW:
                skipped += 1
                continue
            if not outcome.ok:
                return ExtractResult(outcome=outcome, rows_seen=seen, rows_skipped=skipped)

            key = (record.rank, record.symbol)
            if key in keys:
                err = DuplicateKeyError(
                    f"Snapshot {day} lists rank {record.rank} / {record.symbol!r} twice"
                )
                return ExtractResult(
                    outcome=StepOutcome.fatal(str(err), err),
                    rows_seen=seen,
                    rows_skipped=skipped,
                )
            keys.add(key)
            records.append(record)

            if 0 < self.config.max_rows <= len(records):
                logger.info("Reached max_rows=%d; remaining rows not captured", self.config.max_rows)
                break

        ceiling = self.config.row_ceiling
        if ceiling is not None and len(records) >= ceiling:
            err = RowCeilingError(
                f"Snapshot {day} produced {len(records)} rows (ceiling {ceiling}); "
                "raise extract.max_rows / extract.row_ceiling"
            )
            return ExtractResult(
                outcome=StepOutcome.fatal(str(err), err),
                rows_seen=seen,
                rows_skipped=skipped,
            )

        logger.info(
            "Extracted %d record(s) for %s (%d row(s) skipped)", len(records), day, skipped
        )
        return ExtractResult(
            outcome=StepOutcome.proceed(),
            records=records,
            rows_seen=seen,
            rows_skipped=skipped,
        )

    def parse_row(
        self,
        cells: list[str],
        columns: ColumnIndex,
        day: date,
        position: int = 0,
    ) -> tuple[StepOutcome, SnapshotRecord | None]:
        """Build one record from a row's cell texts.

        Returns:
            ``(outcome, record)``; *record* is set only when the outcome
            is CONTINUE.
        """
        market_cap_text = cells[columns.market_cap]
        if is_sentinel(market_cap_text) and self.config.skip_no_market_cap:
            return StepOutcome.skip_row("no market cap"), None

        try:
            rank = parse_rank(cells[columns.rank])
        except RankFormatError as exc:
            logger.warning("Row %d of %s: %s", position, day, exc)
            return StepOutcome.retry(f"rank unreadable in row {position}"), None

        try:
            volume = (
                normalize_money(cells[columns.volume], "volume_24h").or_none()
                if columns.volume is not None
                else None
            )
            record = SnapshotRecord(
                snapshot_date=day,
                unix_time=epoch_seconds(day),
                rank=rank,
                name=cells[columns.name].strip(),
                symbol=cells[columns.symbol].strip(),
                market_cap=normalize_money(market_cap_text, "market_cap").or_none(),
                price=normalize_money(cells[columns.price], "price").or_none(),
                circulating_supply=normalize_supply(cells[columns.circulating_supply]).or_none(),
                volume_24h=volume,
                percent_change_1h=normalize_percent(
                    cells[columns.change_1h], "percent_change_1h"
                ).or_none(),
                percent_change_24h=normalize_percent(
                    cells[columns.change_24h], "percent_change_24h"
                ).or_none(),
                percent_change_7d=normalize_percent(
                    cells[columns.change_7d], "percent_change_7d"
                ).or_none(),
            )
        except NumberFormatError as exc:
            reason = f"{exc} (snapshot {day}, row {position}, rank {rank}: {cells})"
            return StepOutcome.fatal(reason, exc), None

        return StepOutcome.proceed(), record
