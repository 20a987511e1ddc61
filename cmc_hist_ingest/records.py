"""
Snapshot record model for cmc-hist-ingest.

A ``SnapshotRecord`` is one ranked row of one historical snapshot.
Records only exist in memory between extraction and persistence: a
batch is either handed to the store in full or discarded.

Nullable numeric fields use ``None`` for "no value" -- whether the page
showed a sentinel (``--``) or did not offer the column at all for that
date.  The two cases are not distinguished once stored.
"""

from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass
from datetime import date

# Column order of the persisted table (and of exported files)
RECORD_COLUMNS = [
    "snapshot_date",
    "unix_time",
    "rank",
    "name",
    "symbol",
    "market_cap",
    "price",
    "circulating_supply",
    "volume_24h",
    "percent_change_1h",
    "percent_change_24h",
    "percent_change_7d",
]


def epoch_seconds(day: date) -> int:
    """UTC-midnight epoch seconds for *day*."""
    return calendar.timegm(day.timetuple())


@dataclass(frozen=True)
class SnapshotRecord:
    """One (snapshot_date, rank, symbol) row."""

    snapshot_date: date
    unix_time: int
    rank: int
    name: str
    symbol: str
    market_cap: float | None = None
    price: float | None = None
    circulating_supply: int | None = None
    volume_24h: float | None = None
    percent_change_1h: float | None = None
    percent_change_24h: float | None = None
    percent_change_7d: float | None = None

    @property
    def key(self) -> tuple[date, int, str]:
        return (self.snapshot_date, self.rank, self.symbol)

    def as_row(self) -> dict:
        return asdict(self)
