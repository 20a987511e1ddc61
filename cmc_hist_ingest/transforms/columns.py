"""
Column resolver for cmc-hist-ingest.

Maps the header row of the currently rendered snapshot table to a
``ColumnIndex`` (semantic field -> column position).  The page layout
drifts across historical dates (the volume column, for instance, is not
offered for the earliest snapshots), so the index is rebuilt for every
snapshot and never persisted.

Resolution rules:
  - Named fields match header text exactly (case-sensitive).
  - ``Rank`` and the other named fields are required; a missing label
    raises ``LayoutError``.
  - Volume is optional: when absent, volume is null for the whole snapshot.
  - The three percent-change columns are taken from fixed positions in
    ``ColumnsConfig.change_columns`` because their header text is
    duplicated/unstable.  Positions are checked against the header width
    before use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cmc_hist_ingest.config import ColumnsConfig
from cmc_hist_ingest.exceptions import LayoutError

logger = logging.getLogger(__name__)

# Named fields that must be present, in the order errors report them
_REQUIRED_FIELDS = ("rank", "name", "symbol", "price", "market_cap", "circulating_supply")


@dataclass(frozen=True)
class ColumnIndex:
    """Field -> column offset for one snapshot.

    Attributes:
        width: Number of header cells; a body row with fewer cells has
            not finished rendering.
        volume: ``None`` when the snapshot has no volume column.
    """

    width: int
    rank: int
    name: int
    symbol: int
    price: int
    market_cap: int
    circulating_supply: int
    volume: int | None
    change_1h: int
    change_24h: int
    change_7d: int


def _absolute(position: int, width: int) -> int:
    """Turn a possibly negative position into an offset inside *width*."""
    offset = position + width if position < 0 else position
    if not 0 <= offset < width:
        raise LayoutError(
            f"Percent-change column position {position} is outside a header "
            f"of {width} columns"
        )
    return offset


def resolve_columns(header: list[str], labels: ColumnsConfig | None = None) -> ColumnIndex:
    """Resolve header cell texts to a ``ColumnIndex``.

    When a label appears more than once the first occurrence wins.

    Args:
        header: Header cell texts in display order.
        labels: Expected labels; defaults to ``ColumnsConfig()``.

    Raises:
        LayoutError: If a required label is missing or a change-column
            position does not fit the header.
    """
    labels = labels or ColumnsConfig()
    positions: dict[str, int] = {}
    for i, text in enumerate(header):
        positions.setdefault(text, i)

    if labels.rank not in positions:
        raise LayoutError(f"Header label {labels.rank!r} not found in {header}")

    found: dict[str, int] = {}
    missing: list[str] = []
    for field in _REQUIRED_FIELDS:
        label = getattr(labels, field)
        if label in positions:
            found[field] = positions[label]
        else:
            missing.append(label)
    if missing:
        raise LayoutError(f"Header labels {missing} not found in {header}")

    width = len(header)
    change_1h, change_24h, change_7d = (_absolute(p, width) for p in labels.change_columns)

    volume = positions.get(labels.volume_label)
    if volume is None:
        logger.info("No %r column; volume is null for this snapshot", labels.volume_label)

    return ColumnIndex(
        width=width,
        volume=volume,
        change_1h=change_1h,
        change_24h=change_24h,
        change_7d=change_7d,
        **found,
    )
