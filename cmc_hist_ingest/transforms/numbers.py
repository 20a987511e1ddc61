"""
Number parsing transform for cmc-hist-ingest.

Converts the display text of snapshot table cells to typed values.
The historical pages use:
- ``$`` currency markers and comma thousand separators
  (e.g. ``"$1,234.56"``, ``"$12,345,678,901"``)
- ``%`` with comparison markers for tiny moves (e.g. ``"< 0.01%"``)
- a trailing unit annotation on supply (e.g. ``"18,000,000 BTC"``)
- sentinel placeholders for missing values: ``""``, ``"--"``, ``"?"``

Each normalizer returns ``Normalized(value, is_present)``.  Sentinels
give ``(0, False)``; anything else that is not a plain base-10 number
after stripping decoration raises ``NumberFormatError`` -- the page has
broken its format and the run must stop rather than store guesses.

Money and percent fields are ``float``; supply is ``int``.  The two
never coerce into one another.
"""

from __future__ import annotations

import logging
import re
from typing import NamedTuple

from cmc_hist_ingest.exceptions import NumberFormatError, RankFormatError

logger = logging.getLogger(__name__)

SENTINELS = frozenset({"", "--", "?"})

# Supply is stored as BIGINT
_INT64_MAX = 2**63 - 1

_DECIMAL_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")
_INTEGER_RE = re.compile(r"^[+-]?\d+$")

_MONEY_STRIP = str.maketrans("", "", "$,")
_PERCENT_STRIP = str.maketrans("", "", "%,<> ")
_SUPPLY_STRIP = str.maketrans("", "", ", ")


class Normalized(NamedTuple):
    value: float | int
    is_present: bool

    def or_none(self) -> float | int | None:
        """The value, or ``None`` when absent (for storage)."""
        return self.value if self.is_present else None


def is_sentinel(text: str | None) -> bool:
    return text is None or text.strip() in SENTINELS


def _parse_decimal(field: str, raw: str, cleaned: str) -> Normalized:
    if cleaned in SENTINELS:
        return Normalized(0.0, False)
    if not _DECIMAL_RE.match(cleaned):
        raise NumberFormatError(field, raw)
    return Normalized(float(cleaned), True)


def normalize_money(text: str | None, field: str = "money") -> Normalized:
    """Parse a currency cell such as ``"$1,234.56"`` (price, market cap, volume)."""
    if is_sentinel(text):
        return Normalized(0.0, False)
    raw = text.strip()
    return _parse_decimal(field, raw, raw.translate(_MONEY_STRIP))


def normalize_percent(text: str | None, field: str = "percent") -> Normalized:
    """Parse a change cell such as ``"-3.4%"`` or ``"< 0.01%"``."""
    if is_sentinel(text):
        return Normalized(0.0, False)
    raw = text.strip()
    return _parse_decimal(field, raw, raw.translate(_PERCENT_STRIP))


def normalize_supply(text: str | None, field: str = "circulating_supply") -> Normalized:
    """Parse a supply cell such as ``"18,000,000 BTC"``.

    Only the text before the first space is numeric.  Values beyond the
    BIGINT range are stored as null instead of failing the run; some
    hyper-inflated tokens legitimately report them.
    """
    if is_sentinel(text):
        return Normalized(0, False)
    raw = text.strip()
    head = raw.split(" ", 1)[0]
    cleaned = head.translate(_SUPPLY_STRIP)
    if cleaned in SENTINELS:
        return Normalized(0, False)
    if not _INTEGER_RE.match(cleaned):
        raise NumberFormatError(field, raw)
    value = int(cleaned)
    if not -_INT64_MAX - 1 <= value <= _INT64_MAX:
        logger.warning("Supply %s too large for BIGINT, storing null", cleaned)
        return Normalized(0, False)
    return Normalized(value, True)


def parse_rank(text: str | None) -> int:
    """Parse a rank cell.

    Raises:
        RankFormatError: If the cell is empty or not a positive integer.
    """
    cleaned = (text or "").strip()
    if not _INTEGER_RE.match(cleaned):
        raise RankFormatError(f"Unreadable rank {text!r}")
    rank = int(cleaned)
    if rank <= 0:
        raise RankFormatError(f"Non-positive rank {text!r}")
    return rank
