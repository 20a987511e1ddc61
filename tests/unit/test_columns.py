"""
Unit tests for the column resolver (cmc_hist_ingest.transforms.columns).
"""

from __future__ import annotations

import logging

import pytest

from cmc_hist_ingest.config import ColumnsConfig
from cmc_hist_ingest.exceptions import LayoutError
from cmc_hist_ingest.transforms.columns import ColumnIndex, resolve_columns
from tests.conftest import SCENARIO_COLUMNS, SCENARIO_HEADER
from tests.fakes import REAL_HEADER


class TestResolveColumns:
    """Tests for resolve_columns() against well-formed headers."""

    def test_real_layout(self):
        index = resolve_columns(REAL_HEADER)
        assert index == ColumnIndex(
            width=11,
            rank=0,
            name=1,
            symbol=2,
            market_cap=3,
            price=4,
            circulating_supply=5,
            volume=6,
            change_1h=7,
            change_24h=8,
            change_7d=9,
        )

    def test_idempotent(self):
        """Resolving the same header twice yields equal indexes."""
        assert resolve_columns(REAL_HEADER) == resolve_columns(list(REAL_HEADER))

    def test_negative_change_positions(self):
        index = resolve_columns(SCENARIO_HEADER, SCENARIO_COLUMNS)
        assert (index.change_1h, index.change_24h, index.change_7d) == (6, 7, 8)
        assert index.width == 9

    def test_first_occurrence_wins(self):
        header = ["Rank", "Name", "Symbol", "Price", "Market Cap",
                  "Circulating Supply", "Price", "x", "y", "z"]
        index = resolve_columns(header, ColumnsConfig(change_columns=[7, 8, 9]))
        assert index.price == 3

    def test_custom_labels(self):
        labels = ColumnsConfig(rank="#", change_columns=[-3, -2, -1])
        header = ["#"] + SCENARIO_HEADER[1:]
        assert resolve_columns(header, labels).rank == 0


class TestOptionalVolume:
    """Volume is the one named column allowed to be absent."""

    def test_missing_volume_is_none(self, caplog):
        with caplog.at_level(logging.INFO, logger="cmc_hist_ingest.transforms.columns"):
            index = resolve_columns(SCENARIO_HEADER, SCENARIO_COLUMNS)
        assert index.volume is None
        assert "Volume (24h)" in caplog.text

    def test_lowercase_volume_label_does_not_match(self):
        header = REAL_HEADER[:6] + ["volume (24h)"] + REAL_HEADER[7:]
        assert resolve_columns(header).volume is None


class TestLayoutErrors:
    """Missing labels and impossible positions raise LayoutError."""

    def test_rank_missing_is_fatal(self):
        header = [h if h != "Rank" else "#" for h in REAL_HEADER]
        with pytest.raises(LayoutError, match="Rank"):
            resolve_columns(header)

    def test_rank_reported_before_other_labels(self):
        with pytest.raises(LayoutError, match="'Rank'"):
            resolve_columns(["Foo", "Bar"])

    def test_other_required_label_missing(self):
        header = [h for h in REAL_HEADER if h != "Circulating Supply"]
        with pytest.raises(LayoutError, match="Circulating Supply"):
            resolve_columns(header)

    def test_empty_header(self):
        with pytest.raises(LayoutError):
            resolve_columns([])

    def test_change_position_out_of_range(self):
        """The default positions do not fit a 9-column header."""
        with pytest.raises(LayoutError, match="outside a header"):
            resolve_columns(SCENARIO_HEADER)

    def test_negative_position_out_of_range(self):
        labels = ColumnsConfig(change_columns=[-3, -2, -20])
        with pytest.raises(LayoutError):
            resolve_columns(SCENARIO_HEADER, labels)
