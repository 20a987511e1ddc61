"""
Unit tests for the table exporter (cmc_hist_ingest.export).
"""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pandas as pd
import pytest

from cmc_hist_ingest.exceptions import ExportError
from cmc_hist_ingest.export import export_table
from cmc_hist_ingest.records import RECORD_COLUMNS, SnapshotRecord, epoch_seconds

TODAY = date(2024, 5, 1)
DAYS = [date(2013, 4, 28), date(2013, 5, 5)]


def _fill(store) -> None:
    # Inserted newest first and out of rank order
    for day in reversed(DAYS):
        store.insert_batch([
            SnapshotRecord(day, epoch_seconds(day), 2, "Litecoin", "LTC", price=3.5),
            SnapshotRecord(day, epoch_seconds(day), 1, "Bitcoin", "BTC", price=135.0),
        ])


class TestExportTable:
    """Tests for export_table()."""

    def test_csv(self, store, engine, tmp_path):
        _fill(store)
        path = export_table(engine, "marketcap_snapshots", tmp_path, "csv", today=TODAY)

        assert Path(path).name == "marketcap_snapshots_2024-05-01.csv"
        df = pd.read_csv(path)
        assert list(df.columns) == RECORD_COLUMNS
        assert list(df["symbol"]) == ["BTC", "LTC", "BTC", "LTC"]
        assert list(df["rank"]) == [1, 2, 1, 2]

    def test_parquet(self, store, engine, tmp_path):
        _fill(store)
        path = export_table(engine, "marketcap_snapshots", tmp_path, "parquet", today=TODAY)

        assert path.endswith(".parquet")
        df = pd.read_parquet(path)
        assert len(df) == 4
        assert df["price"].tolist() == [135.0, 3.5, 135.0, 3.5]

    def test_creates_output_dir(self, store, engine, tmp_path):
        out = tmp_path / "exports" / "weekly"
        path = export_table(engine, "marketcap_snapshots", out, today=TODAY)
        assert Path(path).parent == out
        assert pd.read_csv(path).empty

    def test_unsupported_format(self, store, engine, tmp_path):
        with pytest.raises(ExportError, match="Unsupported output format"):
            export_table(engine, "marketcap_snapshots", tmp_path, "xlsx")

    def test_missing_table(self, engine, tmp_path):
        with pytest.raises(ExportError, match="never_created"):
            export_table(engine, "never_created", tmp_path, today=TODAY)
