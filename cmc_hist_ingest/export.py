"""
Exporter for cmc-hist-ingest.

Dumps the whole snapshot table to a single file once the series has
caught up.

Output file naming convention:
  {table_name}_{YYYY-MM-DD}.{format}  -- e.g. "marketcap_snapshots_2024-05-01.csv"

CSV is the default; Parquet keeps column dtypes for analytical reads.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Literal

import pandas as pd
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from cmc_hist_ingest.exceptions import ExportError
from cmc_hist_ingest.records import RECORD_COLUMNS

logger = logging.getLogger(__name__)

_SUPPORTED_FORMATS = {"csv", "parquet"}


def _write_dataframe(df: pd.DataFrame, path: Path, output_format: str) -> None:
    """Write a single DataFrame to disk in the specified format.

    Raises:
        ExportError: If writing fails for any reason.
    """
    try:
        if output_format == "csv":
            df.to_csv(path, index=False)
        else:  # parquet
            df.to_parquet(path, index=False, engine="pyarrow")
    except Exception as exc:
        raise ExportError(
            f"Failed to write {path.name} as {output_format}: {exc}"
        ) from exc


def export_table(
    engine: Engine,
    table_name: str,
    output_dir: str | Path,
    output_format: Literal["csv", "parquet"] = "csv",
    today: date | None = None,
) -> str:
    """Write the full snapshot table to ``{table_name}_{today}.{format}``.

    Rows are ordered by (snapshot_date, rank).  The output directory is
    created if needed.

    Returns:
        Path of the written file.

    Raises:
        ExportError: If *output_format* is unsupported, or reading/writing fails.
    """
    if output_format not in _SUPPORTED_FORMATS:
        raise ExportError(
            f"Unsupported output format: '{output_format}'. "
            f"Supported formats: {sorted(_SUPPORTED_FORMATS)}"
        )

    today = today or date.today()
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    file_path = out / f"{table_name}_{today:%Y-%m-%d}.{output_format}"

    try:
        df = pd.read_sql_table(table_name, engine, columns=RECORD_COLUMNS)
    except (SQLAlchemyError, ValueError) as exc:
        raise ExportError(f"Failed to read table {table_name}: {exc}") from exc
    df = df.sort_values(["snapshot_date", "rank"], kind="stable").reset_index(drop=True)

    _write_dataframe(df, file_path, output_format)
    logger.info("Exported table '%s' -> %s (%d rows)", table_name, file_path.name, len(df))
    return str(file_path)
