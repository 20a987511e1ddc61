"""
Persistence sink for cmc-hist-ingest.

Stores snapshot records in one relational table keyed by
``(snapshot_date, rank, symbol)`` through SQLAlchemy Core.  PostgreSQL
is the production target; SQLite works too (and is what the tests use).

Guarantees:
- A batch is written in a single transaction: all rows or none.
- Re-submitting an already committed batch inserts nothing and leaves
  the stored rows untouched (conflicting keys are ignored).
- Two records with the same key *inside* one batch are a bug upstream
  and raise ``DuplicateKeyError`` before anything is written.

The series cursor is derived from the store: ``latest_snapshot_date()``
returns ``None`` when the table does not exist yet (or is empty).
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    func,
    inspect,
    insert,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from cmc_hist_ingest.exceptions import DuplicateKeyError, PersistenceError
from cmc_hist_ingest.records import SnapshotRecord

logger = logging.getLogger(__name__)

KEY_COLUMNS = ("snapshot_date", "rank", "symbol")


def build_table(table_name: str, metadata: MetaData | None = None) -> Table:
    """Table definition for snapshot records."""
    metadata = metadata if metadata is not None else MetaData()
    return Table(
        table_name,
        metadata,
        Column("snapshot_date", Date, primary_key=True),
        Column("unix_time", BigInteger),
        Column("rank", Integer, primary_key=True, autoincrement=False),
        Column("name", String(255)),
        Column("symbol", String(30), primary_key=True),
        Column("market_cap", Numeric(asdecimal=False)),
        Column("price", Numeric(asdecimal=False)),
        Column("circulating_supply", BigInteger),
        Column("volume_24h", Numeric(asdecimal=False)),
        Column("percent_change_1h", Numeric(12, 2, asdecimal=False)),
        Column("percent_change_24h", Numeric(12, 2, asdecimal=False)),
        Column("percent_change_7d", Numeric(12, 2, asdecimal=False)),
    )


class SnapshotStore:
    """Read/write access to the snapshot table."""

    def __init__(self, engine: Engine, table_name: str = "marketcap_snapshots") -> None:
        self.engine = engine
        self.table_name = table_name
        self.table = build_table(table_name)

    def exists(self) -> bool:
        return inspect(self.engine).has_table(self.table_name)

    def ensure_table(self) -> None:
        """Create the table if it is absent."""
        if not self.exists():
            logger.info("Table %s does not exist, creating it", self.table_name)
        self.table.create(self.engine, checkfirst=True)

    def latest_snapshot_date(self) -> date | None:
        """Most recent stored snapshot date, or ``None`` for a missing/empty table."""
        if not self.exists():
            return None
        with self.engine.connect() as conn:
            latest = conn.execute(select(func.max(self.table.c.snapshot_date))).scalar()
        if latest is not None:
            logger.info("Most recent stored snapshot is %s", latest)
        return latest

    def count_rows(self, day: date | None = None) -> int:
        with self.engine.connect() as conn:
            return self._count(conn, [day] if day is not None else None)

    def read_snapshot(self, day: date) -> list[dict]:
        """Stored rows for *day*, ordered by rank."""
        stmt = (
            select(self.table)
            .where(self.table.c.snapshot_date == day)
            .order_by(self.table.c.rank)
        )
        with self.engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]

    def insert_batch(self, records: list[SnapshotRecord]) -> int:
        """Write *records* atomically.

        Returns:
            Number of rows actually inserted (0 when the batch was already
            committed).

        Raises:
            DuplicateKeyError: If the batch repeats a key.
            PersistenceError: If the database rejects the write.
        """
        if not records:
            return 0

        seen: set[tuple] = set()
        for record in records:
            if record.key in seen:
                raise DuplicateKeyError(f"Batch repeats key {record.key}")
            seen.add(record.key)

        rows = [record.as_row() for record in records]
        days = sorted({record.snapshot_date for record in records})
        try:
            with self.engine.begin() as conn:
                before = self._count(conn, days)
                self._insert_ignoring_conflicts(conn, rows, days)
                inserted = self._count(conn, days) - before
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Batch insert of {len(rows)} row(s) into {self.table_name} failed: {exc}"
            ) from exc

        if inserted < len(rows):
            logger.info(
                "%d of %d row(s) were already stored and left untouched",
                len(rows) - inserted,
                len(rows),
            )
        return inserted

    def _count(self, conn: Connection, days: list[date] | None) -> int:
        stmt = select(func.count()).select_from(self.table)
        if days is not None:
            stmt = stmt.where(self.table.c.snapshot_date.in_(days))
        return conn.execute(stmt).scalar_one()

    def _insert_ignoring_conflicts(
        self, conn: Connection, rows: list[dict], days: list[date]
    ) -> None:
        dialect = conn.dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(self.table).on_conflict_do_nothing(
                index_elements=list(KEY_COLUMNS)
            )
        elif dialect == "sqlite":
            stmt = sqlite.insert(self.table).on_conflict_do_nothing(
                index_elements=list(KEY_COLUMNS)
            )
        else:
            key_cols = [self.table.c[name] for name in KEY_COLUMNS]
            existing = {
                tuple(row)
                for row in conn.execute(
                    select(*key_cols).where(self.table.c.snapshot_date.in_(days))
                )
            }
            rows = [r for r in rows if tuple(r[name] for name in KEY_COLUMNS) not in existing]
            stmt = insert(self.table)
        if rows:
            conn.execute(stmt, rows)
