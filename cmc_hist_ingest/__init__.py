"""
cmc-hist-ingest: rebuild the CoinMarketCap historical snapshot series.

Public API surface:

- ``init(...)`` -- First-run workflow.  Writes a default ``cmc_hist.yaml``
  (or returns the existing one untouched).

- ``ingest(...)`` -- Loads the config, connects to the database, creates
  the snapshot table if needed, then acquires every weekly snapshot from
  the last stored date (or the 2013-04-28 epoch) up to today.  Exports
  the table when ``store.export_csv`` is set.  Returns a ``RunSummary``.

Re-running ``ingest()`` after a fatal stop resumes at the first date
that was not committed.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from pathlib import Path
from typing import Callable

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from cmc_hist_ingest.browser.session import BrowserSession, DriverFactory, chrome_driver_factory
from cmc_hist_ingest.config import (
    IngestConfig,
    generate_default_config,
    load_config,
    resolve_database_url,
    save_config,
)
from cmc_hist_ingest.coordinator import IngestionCoordinator, RunSummary, utc_today
from cmc_hist_ingest.export import export_table
from cmc_hist_ingest.store import SnapshotStore

__all__ = ["init", "ingest", "IngestConfig", "RunSummary"]

logger = logging.getLogger(__name__)


def init(
    config_path: str = "cmc_hist.yaml",
    database_url: str | None = None,
    table_name: str = "marketcap_snapshots",
    remote_url: str | None = None,
    force: bool = False,
) -> IngestConfig:
    """Write a default config to *config_path*.

    Idempotent: an existing config is loaded and returned unchanged
    unless *force* is set.

    Args:
        config_path: Where to write cmc_hist.yaml.
        database_url: SQLAlchemy URL; leave ``None`` to use ``DB_*``
            environment variables at ingest time.
        table_name: Snapshot table name.
        remote_url: WebDriver endpoint; ``None`` for local Chrome.
        force: Overwrite an existing config.
    """
    if Path(config_path).exists() and not force:
        logger.info("init() -- %s already exists, leaving it untouched", config_path)
        return load_config(config_path)

    config = generate_default_config(
        database_url=database_url,
        table_name=table_name,
        remote_url=remote_url,
    )
    save_config(config, config_path)
    return config


def ingest(
    config_path: str = "cmc_hist.yaml",
    *,
    config: IngestConfig | None = None,
    engine: Engine | None = None,
    driver_factory: DriverFactory | None = None,
    sleep: Callable[[float], None] = time.sleep,
    today: Callable[[], date] = utc_today,
) -> RunSummary:
    """Acquire all missing snapshots up to today.

    Orchestration:
      1. ``load_config()`` (unless *config* is given).
      2. Create the engine from ``store.database_url`` / ``DB_*`` env vars
         (unless *engine* is given).
      3. ``SnapshotStore.ensure_table()``.
      4. ``IngestionCoordinator.run()`` inside a ``BrowserSession``.
      5. ``export_table()`` when ``store.export_csv`` is set.

    The browser session and an engine created here are released on every
    exit path, fatal errors included.

    Raises:
        FileNotFoundError: If *config_path* does not exist.
        ConfigValidationError: If no database URL can be resolved.
        CmcHistIngestError: Any fatal pipeline error (layout change,
            unparsable number, row ceiling, persistence failure).
    """
    if config is None:
        config = load_config(config_path)

    owns_engine = engine is None
    if engine is None:
        engine = create_engine(resolve_database_url(config.store))
    logger.info("ingest() -- table=%s", config.store.table_name)

    try:
        store = SnapshotStore(engine, config.store.table_name)
        store.ensure_table()

        factory = driver_factory or chrome_driver_factory(config.browser)
        with BrowserSession(factory) as session:
            coordinator = IngestionCoordinator(
                config, store, session, sleep=sleep, today=today
            )
            summary = coordinator.run()

        logger.info("Scraping complete")
        if config.store.export_csv:
            export_table(
                engine,
                config.store.table_name,
                config.store.export_dir,
                config.store.export_format,
                today=today(),
            )
        return summary
    finally:
        if owns_engine:
            engine.dispose()
