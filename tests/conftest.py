"""
Shared test fixtures and constants for cmc-hist-ingest tests.

Browser interaction is exercised against the in-memory fakes in
``tests/fakes.py``; persistence against a SQLite file under ``tmp_path``.
"""

from datetime import date

import pytest
from sqlalchemy import create_engine

from cmc_hist_ingest.config import (
    BrowserConfig,
    ColumnsConfig,
    ExtractConfig,
    IngestConfig,
    ScheduleConfig,
    StoreConfig,
)
from cmc_hist_ingest.store import SnapshotStore

# ---------------------------------------------------------------------------
# Header / row constants -- the layout from the end-to-end scenarios
# ---------------------------------------------------------------------------
SCENARIO_HEADER = [
    "Rank", "Name", "Symbol", "Price", "Market Cap", "Circulating Supply",
    "% 1h", "% 24h", "% 7d",
]
SCENARIO_ROW = [
    "1", "Foo", "FOO", "$10.50", "$1,000,000", "500,000 FOO",
    "1.2%", "-3.4%", "--",
]
# Change columns are the last three in the scenario layout
SCENARIO_COLUMNS = ColumnsConfig(change_columns=[-3, -2, -1])

EPOCH = date(2013, 4, 28)


def make_config(**overrides) -> IngestConfig:
    """Build an IngestConfig with test-friendly timings.

    Keyword overrides replace whole sections (``browser=...``, ``extract=...``).
    """
    sections = {
        "browser": BrowserConfig(landmark_timeout=0.01, load_more_delay=0, retry_cooldown=0),
        "columns": ColumnsConfig(),
        "extract": ExtractConfig(),
        "schedule": ScheduleConfig(epoch_start=EPOCH, rate_limit_cooldown=300),
        "store": StoreConfig(database_url="sqlite://", export_csv=False),
    }
    sections.update(overrides)
    return IngestConfig(**sections)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'snapshots.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> SnapshotStore:
    s = SnapshotStore(engine, "marketcap_snapshots")
    s.ensure_table()
    return s


@pytest.fixture
def sleeps() -> list[float]:
    """Collects every sleep the code under test asks for."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------
def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "integration: end-to-end runs against the fake browser and SQLite",
    )
