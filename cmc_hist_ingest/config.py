"""
Configuration models and YAML I/O for cmc-hist-ingest.

This module defines the Pydantic models that map 1:1 to cmc_hist.yaml,
plus helper functions for loading, saving, and generating the config.

Key models:
- IngestConfig: Top-level config (browser + columns + extract + schedule + store).
- BrowserConfig: Page URL, selectors, load-more / scroll pacing.
- ColumnsConfig: Expected header labels and percent-change positions.
- ExtractConfig: Row caps and the skip-no-market-cap policy.
- ScheduleConfig: Series epoch, period, watchdog and rate-limit timings.
- StoreConfig: Database URL, table name, export toggle.

Plus ``RunState``, the run-scoped mutable tunables (the sticky scroll
delay).  It is created from ``BrowserConfig`` once per run and only the
coordinator mutates it.

Key functions:
- load_config(path) -> IngestConfig: Load and validate from YAML.
- save_config(config, path): Serialize to YAML.
- generate_default_config(...) -> IngestConfig
- resolve_database_url(store) -> str: URL from config or DB_* env vars.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.engine import URL

from cmc_hist_ingest.exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

# Environment variables consulted when ``store.database_url`` is unset
_DB_ENV_VARS = ("DB_USER", "DB_PASS", "DB_HOST", "DB_PORT", "DB_NAME")


class BrowserConfig(BaseModel):
    """Where the snapshot pages live and how to drive them."""

    base_url: str = Field("https://coinmarketcap.com", description="Site root")
    remote_url: str | None = Field(
        None,
        description="WebDriver endpoint (e.g. http://localhost:4444/wd/hub); local Chrome if unset",
    )
    headless: bool = True
    page_load_timeout: float = Field(120.0, gt=0)

    landmark_selector: str = "div.container.cmc-main-section"
    landmark_timeout: float = Field(60.0, gt=0, description="Seconds to wait for the landmark")
    overlay_selector: str = "#onetrust-reject-all-handler"
    load_more_selector: str = "div.cmc-table-listing__loadmore > button[type='button']"
    table_selector: str = "table"
    header_table_index: int = Field(
        2, ge=0, description="Which table with a thead holds the listing"
    )

    rows_per_load: int = Field(200, gt=0, description="Rows appended per Load More click")
    max_load_more_clicks: int = Field(
        100, gt=0, description="Hard bound; some dates re-offer Load More forever"
    )
    max_click_retries: int = Field(5, gt=0)
    load_more_delay: float = Field(2.0, ge=0)

    scroll_delay: float = Field(0.6, ge=0, description="Initial pause after each scroll step")
    scroll_delay_step: float = Field(0.05, gt=0, description="Backoff added on a render race")
    viewport_scroll_mult: float = Field(1.4, gt=0)
    retry_cooldown: float = Field(30.0, ge=0, description="Pause before retrying a failed page load")

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class ColumnsConfig(BaseModel):
    """Header vocabulary used by the column resolver.

    Labels are matched exactly and case-sensitively.  The three
    percent-change columns are positional (their header text is not
    reliable); negative positions count from the end of the header.
    """

    rank: str = "Rank"
    name: str = "Name"
    symbol: str = "Symbol"
    price: str = "Price"
    market_cap: str = "Market Cap"
    circulating_supply: str = "Circulating Supply"
    volume_label: str = "Volume (24h)"
    change_columns: list[int] = Field(default_factory=lambda: [7, 8, 9])

    @field_validator("change_columns")
    @classmethod
    def _three_positions(cls, v: list[int]) -> list[int]:
        if len(v) != 3:
            raise ValueError(
                "change_columns must list exactly three positions (1h, 24h, 7d)"
            )
        return v


class ExtractConfig(BaseModel):
    """Row-level extraction policy."""

    skip_no_market_cap: bool = Field(
        True, description="Drop rows whose market cap is a sentinel instead of storing null"
    )
    max_rows: int = Field(3000, description="Rows captured per snapshot; <= 0 for no cap")
    row_ceiling: int | None = Field(
        3000, description="Halt the run when a snapshot reaches this many rows"
    )


class ScheduleConfig(BaseModel):
    """Series shape and recovery timings."""

    epoch_start: date = Field(date(2013, 4, 28), description="First snapshot ever published")
    period_days: int = Field(7, gt=0)
    timeout_minutes: float = Field(60.0, gt=0, description="Watchdog inactivity window")
    rate_limit_cooldown: float = Field(300.0, ge=0)


class StoreConfig(BaseModel):
    """Persistence and export settings."""

    database_url: str | None = Field(
        None, description="SQLAlchemy URL; built from DB_* env vars when unset"
    )
    table_name: str = Field("marketcap_snapshots", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    export_csv: bool = True
    export_format: Literal["csv", "parquet"] = "csv"
    export_dir: str = "."


class IngestConfig(BaseModel):
    """Top-level configuration for cmc-hist-ingest.

    Maps 1:1 to cmc_hist.yaml.
    """

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    columns: ColumnsConfig = Field(default_factory=ColumnsConfig)
    extract: ExtractConfig = Field(default_factory=ExtractConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    @model_validator(mode="after")
    def _check_ceiling_covers_cap(self) -> IngestConfig:
        """A ceiling below the cap would halt every full snapshot."""
        ceiling = self.extract.row_ceiling
        cap = self.extract.max_rows
        if ceiling is not None and cap > 0 and ceiling < cap:
            raise ValueError(
                f"extract.row_ceiling ({ceiling}) must be >= extract.max_rows ({cap})"
            )
        return self

    @property
    def max_load_more_clicks(self) -> int:
        """Load More activations needed to reach ``max_rows``.

        The first page is rendered without a click, hence the ``- 1``.
        Bounded by ``browser.max_load_more_clicks`` either way.
        """
        bound = self.browser.max_load_more_clicks
        cap = self.extract.max_rows
        if cap <= 0:
            return bound
        wanted = -(-cap // self.browser.rows_per_load) - 1
        return max(0, min(wanted, bound))


@dataclass
class RunState:
    """Tunables shared across loop iterations of one run.

    ``scroll_delay`` only ever grows: once a render race has shown the
    page cannot keep up, the slower pace is kept for the rest of the run.
    """

    scroll_delay: float
    scroll_delay_step: float

    @classmethod
    def from_config(cls, browser: BrowserConfig) -> RunState:
        return cls(
            scroll_delay=browser.scroll_delay,
            scroll_delay_step=browser.scroll_delay_step,
        )

    def increase_scroll_delay(self) -> float:
        self.scroll_delay = round(self.scroll_delay + self.scroll_delay_step, 6)
        logger.warning("Scroll delay increased to %.3fs", self.scroll_delay)
        return self.scroll_delay


def load_config(path: str | Path) -> IngestConfig:
    """Load and validate cmc_hist.yaml into an IngestConfig model.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ConfigValidationError: If the file is empty.
        pydantic.ValidationError: If the YAML content fails schema validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    if raw is None:
        raise ConfigValidationError(f"Config file is empty: {path}")
    logger.info("Loaded config from %s", path)
    return IngestConfig.model_validate(raw)


def save_config(config: IngestConfig, path: str | Path) -> None:
    """Serialize an IngestConfig to YAML with a header comment."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json")
    with open(path, "w", encoding="utf-8") as f:
        f.write("# cmc-hist-ingest configuration\n")
        f.write(
            "# database_url may be left null; DB_USER/DB_PASS/DB_HOST/DB_PORT/DB_NAME are used instead\n\n"
        )
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
    logger.info("Saved config to %s", path)


def generate_default_config(
    database_url: str | None = None,
    table_name: str = "marketcap_snapshots",
    remote_url: str | None = None,
) -> IngestConfig:
    """Build an IngestConfig with defaults for a first run."""
    return IngestConfig(
        browser=BrowserConfig(remote_url=remote_url),
        store=StoreConfig(database_url=database_url, table_name=table_name),
    )


def resolve_database_url(store: StoreConfig) -> str:
    """Return the configured database URL, or build a PostgreSQL one from the environment.

    Raises:
        ConfigValidationError: If no URL is configured and any ``DB_*``
            variable is missing.
    """
    if store.database_url:
        return store.database_url

    missing = [name for name in _DB_ENV_VARS if not os.environ.get(name)]
    if missing:
        raise ConfigValidationError(
            "store.database_url is not set and the following environment "
            f"variables are missing: {missing}"
        )
    url = URL.create(
        "postgresql+psycopg",
        username=os.environ["DB_USER"],
        password=os.environ["DB_PASS"],
        host=os.environ["DB_HOST"],
        port=int(os.environ["DB_PORT"]),
        database=os.environ["DB_NAME"],
    )
    return url.render_as_string(hide_password=False)
