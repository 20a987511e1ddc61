"""
Page materializer for cmc-hist-ingest.

Renders one historical snapshot page until its full row set is in the
document:

1. Navigate to ``<base_url>/historical/YYYYMMDD/`` and wait (bounded)
   for the page landmark.
2. Dismiss the cookie-consent overlay if it is showing.
3. Click "Load More" until the control disappears or the computed click
   budget is spent.  Each click appends ``rows_per_load`` rows.
4. Scroll top to bottom in viewport-sized steps, pausing
   ``RunState.scroll_delay`` after each step, so lazily rendered cells
   are filled in.

The materializer never raises for page-level trouble it can recover
from; it returns a ``StepOutcome`` and leaves the decision to the
coordinator.  ``WebDriverException`` from a dead browser does propagate.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable

from selenium.common.exceptions import (
    ElementClickInterceptedException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from cmc_hist_ingest.config import BrowserConfig, RunState
from cmc_hist_ingest.outcome import StepOutcome

logger = logging.getLogger(__name__)


@dataclass
class RenderedTable:
    """The listing table as found in the document.

    Attributes:
        header: Header cell texts in display order.
        rows: Body row elements in document order (= rank order).
    """

    header: list[str]
    rows: list[Any] = field(default_factory=list)


class PageMaterializer:
    """Drives the browser to a fully rendered snapshot table.

    Args:
        config: Browser settings (selectors, delays, bounds).
        state: Run state holding the sticky scroll delay.
        max_clicks: Load More budget for one snapshot
            (``IngestConfig.max_load_more_clicks``).
        sleep: Injected for tests.
    """

    def __init__(
        self,
        config: BrowserConfig,
        state: RunState,
        max_clicks: int,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.state = state
        self.max_clicks = max_clicks
        self.sleep = sleep

    def snapshot_url(self, day: date) -> str:
        return f"{self.config.base_url}/historical/{day:%Y%m%d}/"

    def materialize(self, driver: Any, day: date) -> StepOutcome:
        """Load and fully render the snapshot for *day*."""
        url = self.snapshot_url(day)
        logger.info("Loading snapshot page %s", url)
        try:
            driver.get(url)
            WebDriverWait(driver, self.config.landmark_timeout).until(
                EC.presence_of_element_located(
                    (By.CSS_SELECTOR, self.config.landmark_selector)
                )
            )
        except TimeoutException:
            return StepOutcome.retry(
                f"page landmark {self.config.landmark_selector!r} did not appear",
                cooldown=self.config.retry_cooldown,
            )
        logger.info("Page loaded")

        self.dismiss_overlay(driver)
        outcome = self.load_all_rows(driver)
        if not outcome.ok:
            return outcome
        self.scroll_page(driver)
        return StepOutcome.proceed()

    def dismiss_overlay(self, driver: Any) -> bool:
        """Click the consent overlay's reject button if present.

        Best effort: a missing button or a failed click is only logged.
        """
        buttons = driver.find_elements(By.CSS_SELECTOR, self.config.overlay_selector)
        if not buttons:
            logger.debug("Consent overlay not present")
            return False
        try:
            buttons[0].click()
        except WebDriverException as exc:
            logger.warning("Failed to dismiss consent overlay: %s", exc)
            return False
        logger.info("Consent overlay dismissed")
        return True

    def load_all_rows(self, driver: Any) -> StepOutcome:
        """Click Load More until it disappears or the click budget is spent.

        An intercepted click (overlay on top) re-dismisses the overlay and
        retries the same click without counting it.
        """
        clicks = 0
        intercepted = 0
        while clicks < self.max_clicks:
            buttons = driver.find_elements(By.CSS_SELECTOR, self.config.load_more_selector)
            if not buttons:
                logger.info('"Load More" not found after %d click(s); all rows loaded', clicks)
                return StepOutcome.proceed()
            try:
                buttons[0].click()
            except ElementClickInterceptedException:
                intercepted += 1
                if intercepted > self.config.max_click_retries:
                    return StepOutcome.retry(
                        f'"Load More" click intercepted {intercepted} times'
                    )
                logger.warning('"Load More" click intercepted, dismissing overlay')
                self.dismiss_overlay(driver)
                continue
            intercepted = 0
            clicks += 1
            logger.info('"Load More" clicked (%d/%d)', clicks, self.max_clicks)
            self.sleep(self.config.load_more_delay)

        logger.info("Stopped after the budget of %d Load More click(s)", clicks)
        return StepOutcome.proceed()

    def scroll_page(self, driver: Any) -> int:
        """Scroll the whole page once to trigger lazy rendering.

        Returns:
            Number of scroll steps taken.
        """
        driver.execute_script("window.scrollTo(0, 0);")
        viewport = driver.execute_script("return window.innerHeight;")
        height = driver.execute_script("return document.body.scrollHeight;")
        step = max(1, int(float(viewport) * self.config.viewport_scroll_mult))

        steps = 0
        for _ in range(0, int(float(height)), step):
            driver.execute_script("window.scrollBy(0, arguments[0]);", step)
            self.sleep(self.state.scroll_delay)
            steps += 1
        logger.info(
            "End of page reached (%d steps, %.3fs delay)", steps, self.state.scroll_delay
        )
        return steps

    def locate_table(self, driver: Any) -> RenderedTable | None:
        """Find the listing table, its header texts and body rows.

        Only tables carrying a ``thead`` are counted when applying
        ``header_table_index``; layout-only tables without one are ignored.

        Returns ``None`` when the table or its header row is missing, which
        is what a rate-limited response looks like.
        """
        tables = [
            table
            for table in driver.find_elements(By.CSS_SELECTOR, self.config.table_selector)
            if table.find_elements(By.CSS_SELECTOR, "thead")
        ]
        if len(tables) <= self.config.header_table_index:
            logger.warning(
                "Found %d table(s) with a header, expected at least %d",
                len(tables),
                self.config.header_table_index + 1,
            )
            return None
        table = tables[self.config.header_table_index]
        header_cells = table.find_elements(By.CSS_SELECTOR, "thead th")
        if not header_cells:
            logger.warning("Listing table has no header row")
            return None
        header = [cell.text for cell in header_cells]
        rows = table.find_elements(By.CSS_SELECTOR, "tbody tr")
        logger.info("Located table: %d columns, %d rows", len(header), len(rows))
        return RenderedTable(header=header, rows=rows)
