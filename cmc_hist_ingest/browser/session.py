"""
Browser session lifecycle for cmc-hist-ingest.

``BrowserSession`` owns the single WebDriver the pipeline drives.  It
is a context manager so the driver is quit on every exit path, and it
supports ``restart()`` for the watchdog recovery (the whole browser is
replaced, not just the page).

The driver is created lazily by a factory.  ``chrome_driver_factory``
builds the production driver (remote endpoint or local Chrome); tests
pass a factory returning an in-memory fake with the same surface.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from selenium import webdriver
from selenium.common.exceptions import WebDriverException

from cmc_hist_ingest.config import BrowserConfig

logger = logging.getLogger(__name__)

DriverFactory = Callable[[], Any]


def chrome_driver_factory(config: BrowserConfig) -> DriverFactory:
    """Return a factory creating Chrome drivers configured from *config*."""

    def _create() -> webdriver.Remote:
        options = webdriver.ChromeOptions()
        if config.headless:
            options.add_argument("--headless=new")
        options.add_argument("--disable-gpu")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--window-size=1400,1000")
        options.add_argument("--lang=en-US,en;q=0.9")

        if config.remote_url:
            driver = webdriver.Remote(command_executor=config.remote_url, options=options)
        else:
            driver = webdriver.Chrome(options=options)
        driver.set_page_load_timeout(config.page_load_timeout)
        return driver

    return _create


class BrowserSession:
    """Scoped owner of the WebDriver.

    ``close()`` may be called from the watchdog thread while the main
    thread is blocked inside a driver call; that call then fails with a
    ``WebDriverException``, which is how the hang is broken.
    """

    def __init__(self, factory: DriverFactory) -> None:
        self._factory = factory
        self._driver: Any | None = None
        self._lock = threading.Lock()
        self.restarts = 0

    @property
    def driver(self) -> Any:
        with self._lock:
            if self._driver is None:
                logger.info("Starting browser session")
                self._driver = self._factory()
            return self._driver

    def close(self) -> None:
        with self._lock:
            driver, self._driver = self._driver, None
        if driver is None:
            return
        try:
            driver.quit()
        except WebDriverException as exc:
            logger.warning("Error while closing browser session: %s", exc)
        else:
            logger.info("Browser session closed")

    def restart(self) -> None:
        """Tear down the current browser; the next ``driver`` access starts a new one."""
        self.close()
        self.restarts += 1
        logger.warning("Browser session torn down (restart #%d)", self.restarts)

    def __enter__(self) -> BrowserSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
