"""
Unit tests for the browser session lifecycle (cmc_hist_ingest.browser.session).
"""

from __future__ import annotations

from selenium.common.exceptions import WebDriverException

from cmc_hist_ingest.browser.session import BrowserSession
from tests.fakes import FakeSite


class _QuitFails:
    def quit(self):
        raise WebDriverException("chrome not reachable")


class TestBrowserSession:
    def test_driver_is_lazy(self):
        site = FakeSite()
        session = BrowserSession(site.factory)
        assert site.drivers == []
        assert session.driver is session.driver
        assert len(site.drivers) == 1

    def test_close_quits_driver(self):
        site = FakeSite()
        session = BrowserSession(site.factory)
        driver = session.driver
        session.close()
        assert driver.closed
        session.close()  # second close is a no-op

    def test_restart_replaces_driver(self):
        site = FakeSite()
        session = BrowserSession(site.factory)
        first = session.driver
        session.restart()
        assert first.closed
        assert session.restarts == 1
        assert session.driver is not first
        assert len(site.drivers) == 2

    def test_context_manager_closes(self):
        site = FakeSite()
        with BrowserSession(site.factory) as session:
            driver = session.driver
        assert driver.closed

    def test_quit_failure_is_logged(self, caplog):
        session = BrowserSession(_QuitFails)
        session.driver
        session.close()
        assert "chrome not reachable" in caplog.text
