"""
Unit tests for the page materializer (cmc_hist_ingest.browser.materialize).

Runs against ``tests.fakes`` -- no real browser is started.
"""

from __future__ import annotations

from datetime import date

import pytest

from cmc_hist_ingest.browser.materialize import PageMaterializer
from cmc_hist_ingest.config import BrowserConfig, RunState
from cmc_hist_ingest.outcome import OutcomeKind
from tests.conftest import make_config
from tests.fakes import REAL_HEADER, FakePage, FakeSite, real_row

DAY = date(2013, 4, 28)


def _make_materializer(sleep, max_clicks: int = 14, **browser_overrides) -> PageMaterializer:
    browser = make_config().browser.model_copy(update=browser_overrides)
    return PageMaterializer(browser, RunState.from_config(browser), max_clicks, sleep=sleep)


def _open(page: FakePage, **site_kwargs):
    """A fake driver already sitting on *page*."""
    site = FakeSite(pages={DAY: [page]}, **site_kwargs)
    driver = site.factory()
    driver.get(PageMaterializer(BrowserConfig(), None, 0).snapshot_url(DAY))
    return driver


class TestSnapshotUrl:
    def test_format(self):
        m = PageMaterializer(BrowserConfig(), None, 0)
        assert m.snapshot_url(date(2021, 1, 3)) == "https://coinmarketcap.com/historical/20210103/"


class TestMaterialize:
    """Tests for the full materialize() sequence."""

    def test_happy_path(self, sleeps, fake_sleep):
        page = FakePage(rows=[real_row(1, "BTC")], overlay=True, load_more=2)
        site = FakeSite(pages={DAY: [page]})
        m = _make_materializer(fake_sleep)

        outcome = m.materialize(site.factory(), DAY)

        assert outcome.ok
        assert page.overlay is False
        assert page.load_more_clicks == 2
        assert site.visits == [DAY]

    def test_landmark_timeout_is_retry(self, fake_sleep):
        site = FakeSite(pages={DAY: [FakePage(landmark=False)]})
        m = _make_materializer(fake_sleep, retry_cooldown=12.5)

        outcome = m.materialize(site.factory(), DAY)

        assert outcome.kind is OutcomeKind.RETRY_SNAPSHOT
        assert outcome.cooldown == 12.5

    def test_no_overlay_is_fine(self, fake_sleep):
        site = FakeSite(pages={DAY: [FakePage()]})
        assert _make_materializer(fake_sleep).materialize(site.factory(), DAY).ok


class TestLoadAllRows:
    """Tests for the Load More loop."""

    def test_stops_when_control_disappears(self, sleeps, fake_sleep):
        page = FakePage(load_more=3)
        driver = _open(page)
        m = _make_materializer(fake_sleep, load_more_delay=2.0)

        assert m.load_all_rows(driver).ok
        assert page.load_more_clicks == 3
        assert sleeps == [2.0, 2.0, 2.0]

    def test_click_budget(self, fake_sleep):
        """A control that never goes away is clicked at most max_clicks times."""
        page = FakePage(load_more=1000)
        driver = _open(page)

        assert _make_materializer(fake_sleep, max_clicks=4).load_all_rows(driver).ok
        assert page.load_more_clicks == 4

    def test_zero_budget(self, fake_sleep):
        page = FakePage(load_more=5)
        driver = _open(page)

        assert _make_materializer(fake_sleep, max_clicks=0).load_all_rows(driver).ok
        assert page.load_more_clicks == 0

    def test_intercepted_click_redismisses_overlay(self, fake_sleep):
        page = FakePage(load_more=1, intercepts=1, overlay=True)
        driver = _open(page)

        assert _make_materializer(fake_sleep).load_all_rows(driver).ok
        assert page.overlay is False
        assert page.load_more_clicks == 1

    def test_intercepted_clicks_not_counted(self, fake_sleep):
        page = FakePage(load_more=10, intercepts=3)
        driver = _open(page)

        assert _make_materializer(fake_sleep, max_clicks=2).load_all_rows(driver).ok
        assert page.load_more_clicks == 2

    def test_persistent_interception_is_retry(self, fake_sleep):
        page = FakePage(load_more=1, intercepts=100)
        driver = _open(page)

        outcome = _make_materializer(fake_sleep, max_click_retries=5).load_all_rows(driver)

        assert outcome.kind is OutcomeKind.RETRY_SNAPSHOT
        assert "intercepted 6 times" in outcome.reason


class TestScrollPage:
    """Tests for the lazy-render scroll pass."""

    def test_viewport_steps(self, sleeps, fake_sleep):
        driver = _open(FakePage(), viewport=1000, height=5000)
        m = _make_materializer(fake_sleep)

        steps = m.scroll_page(driver)

        # step = 1000 * 1.4 = 1400 px over 5000 px -> offsets 0, 1400, 2800, 4200
        assert steps == 4
        assert driver.scrolls == [1400] * 4
        assert sleeps == [0.6] * 4

    def test_uses_current_delay(self, sleeps, fake_sleep):
        driver = _open(FakePage(), viewport=1000, height=1000)
        m = _make_materializer(fake_sleep)
        m.state.increase_scroll_delay()

        m.scroll_page(driver)

        assert sleeps == [pytest.approx(0.65)]


class TestLocateTable:
    """Tests for locate_table()."""

    def test_listing_found(self, fake_sleep):
        driver = _open(FakePage(rows=[real_row(1, "BTC"), real_row(2, "ETH")]))

        table = _make_materializer(fake_sleep).locate_table(driver)

        assert table.header == REAL_HEADER
        assert len(table.rows) == 2

    def test_rate_limited_page(self, fake_sleep):
        driver = _open(FakePage(header=None))
        assert _make_materializer(fake_sleep).locate_table(driver) is None

    def test_empty_header(self, fake_sleep):
        driver = _open(FakePage(header=[]))
        assert _make_materializer(fake_sleep).locate_table(driver) is None

    def test_tables_without_thead_not_counted(self, fake_sleep):
        """Layout tables ahead of the listing do not shift the header index."""
        driver = _open(FakePage(rows=[real_row(1, "BTC")], bare_tables=2))

        table = _make_materializer(fake_sleep).locate_table(driver)

        assert table.header == REAL_HEADER
        assert len(table.rows) == 1
