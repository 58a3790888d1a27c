"""Shared fixtures for the AutoSearch test suite."""

import itertools
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

from autosearch.browser import PageDriver
from autosearch.controller import SessionController
from autosearch.scheduler import Scheduler
from autosearch.settings import Settings
from autosearch.store import DurableStore


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Return a Settings instance with every path inside tmp_path."""
    return Settings(
        state_dir=tmp_path / "state",
        profile_dir=tmp_path / "profile",
        start_debounce=2.0,
        download_debounce=1.0,
    )


@pytest.fixture
def store(settings: Settings) -> DurableStore:
    return DurableStore(settings.store_path)


@pytest.fixture
def scheduler(settings: Settings) -> Scheduler:
    return Scheduler(settings.wake_path)


@pytest.fixture
def driver(mocker: MockerFixture) -> MagicMock:
    """Return a PageDriver stand-in whose tabs stay open and whose queries succeed."""
    driver = mocker.MagicMock(spec=PageDriver)
    counter = itertools.count(1)
    driver.create_tab.side_effect = lambda url: f"tab-{next(counter)}"
    driver.tab_exists.return_value = True
    driver.submit_query.return_value = True
    driver.wait_for_load.return_value = True
    driver.results_url.side_effect = lambda q: f"https://www.bing.com/search?q={q}"
    return driver


@pytest.fixture
def no_sleep(mocker: MockerFixture) -> MagicMock:
    """Patch out real sleeping inside search steps."""
    return mocker.patch("autosearch.controller.time.sleep")


@pytest.fixture
def controller(
    settings: Settings,
    store: DurableStore,
    scheduler: Scheduler,
    driver: MagicMock,
    no_sleep: MagicMock,
) -> SessionController:
    """Return a SessionController wired to a temp store and a mocked driver."""
    return SessionController(settings, store, scheduler, driver)
