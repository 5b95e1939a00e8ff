from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from playwright.sync_api import Page

from sitecheck.browser.runner import CheckRunner
from sitecheck.server.static_site import StaticSiteServer

FIXTURE_PAGES = Path(__file__).parent / "fixture_site"
FIXTURE_TIMEOUT_MS = 1500


@pytest.fixture(scope="session")
def fixture_site_url() -> Iterator[str]:
    """Small pages shipped with the tests, used to exercise the runner itself."""
    with StaticSiteServer(FIXTURE_PAGES) as server:
        yield server.url


@pytest.fixture
def fixture_runner(page: Page, fixture_site_url: str) -> CheckRunner:
    return CheckRunner(page, fixture_site_url, timeout_ms=FIXTURE_TIMEOUT_MS)
