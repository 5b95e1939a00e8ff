from __future__ import annotations

import io
import json
import logging
import time
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

import allure
import pytest
from playwright.sync_api import Browser, Page
from playwright.sync_api import Error as PlaywrightError

from sitecheck.browser.runner import CheckRunner
from sitecheck.config.settings import ENV_ENVVAR, Settings, SettingsError, load_settings, resolve_env_file
from sitecheck.health.checks import ReadinessTimeoutError, wait_for_http
from sitecheck.server.static_site import SiteServerError, StaticSiteServer
from sitecheck.utils.logger import DEFAULT_FORMAT, get_logger


session_logger = get_logger(__name__)

runtime_markers: defaultdict[str, float] = defaultdict(float)
runtime_phase: dict[str, float] = {"setup": 0.0, "teardown": 0.0}
runtime_total = 0.0
runtime_start = 0.0
TRACKED_MARKERS = ("ui", "smoke", "harness")

ENV_OPTION = "--env-file"
SCREENSHOT_DIR = Path("artifacts/playwright_screenshots")


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        ENV_OPTION,
        action="store",
        default=None,
        help=f"Path to environment configuration file (default: ${ENV_ENVVAR} or config/site.env)",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "ui: browser checks requiring Playwright and a reachable site")
    config.addinivalue_line("markers", "smoke: quick reachability checks against the site")
    config.addinivalue_line("markers", "harness: checks of the check harness itself, no site needed")
    session_logger.debug("Pytest configured with custom markers")


def pytest_sessionstart(session: pytest.Session) -> None:  # noqa: D401
    """Initialise runtime tracking at session start."""
    del session
    global runtime_total, runtime_start
    runtime_markers.clear()
    runtime_phase["setup"] = 0.0
    runtime_phase["teardown"] = 0.0
    runtime_total = 0.0
    runtime_start = time.perf_counter()


@pytest.fixture(scope="session")
def settings(pytestconfig: pytest.Config) -> Settings:
    env_path = resolve_env_file(pytestconfig.getoption(ENV_OPTION))
    try:
        settings_obj = load_settings(env_path)
    except SettingsError as exc:
        pytest.exit(f"Invalid configuration: {exc}", returncode=4)

    allure.attach(
        json.dumps(settings_obj.to_report(), indent=2),
        name="settings",
        attachment_type=allure.attachment_type.JSON,
    )
    session_logger.debug(
        "Settings initialised: base_url=%s, site_dir=%s",
        settings_obj.base_url,
        settings_obj.site_dir,
    )
    return settings_obj


@pytest.fixture(scope="session")
def site_url(settings: Settings) -> Iterator[str]:
    """Base URL of the site under test, serving ``SITE_DIR`` locally when no URL is configured."""
    if settings.base_url:
        yield settings.base_url
        return
    if settings.site_dir is None:
        pytest.exit("Either BASE_URL or SITE_DIR must be configured", returncode=4)

    server = StaticSiteServer(settings.site_dir, host=settings.site_host, port=settings.site_port)
    try:
        url = server.start()
    except SiteServerError as exc:
        session_logger.error("Static site server unavailable: %s", exc)
        pytest.skip(f"Static site server unavailable: {exc}")
    try:
        yield url
    finally:
        server.stop()


@pytest.fixture(scope="session")
def site_ready(settings: Settings, site_url: str) -> Iterator[None]:
    endpoint = settings.health_endpoint_for(site_url)
    try:
        status = wait_for_http("site", endpoint, timeout=settings.readiness_timeout)
    except ReadinessTimeoutError as exc:
        session_logger.error("Site not ready: %s", exc)
        pytest.skip(f"Site not ready: {exc}")
    else:
        session_logger.info("Site ready: %s", status.detail)
        allure.attach(
            json.dumps(status.__dict__, indent=2),
            name="site_health",
            attachment_type=allure.attachment_type.JSON,
        )
    yield


@pytest.fixture(scope="session")
def browser(launch_browser: Callable[[], Browser]) -> Iterator[Browser]:
    """Launch once per session; a browser that cannot start ends the whole run."""
    try:
        launched = launch_browser()
    except PlaywrightError as exc:
        session_logger.error("Browser launch failed: %s", exc)
        pytest.exit(f"Browser launch failed: {exc}", returncode=3)
    session_logger.info("Browser launched: %s %s", launched.browser_type.name, launched.version)
    yield launched
    launched.close()


@pytest.fixture(scope="session")
def browser_context_args(browser_context_args: dict[str, Any], settings: Settings) -> dict[str, Any]:
    return {**browser_context_args, "viewport": settings.viewport}


@pytest.fixture
def site_page(page: Page, settings: Settings, site_ready: None) -> Page:
    page.set_default_navigation_timeout(settings.navigation_timeout_ms)
    page.set_default_timeout(settings.expect_timeout_ms)
    return page


@pytest.fixture
def runner(site_page: Page, site_url: str, settings: Settings) -> CheckRunner:
    return CheckRunner(site_page, site_url, timeout_ms=settings.expect_timeout_ms)


@pytest.fixture(autouse=True)
def _capture_test_logs(request: pytest.FixtureRequest) -> Iterator[None]:
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    root_logger = get_logger()
    root_logger.addHandler(handler)
    yield
    root_logger.removeHandler(handler)
    handler.close()
    log_content = stream.getvalue().strip()
    rep_call = getattr(request.node, "rep_call", None)
    if rep_call and rep_call.failed and log_content:
        allure.attach(
            log_content,
            name=f"logs::{request.node.nodeid}",
            attachment_type=allure.attachment_type.TEXT,
        )


@pytest.fixture(autouse=True)
def _log_test_lifecycle(request: pytest.FixtureRequest) -> Iterator[None]:
    test_logger = get_logger("tests")
    test_logger.info("TEST START :: %s", request.node.nodeid)
    yield
    rep_call = getattr(request.node, "rep_call", None)
    if rep_call is None:
        rep_setup = getattr(request.node, "rep_setup", None)
        outcome = rep_setup.outcome.upper() if rep_setup else "SKIPPED"
    else:
        outcome = rep_call.outcome.upper()
    log_fn = test_logger.error if outcome == "FAILED" else test_logger.info
    log_fn("TEST END :: %s :: %s", request.node.nodeid, outcome)


def _attach_screenshot(item: pytest.Item, page: Page, status: str) -> None:
    SCREENSHOT_DIR.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    node_slug = item.nodeid.replace("::", "__").replace("/", "_").replace("[", "_").replace("]", "")
    screenshot_path = SCREENSHOT_DIR / f"{timestamp}__{node_slug}__{status}.png"
    try:
        page.screenshot(path=str(screenshot_path), full_page=True)
        allure.attach.file(
            str(screenshot_path),
            name=f"page_{status}",
            attachment_type=allure.attachment_type.PNG,
        )
    except Exception as exc:  # noqa: BLE001
        allure.attach(
            str(exc),
            name="page_screenshot_error",
            attachment_type=allure.attachment_type.TEXT,
        )


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo) -> Iterator[None]:
    outcome = yield
    rep = outcome.get_result()
    setattr(item, f"rep_{rep.when}", rep)
    hook_logger = get_logger("pytest")
    global runtime_total
    if rep.when == "setup":
        hook_logger.debug("Setup %s -> %s", item.nodeid, rep.outcome)
        runtime_phase["setup"] += rep.duration
    elif rep.when == "call":
        hook_logger.info("Test %s %s", item.nodeid, rep.outcome.upper())
        page = getattr(item, "funcargs", {}).get("page")
        if "ui" in item.keywords and isinstance(page, Page):
            status = "passed" if rep.passed else "failed" if rep.failed else "skipped"
            _attach_screenshot(item, page, status)
        marker = next((mark.name for mark in item.iter_markers() if mark.name in TRACKED_MARKERS), "other")
        runtime_markers[marker] += rep.duration
        runtime_total += rep.duration
    elif rep.when == "teardown":
        hook_logger.debug("Teardown %s -> %s", item.nodeid, rep.outcome)
        runtime_phase["teardown"] += rep.duration


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:  # noqa: D401
    """Persist aggregated runtime metrics for post-run analysis."""
    del session
    wall_clock = time.perf_counter() - runtime_start
    marker_totals = {name: round(runtime_markers.get(name, 0.0), 3) for name in (*TRACKED_MARKERS, "other")}
    now_utc = datetime.now(timezone.utc)
    summary = {
        "timestamp": now_utc.isoformat(timespec="seconds"),
        "exitstatus": int(exitstatus),
        "wall_clock_seconds": round(wall_clock, 3),
        "setup_seconds": round(runtime_phase["setup"], 3),
        "teardown_seconds": round(runtime_phase["teardown"], 3),
        "call_seconds": round(runtime_total, 3),
        "markers": marker_totals,
    }
    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)
    output_path = logs_dir / f"runtime_{now_utc.strftime('%Y%m%dT%H%M%SZ')}.json"
    output_path.write_text(json.dumps(summary, indent=2))
    session_logger.info("Runtime summary written to %s", output_path)
    try:
        allure.attach(
            json.dumps(summary, indent=2),
            name="runtime_summary",
            attachment_type=allure.attachment_type.JSON,
        )
    except Exception as exc:  # noqa: BLE001
        session_logger.debug("Unable to attach runtime summary to Allure: %s", exc)
