"""Reusable readiness and page-check helpers for fixtures and scripts."""
from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Iterable

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from sitecheck.data.catalog import SitePage
from sitecheck.utils.logger import get_logger

logger = get_logger(__name__)

@dataclass
class ServiceStatus:
    name: str
    healthy: bool
    detail: str
    elapsed: float


class ReadinessTimeoutError(RuntimeError):
    """Raised when the site does not become ready within the timeout."""


def build_session(retries: int = 3) -> requests.Session:
    session = requests.Session()
    retry = Retry(total=retries, backoff_factor=0.3, status_forcelist=(429, 500, 502, 503, 504), raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _ping(url: str, timeout: float) -> ServiceStatus:
    start = time.perf_counter()
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    elapsed = time.perf_counter() - start
    return ServiceStatus(name=url, healthy=True, detail=f"HTTP {response.status_code}", elapsed=elapsed)


def wait_for_http(name: str, url: str, timeout: float = 30, interval: float = 1) -> ServiceStatus:
    deadline = time.time() + timeout
    last_error: Exception | None = None
    while time.time() < deadline:
        try:
            status = _ping(url, timeout=max(interval, 1.0))
        except requests.RequestException as exc:
            last_error = exc
            logger.debug("%s not ready yet: %s", name, exc)
            time.sleep(interval)
            continue
        status.name = name
        return status
    raise ReadinessTimeoutError(f"{name} did not become ready at {url}: {last_error}")


def extract_title(document: str) -> str | None:
    """Return the whitespace-normalised document title, or None when there is none."""
    soup = BeautifulSoup(document, "html.parser")
    if soup.title is None:
        return None
    return " ".join(soup.title.get_text().split())


def check_page(
    base_url: str,
    page: SitePage,
    session: requests.Session | None = None,
    timeout: float = 10.0,
) -> ServiceStatus:
    """Fetch one page and verify HTTP success plus a matching ``<title>``."""
    url = f"{base_url.rstrip('/')}{page.path}"
    http = session or build_session()
    start = time.perf_counter()
    try:
        response = http.get(url, timeout=timeout)
    except requests.RequestException as exc:
        return ServiceStatus(name=page.path, healthy=False, detail=str(exc), elapsed=time.perf_counter() - start)
    elapsed = time.perf_counter() - start
    if not response.ok:
        return ServiceStatus(name=page.path, healthy=False, detail=f"HTTP {response.status_code}", elapsed=elapsed)
    title = extract_title(response.text)
    if title is None or not re.search(page.title_pattern, title):
        return ServiceStatus(
            name=page.path,
            healthy=False,
            detail=f"title {title!r} does not match /{page.title_pattern}/",
            elapsed=elapsed,
        )
    return ServiceStatus(name=page.path, healthy=True, detail=f"HTTP {response.status_code}, title {title!r}", elapsed=elapsed)


def check_pages(base_url: str, pages: Iterable[SitePage], timeout: float = 10.0) -> list[ServiceStatus]:
    session = build_session()
    try:
        results = [check_page(base_url, page, session=session, timeout=timeout) for page in pages]
    finally:
        session.close()
    for result in results:
        log_fn = logger.info if result.healthy else logger.error
        log_fn("Page %s: %s (%.2fs)", result.name, result.detail, result.elapsed)
    return results


def ensure_all_ready(checks: Iterable[ServiceStatus]) -> None:
    problems = [c for c in checks if not c.healthy]
    if problems:
        details = "; ".join(f"{c.name}: {c.detail}" for c in problems)
        raise ReadinessTimeoutError(details)


__all__ = [
    "ReadinessTimeoutError",
    "ServiceStatus",
    "build_session",
    "check_page",
    "check_pages",
    "ensure_all_ready",
    "extract_title",
    "wait_for_http",
]
