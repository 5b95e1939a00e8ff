"""Execute declarative page checks against a Playwright page."""
from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Optional

import allure
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator, Page, Response, expect
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from sitecheck.data.catalog import Action, ActionKind, Expectation, ExpectationKind, PageCheck, Viewport
from sitecheck.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 5000
POLL_INTERVAL_MS = 100


class CheckFailure(AssertionError):
    """A page check that did not hold. Subclasses narrow down why."""

    kind = "failure"

    def __init__(
        self,
        check_id: str,
        selector: Optional[str],
        detail: str,
        expected: object = None,
        actual: object = None,
    ) -> None:
        self.check_id = check_id
        self.selector = selector
        self.detail = detail
        self.expected = expected
        self.actual = actual
        super().__init__(self._render())

    def _render(self) -> str:
        target = self.selector or "page"
        message = f"[{self.check_id}] {self.kind}: {target}: {self.detail}"
        if self.expected is not None or self.actual is not None:
            message += f" (expected={self.expected!r}, actual={self.actual!r})"
        return message


class LocatorNotFoundError(CheckFailure):
    kind = "locator-not-found"


class CheckTimeoutError(CheckFailure):
    kind = "timeout"


class ValueMismatchError(CheckFailure):
    kind = "value-mismatch"


@dataclass
class CheckOutcome:
    check_id: str
    url: str
    steps: int
    elapsed: float


def class_token_pattern(token: str) -> re.Pattern[str]:
    return re.compile(rf"(^|\s){re.escape(token)}(\s|$)")


def token_superset_pattern(wanted: str) -> re.Pattern[str]:
    """Match attribute values holding every token of ``wanted``, in any order."""
    lookaheads = "".join(rf"(?=.*(^|\s){re.escape(token)}(\s|$))" for token in wanted.split())
    return re.compile(rf"^{lookaheads}")


def contains_tokens(actual: Optional[str], wanted: str) -> bool:
    """True when every whitespace token of ``wanted`` is a token of ``actual``."""
    if actual is None:
        return False
    present = set(actual.split())
    return all(token in present for token in wanted.split())


def join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class CheckRunner:
    """Drive one page through a :class:`PageCheck`.

    Waiting is left to Playwright's auto-retrying assertions; every call gets
    ``timeout_ms`` so a stuck condition fails that check and nothing else.
    """

    def __init__(self, page: Page, base_url: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        self.page = page
        self.base_url = base_url
        self.timeout_ms = timeout_ms

    # Navigation ---------------------------------------------------------

    def open(self, path: str, viewport: Viewport | None = None, check_id: str = "navigation") -> str:
        if viewport is not None:
            self.page.set_viewport_size(viewport.size)
            logger.debug("Viewport set to %s", viewport)
        url = join_url(self.base_url, path)
        try:
            response = self.page.goto(url, wait_until="load")
        except PlaywrightTimeoutError as exc:
            raise CheckTimeoutError(check_id, None, f"navigation to {url} timed out") from exc
        except PlaywrightError as exc:
            raise CheckFailure(check_id, None, f"navigation to {url} failed: {str(exc).splitlines()[0]}") from exc
        self._check_response(check_id, url, response)
        logger.info("Loaded %s", url)
        return url

    def _check_response(self, check_id: str, url: str, response: Response | None) -> None:
        if response is None:
            return
        if response.status >= 400:
            raise ValueMismatchError(
                check_id,
                None,
                f"navigation to {url} failed",
                expected="HTTP success",
                actual=f"HTTP {response.status}",
            )

    def reload(self) -> None:
        self.page.reload(wait_until="load")

    # Execution ----------------------------------------------------------

    def run(self, check: PageCheck) -> CheckOutcome:
        start = time.perf_counter()
        with allure.step(f"open {check.path}" + (f" at {check.viewport}" if check.viewport else "")):
            url = self.open(check.path, check.viewport, check_id=check.id)
        self.run_steps(check)
        elapsed = time.perf_counter() - start
        logger.info("Check %s passed (%d steps, %.2fs)", check.id, len(check.steps), elapsed)
        return CheckOutcome(check_id=check.id, url=url, steps=len(check.steps), elapsed=elapsed)

    def run_steps(self, check: PageCheck) -> None:
        for step in check.steps:
            with allure.step(step.describe()):
                logger.debug("[%s] %s", check.id, step.describe())
                try:
                    if isinstance(step, Action):
                        self.perform(check.id, step)
                    else:
                        self.verify(check.id, step)
                except CheckFailure as failure:
                    logger.error("%s", failure)
                    raise
                except PlaywrightError as exc:
                    logger.error("[%s] Playwright error on %s: %s", check.id, step.describe(), exc)
                    raise CheckFailure(check.id, step.selector, str(exc).splitlines()[0]) from exc

    def perform(self, check_id: str, action: Action) -> None:
        locator = self.page.locator(action.selector)
        self._require_attached(check_id, action.selector, locator)
        if action.kind is ActionKind.CLICK:
            try:
                locator.click(timeout=self.timeout_ms)
            except PlaywrightTimeoutError as exc:
                raise CheckTimeoutError(check_id, action.selector, "click timed out") from exc

    def verify(self, check_id: str, expectation: Expectation) -> None:
        if expectation.kind is ExpectationKind.TITLE_MATCHES:
            self._verify_title(check_id, expectation)
            return

        selector = expectation.selector or ""
        locator = self.page.locator(selector)
        if expectation.kind in (ExpectationKind.COUNT_AT_LEAST, ExpectationKind.COUNT_GREATER_THAN):
            self._verify_count(check_id, expectation, locator)
            return

        if expectation.first:
            locator = locator.first
        self._require_attached(check_id, selector, locator)
        handler = {
            ExpectationKind.VISIBLE: self._verify_visible,
            ExpectationKind.CONTAINS_TEXT: self._verify_text,
            ExpectationKind.HAS_CLASS: self._verify_class,
            ExpectationKind.LACKS_CLASS: self._verify_class,
            ExpectationKind.ATTRIBUTE_EQUALS: self._verify_attribute,
            ExpectationKind.ATTRIBUTE_CONTAINS: self._verify_attribute,
        }[expectation.kind]
        handler(check_id, expectation, locator)

    # Individual expectations --------------------------------------------

    def _require_attached(self, check_id: str, selector: str, locator: Locator) -> None:
        try:
            locator.first.wait_for(state="attached", timeout=self.timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise LocatorNotFoundError(check_id, selector, "no matching element") from exc

    def _verify_title(self, check_id: str, expectation: Expectation) -> None:
        pattern = re.compile(expectation.value or "")
        try:
            expect(self.page).to_have_title(pattern, timeout=self.timeout_ms)
        except AssertionError as exc:
            raise ValueMismatchError(
                check_id,
                "document title",
                "title does not match",
                expected=pattern.pattern,
                actual=self.page.title(),
            ) from exc

    def _verify_count(self, check_id: str, expectation: Expectation, locator: Locator) -> None:
        threshold = expectation.count or 0
        minimum = threshold if expectation.kind is ExpectationKind.COUNT_AT_LEAST else threshold + 1
        if minimum > 0:
            self._require_attached(check_id, expectation.selector or "", locator)
        actual = self._wait_for_count(locator, minimum)
        if actual < minimum:
            symbol = ">=" if expectation.kind is ExpectationKind.COUNT_AT_LEAST else ">"
            raise ValueMismatchError(
                check_id,
                expectation.selector,
                "too few matching elements",
                expected=f"{symbol} {threshold}",
                actual=actual,
            )

    def _wait_for_count(self, locator: Locator, minimum: int) -> int:
        """Re-count until ``minimum`` matches exist or the timeout runs out; return the last count."""
        deadline = time.monotonic() + self.timeout_ms / 1000
        actual = locator.count()
        while actual < minimum and time.monotonic() < deadline:
            self.page.wait_for_timeout(POLL_INTERVAL_MS)
            actual = locator.count()
        return actual

    def _verify_visible(self, check_id: str, expectation: Expectation, locator: Locator) -> None:
        try:
            expect(locator).to_be_visible(timeout=self.timeout_ms)
        except AssertionError as exc:
            raise CheckTimeoutError(
                check_id,
                expectation.selector,
                f"element attached but not visible after {self.timeout_ms}ms",
            ) from exc

    def _verify_text(self, check_id: str, expectation: Expectation, locator: Locator) -> None:
        try:
            expect(locator).to_contain_text(expectation.value or "", timeout=self.timeout_ms)
        except AssertionError as exc:
            raise ValueMismatchError(
                check_id,
                expectation.selector,
                "text does not match",
                expected=expectation.value,
                actual=(locator.first.text_content() or "").strip(),
            ) from exc

    def _verify_class(self, check_id: str, expectation: Expectation, locator: Locator) -> None:
        pattern = class_token_pattern(expectation.value or "")
        assertion = expect(locator)
        try:
            if expectation.kind is ExpectationKind.HAS_CLASS:
                assertion.to_have_class(pattern, timeout=self.timeout_ms)
            else:
                assertion.not_to_have_class(pattern, timeout=self.timeout_ms)
        except AssertionError as exc:
            wanted = "present" if expectation.kind is ExpectationKind.HAS_CLASS else "absent"
            raise ValueMismatchError(
                check_id,
                expectation.selector,
                f"class token {expectation.value!r} should be {wanted}",
                expected=wanted,
                actual=locator.first.get_attribute("class"),
            ) from exc

    def _verify_attribute(self, check_id: str, expectation: Expectation, locator: Locator) -> None:
        name = expectation.attribute or ""
        wanted = expectation.value or ""
        if expectation.kind is ExpectationKind.ATTRIBUTE_EQUALS:
            try:
                expect(locator).to_have_attribute(name, wanted, timeout=self.timeout_ms)
            except AssertionError as exc:
                raise ValueMismatchError(
                    check_id,
                    expectation.selector,
                    f"attribute {name!r} differs",
                    expected=wanted,
                    actual=locator.first.get_attribute(name),
                ) from exc
            return

        try:
            expect(locator).to_have_attribute(name, token_superset_pattern(wanted), timeout=self.timeout_ms)
        except AssertionError as exc:
            raise ValueMismatchError(
                check_id,
                expectation.selector,
                f"attribute {name!r} is missing tokens",
                expected=wanted,
                actual=locator.first.get_attribute(name),
            ) from exc


__all__ = [
    "CheckFailure",
    "CheckOutcome",
    "CheckRunner",
    "CheckTimeoutError",
    "LocatorNotFoundError",
    "ValueMismatchError",
    "class_token_pattern",
    "contains_tokens",
    "join_url",
    "token_superset_pattern",
]
