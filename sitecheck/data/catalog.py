"""Declarative table of page checks for the AcreetionOS site."""
from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, model_validator


class Viewport(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: PositiveInt
    height: PositiveInt

    @property
    def size(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


MOBILE = Viewport(width=375, height=667)
TABLET = Viewport(width=768, height=1024)
EXTRA_SMALL = Viewport(width=320, height=568)


class ActionKind(str, Enum):
    CLICK = "click"


class ExpectationKind(str, Enum):
    TITLE_MATCHES = "title_matches"
    VISIBLE = "visible"
    CONTAINS_TEXT = "contains_text"
    HAS_CLASS = "has_class"
    LACKS_CLASS = "lacks_class"
    ATTRIBUTE_EQUALS = "attribute_equals"
    ATTRIBUTE_CONTAINS = "attribute_contains"
    COUNT_AT_LEAST = "count_at_least"
    COUNT_GREATER_THAN = "count_greater_than"


VALUE_KINDS = {
    ExpectationKind.TITLE_MATCHES,
    ExpectationKind.CONTAINS_TEXT,
    ExpectationKind.HAS_CLASS,
    ExpectationKind.LACKS_CLASS,
    ExpectationKind.ATTRIBUTE_EQUALS,
    ExpectationKind.ATTRIBUTE_CONTAINS,
}
ATTRIBUTE_KINDS = {ExpectationKind.ATTRIBUTE_EQUALS, ExpectationKind.ATTRIBUTE_CONTAINS}
COUNT_KINDS = {ExpectationKind.COUNT_AT_LEAST, ExpectationKind.COUNT_GREATER_THAN}


class Action(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    selector: str = Field(min_length=1)

    def describe(self) -> str:
        return f"{self.kind.value} {self.selector}"


class Expectation(BaseModel):
    """A single assertion against the loaded page.

    ``selector`` is required for everything except ``title_matches``.
    ``first`` narrows a multi-element locator to its first match.
    """

    model_config = ConfigDict(frozen=True)

    kind: ExpectationKind
    selector: Optional[str] = None
    value: Optional[str] = None
    attribute: Optional[str] = None
    count: Optional[int] = Field(default=None, ge=0)
    first: bool = False

    @model_validator(mode="after")
    def _check_fields(self) -> "Expectation":
        if self.kind is not ExpectationKind.TITLE_MATCHES and not self.selector:
            raise ValueError(f"{self.kind.value} requires a selector")
        if self.kind in VALUE_KINDS and not self.value:
            raise ValueError(f"{self.kind.value} requires a value")
        if self.kind in ATTRIBUTE_KINDS and not self.attribute:
            raise ValueError(f"{self.kind.value} requires an attribute name")
        if self.kind in COUNT_KINDS and self.count is None:
            raise ValueError(f"{self.kind.value} requires a count")
        return self

    def describe(self) -> str:
        target = self.selector or "document title"
        if self.first:
            target = f"{target} (first)"
        detail = {
            ExpectationKind.TITLE_MATCHES: f"matches /{self.value}/",
            ExpectationKind.VISIBLE: "is visible",
            ExpectationKind.CONTAINS_TEXT: f"contains text {self.value!r}",
            ExpectationKind.HAS_CLASS: f"has class {self.value!r}",
            ExpectationKind.LACKS_CLASS: f"lacks class {self.value!r}",
            ExpectationKind.ATTRIBUTE_EQUALS: f"[{self.attribute}] == {self.value!r}",
            ExpectationKind.ATTRIBUTE_CONTAINS: f"[{self.attribute}] contains {self.value!r}",
            ExpectationKind.COUNT_AT_LEAST: f"count >= {self.count}",
            ExpectationKind.COUNT_GREATER_THAN: f"count > {self.count}",
        }[self.kind]
        return f"{target} {detail}"


Step = Union[Action, Expectation]


class PageCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(pattern=r"^[a-z0-9]+(-[a-z0-9]+)*$")
    title: str
    path: str = Field(pattern=r"^/")
    group: str = "site"
    viewport: Optional[Viewport] = None
    steps: tuple[Step, ...] = Field(min_length=1)

    @property
    def expectations(self) -> list[Expectation]:
        return [step for step in self.steps if isinstance(step, Expectation)]


class SitePage(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str = Field(pattern=r"^/")
    title_pattern: str


# Step builders keep the table below readable.

def click(selector: str) -> Action:
    return Action(kind=ActionKind.CLICK, selector=selector)


def title(pattern: str) -> Expectation:
    return Expectation(kind=ExpectationKind.TITLE_MATCHES, value=pattern)


def visible(selector: str, first: bool = False) -> Expectation:
    return Expectation(kind=ExpectationKind.VISIBLE, selector=selector, first=first)


def contains_text(selector: str, text: str, first: bool = False) -> Expectation:
    return Expectation(kind=ExpectationKind.CONTAINS_TEXT, selector=selector, value=text, first=first)


def has_class(selector: str, token: str) -> Expectation:
    return Expectation(kind=ExpectationKind.HAS_CLASS, selector=selector, value=token)


def lacks_class(selector: str, token: str) -> Expectation:
    return Expectation(kind=ExpectationKind.LACKS_CLASS, selector=selector, value=token)


def attribute_equals(selector: str, attribute: str, value: str, first: bool = False) -> Expectation:
    return Expectation(
        kind=ExpectationKind.ATTRIBUTE_EQUALS, selector=selector, attribute=attribute, value=value, first=first
    )


def attribute_contains(selector: str, attribute: str, value: str, first: bool = False) -> Expectation:
    return Expectation(
        kind=ExpectationKind.ATTRIBUTE_CONTAINS, selector=selector, attribute=attribute, value=value, first=first
    )


def count_at_least(selector: str, count: int) -> Expectation:
    return Expectation(kind=ExpectationKind.COUNT_AT_LEAST, selector=selector, count=count)


def count_greater_than(selector: str, count: int) -> Expectation:
    return Expectation(kind=ExpectationKind.COUNT_GREATER_THAN, selector=selector, count=count)


ROOT_URL = "https://root.acreetionos.org"
ROOT_LINK = f'a[href="{ROOT_URL}"]'
SECURE_REL = "noopener noreferrer"

HOME_TITLE = "AcreetionOS"
CONTACT_TITLE = "Contact"
COMPARE_TITLE = "Compare"
INSTALL_TITLE = "Installation Guide"

SITE_PAGES: tuple[SitePage, ...] = (
    SitePage(path="/", title_pattern=HOME_TITLE),
    SitePage(path="/contact.html", title_pattern=CONTACT_TITLE),
    SitePage(path="/compare.html", title_pattern=COMPARE_TITLE),
    SitePage(path="/install.html", title_pattern=INSTALL_TITLE),
)

CHECKS: tuple[PageCheck, ...] = (
    PageCheck(id="homepage-title", title="homepage loads successfully", path="/", steps=(title(HOME_TITLE),)),
    PageCheck(
        id="logo-branding",
        title="logo and branding visible",
        path="/",
        steps=(visible(".logo-img"), contains_text(".logo-text", "AcreetionOS")),
    ),
    PageCheck(
        id="nav-links",
        title="navigation links are present",
        path="/",
        steps=(visible('a[href="#about"]'), visible('a[href="#manual-downloads"]')),
    ),
    PageCheck(
        id="download-buttons",
        title="download buttons render",
        path="/",
        steps=(visible(".btn-cinnamon", first=True),),
    ),
    PageCheck(
        id="contact-page",
        title="contact page loads",
        path="/contact.html",
        steps=(title(CONTACT_TITLE), visible(".contact-form")),
    ),
    PageCheck(
        id="donate-modal-toggle",
        title="donate modal opens and closes",
        path="/",
        steps=(
            click('[data-modal-target="#donate-modal"]'),
            has_class("#donate-modal", "visible"),
            click("#donate-modal .modal-close-btn"),
            lacks_class("#donate-modal", "visible"),
        ),
    ),
    PageCheck(
        id="external-link-security",
        title="external links have proper attributes",
        path="/",
        steps=(
            count_greater_than('a[target="_blank"]', 0),
            attribute_contains('a[target="_blank"]', "rel", "noopener", first=True),
        ),
    ),
    PageCheck(
        id="root-link-index",
        title="Root link appears in index sidebar",
        path="/",
        steps=(
            visible(ROOT_LINK),
            contains_text(ROOT_LINK, "Root"),
            attribute_contains(ROOT_LINK, "rel", SECURE_REL),
            attribute_equals(ROOT_LINK, "target", "_blank"),
        ),
    ),
    PageCheck(
        id="root-links-contact",
        title="Root links appear on contact page",
        path="/contact.html",
        steps=(
            count_at_least(ROOT_LINK, 2),
            visible(f'{ROOT_LINK}:has-text("Create a Ticket on Root")'),
            visible(f"aside {ROOT_LINK}"),
        ),
    ),
    PageCheck(
        id="mobile-homepage",
        title="homepage renders on small screen",
        path="/",
        group="responsive",
        viewport=MOBILE,
        steps=(title(HOME_TITLE), visible(".logo-img"), visible(".main-nav")),
    ),
    PageCheck(
        id="tablet-homepage",
        title="homepage renders on tablet",
        path="/",
        group="responsive",
        viewport=TABLET,
        steps=(title(HOME_TITLE), visible(".content-box", first=True)),
    ),
    PageCheck(
        id="extra-small-homepage",
        title="homepage renders at 320px",
        path="/",
        group="responsive",
        viewport=EXTRA_SMALL,
        steps=(title(HOME_TITLE), visible(".logo-img")),
    ),
    PageCheck(
        id="mobile-contact-form",
        title="contact form is accessible on mobile",
        path="/contact.html",
        group="responsive",
        viewport=MOBILE,
        steps=(visible(".contact-form"), visible('input[name="name"]')),
    ),
    PageCheck(
        id="compare-scroll-wrappers",
        title="compare page tables are scrollable on mobile",
        path="/compare.html",
        group="responsive",
        viewport=MOBILE,
        steps=(
            title(COMPARE_TITLE),
            count_at_least('div[style*="overflow-x: auto"]', 5),
            count_greater_than(".comparison-table", 0),
            visible(".comparison-table", first=True),
        ),
    ),
    PageCheck(
        id="compare-feature-cards",
        title="compare page feature cards stack on mobile",
        path="/compare.html",
        group="responsive",
        viewport=MOBILE,
        steps=(count_greater_than(".feature-card", 0), visible(".feature-card", first=True)),
    ),
    PageCheck(
        id="install-guide-mobile",
        title="install guide renders on mobile",
        path="/install.html",
        group="responsive",
        viewport=MOBILE,
        steps=(
            title(INSTALL_TITLE),
            visible("h1", first=True),
            contains_text("h1", INSTALL_TITLE, first=True),
            visible("pre", first=True),
            visible(".box-body ul, .box-body ol", first=True),
        ),
    ),
    PageCheck(
        id="install-guide-extra-small",
        title="install guide renders at 320px",
        path="/install.html",
        group="responsive",
        viewport=EXTRA_SMALL,
        steps=(
            title(INSTALL_TITLE),
            visible(".logo-img"),
            visible("h1", first=True),
            contains_text("h1", INSTALL_TITLE, first=True),
        ),
    ),
    PageCheck(
        id="install-guide-tablet",
        title="install guide renders on tablet",
        path="/install.html",
        group="responsive",
        viewport=TABLET,
        steps=(title(INSTALL_TITLE), visible(".content-box", first=True), visible(".sidebar-column")),
    ),
)


def checks_for(path: str | None = None, group: str | None = None) -> list[PageCheck]:
    return [
        check
        for check in CHECKS
        if (path is None or check.path == path) and (group is None or check.group == group)
    ]


def get_check(check_id: str) -> PageCheck:
    for check in CHECKS:
        if check.id == check_id:
            return check
    raise KeyError(check_id)


def toggle_check_ids() -> list[str]:
    """Checks that add and then remove the same class token, so their steps can repeat."""
    ids = []
    for check in CHECKS:
        added = {e.value for e in check.expectations if e.kind is ExpectationKind.HAS_CLASS}
        removed = {e.value for e in check.expectations if e.kind is ExpectationKind.LACKS_CLASS}
        if added & removed:
            ids.append(check.id)
    return ids


__all__ = [
    "Action",
    "ActionKind",
    "CHECKS",
    "COMPARE_TITLE",
    "CONTACT_TITLE",
    "EXTRA_SMALL",
    "Expectation",
    "ExpectationKind",
    "HOME_TITLE",
    "INSTALL_TITLE",
    "MOBILE",
    "PageCheck",
    "ROOT_LINK",
    "ROOT_URL",
    "SECURE_REL",
    "SITE_PAGES",
    "SitePage",
    "Step",
    "TABLET",
    "Viewport",
    "attribute_contains",
    "attribute_equals",
    "checks_for",
    "click",
    "contains_text",
    "count_at_least",
    "count_greater_than",
    "get_check",
    "has_class",
    "lacks_class",
    "title",
    "toggle_check_ids",
    "visible",
]
