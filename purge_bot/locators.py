"""
Locators for the Gmail list and subscriptions views.

Every locator takes a scope (the driver or a WebElement) and returns the
best visible match or None. Candidates are ranked by where the intent
matched: visible text first, then aria-label, then data-tooltip. Within a
rank the first one in document order wins. Locators only read the tree.
"""
from typing import Callable, Iterable, List, Optional

from selenium.common.exceptions import StaleElementReferenceException
from selenium.webdriver.common.by import By

TEXT_RANK = 0
ARIA_RANK = 1
TOOLTIP_RANK = 2

LIST_REGION_SELECTOR = "div[role='main']"
TOOLBAR_SELECTORS = ("div[gh='mtb']", "[role='toolbar']")
CONTROL_SELECTOR = "[role='button'], button, div[aria-label], div[data-tooltip]"
CHECKBOX_SELECTOR = "span[role='checkbox'], div[role='checkbox'], input[type='checkbox']"
BANNER_SELECTOR = "span, a, [role='link'], [role='button']"
UNSUBSCRIBE_SELECTOR = "button, a, [role='button'], [role='link'], div, span"
GRID_CELL_SELECTOR = "[role='gridcell']"
SENDER_LINK_SELECTOR = "a[href*='#search/from'], a[href*='search/from%3A'], a[href*='q=from']"
DIALOG_BUTTON_SELECTOR = (
    "[role='dialog'] button, [role='dialog'] [role='button'], "
    "[role='alertdialog'] button, [role='alertdialog'] [role='button']"
)

PURGE_CONTROL_CLASS = "gm-sub-purge-btn"

DELETE_TEXT = "delete"
OLDER_TEXT = "older"
SELECT_TEXT = "select"
UNSUBSCRIBE_TEXT = "unsubscribe"
SELECT_ALL_BANNER_TEXT = "select all conversations that match this search"


def is_visible(element) -> bool:
    """An element is visible when it has a non-zero layout box."""
    try:
        rect = element.rect
    except StaleElementReferenceException:
        return False
    return bool(rect) and rect.get("width", 0) > 0 and rect.get("height", 0) > 0


def is_disabled(element) -> bool:
    aria = (element.get_attribute("aria-disabled") or "").lower()
    return aria == "true" or element.get_attribute("disabled") not in (None, "", "false")


def _attr(element, name: str) -> str:
    return (element.get_attribute(name) or "").strip().lower()


def _text(element) -> str:
    return (element.text or "").strip().lower()


def match_rank(element, needle: str, prefix_only: bool = True) -> Optional[int]:
    """Rank how an element matches needle, or None when it does not."""
    text = _text(element)
    if text and (text.startswith(needle) if prefix_only else needle in text):
        return TEXT_RANK
    if needle in _attr(element, "aria-label"):
        return ARIA_RANK
    if needle in _attr(element, "data-tooltip"):
        return TOOLTIP_RANK
    return None


def visible_elements(scope, selector: str) -> List:
    found = []
    for element in scope.find_elements(By.CSS_SELECTOR, selector):
        if is_visible(element):
            found.append(element)
    return found


def best_match(candidates: Iterable, rank: Callable):
    """Pick the lowest-ranked candidate, first in document order on ties."""
    best, best_rank = None, None
    for element in candidates:
        try:
            current = rank(element)
        except StaleElementReferenceException:
            continue
        if current is None:
            continue
        if best_rank is None or current < best_rank:
            best, best_rank = element, current
    return best


def find_by_intent(scope, selector: str, needle: str, prefix_only: bool = True,
                   accept: Optional[Callable] = None):
    def _rank(element):
        if accept is not None and not accept(element):
            return None
        return match_rank(element, needle, prefix_only)

    return best_match(visible_elements(scope, selector), _rank)


def find_list_region(scope):
    regions = visible_elements(scope, LIST_REGION_SELECTOR)
    return regions[0] if regions else None


def find_toolbar(scope):
    for selector in TOOLBAR_SELECTORS:
        toolbars = visible_elements(scope, selector)
        if toolbars:
            return toolbars[0]
    return None


def find_delete_control(toolbar):
    return find_by_intent(toolbar, CONTROL_SELECTOR, DELETE_TEXT)


def find_older_control(toolbar):
    return find_by_intent(
        toolbar, CONTROL_SELECTOR, OLDER_TEXT,
        accept=lambda el: not is_disabled(el),
    )


def find_select_page_checkbox(scope):
    def _rank(element):
        label = _attr(element, "aria-label") or _text(element)
        return 0 if SELECT_TEXT in label else 1

    return best_match(visible_elements(scope, CHECKBOX_SELECTOR), _rank)


def find_select_all_banner(scope):
    return find_by_intent(scope, BANNER_SELECTOR, SELECT_ALL_BANNER_TEXT, prefix_only=False)


def _not_purge_control(element) -> bool:
    classes = _attr(element, "class").split()
    return PURGE_CONTROL_CLASS not in classes


def find_unsubscribe_control(row):
    for cell in visible_elements(row, GRID_CELL_SELECTOR):
        control = find_by_intent(
            cell, UNSUBSCRIBE_SELECTOR, UNSUBSCRIBE_TEXT, accept=_not_purge_control
        )
        if control is not None:
            return control
    return find_by_intent(row, UNSUBSCRIBE_SELECTOR, UNSUBSCRIBE_TEXT, accept=_not_purge_control)


def find_sender_link(row):
    links = visible_elements(row, SENDER_LINK_SELECTOR)
    return links[0] if links else None


def find_dialog_confirm(scope, labels=("ok", "confirm", "unsubscribe")):
    candidates = visible_elements(scope, DIALOG_BUTTON_SELECTOR)
    for label in labels:
        control = best_match(candidates, lambda el, label=label: match_rank(el, label))
        if control is not None:
            return control
    return None
