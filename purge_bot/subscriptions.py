import re
import logging
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlsplit

from selenium.common.exceptions import StaleElementReferenceException
from selenium.webdriver.common.by import By

from purge_bot.locators import (
    PURGE_CONTROL_CLASS,
    find_list_region,
    visible_elements,
)
from purge_bot.settings import ACTION_LABEL

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")
SUBSCRIPTIONS_HASH_RE = re.compile(r"#(?:sub|[\w-]*subscriptions)(?:[/?]|$)", re.IGNORECASE)

ROW_SELECTOR = "[role='listitem'], [role='row']"
HEADING_SELECTOR = "h1, h2, [role='heading']"
SENDER_ADDRESS_SELECTOR = "[email]"
PURGE_CONTROL_SELECTOR = f".{PURGE_CONTROL_CLASS}"

INJECT_CONTROL_SCRIPT = """
const row = arguments[0];
const btn = document.createElement('button');
btn.className = arguments[3];
btn.textContent = arguments[1];
btn.setAttribute('data-purge-target', arguments[2]);
Object.assign(btn.style, {
  marginLeft: '8px', padding: '4px 8px', border: '1px solid #dadce0',
  borderRadius: '6px', cursor: 'pointer', fontSize: '12px'
});
btn.addEventListener('click', (ev) => { ev.stopPropagation(); ev.preventDefault(); });
row.appendChild(btn);
return btn;
"""

CONTROL_STATUS_SCRIPT = """
const btn = arguments[0];
btn.textContent = arguments[1];
btn.disabled = arguments[2];
btn.setAttribute('data-purge-state', arguments[2] ? 'running' : 'idle');
"""


@dataclass(frozen=True)
class Target:
    """Stable identity of a subscription sender."""

    address: Optional[str]
    display_name: str

    @property
    def key(self) -> str:
        return (self.address or self.display_name).lower()

    def matches(self, other: "Target") -> bool:
        """Same sender: equal addresses, or equal names when there is no address."""
        if self.address:
            return other.address == self.address
        return other.display_name.strip().lower() == self.display_name.strip().lower()


def is_subscriptions_view(driver) -> bool:
    fragment = urlsplit(driver.current_url or "").fragment
    if fragment and SUBSCRIPTIONS_HASH_RE.search(f"#{fragment}"):
        return True
    for heading in visible_elements(driver, HEADING_SELECTOR):
        if "subscriptions" in (heading.text or "").lower():
            return True
    return False


def subscription_rows(driver) -> List:
    scope = find_list_region(driver) or driver
    return visible_elements(scope, ROW_SELECTOR)


def resolve_target(row) -> Optional[Target]:
    """Work out who a row belongs to: an address if possible, else a name."""
    try:
        text = (row.text or "").strip()
        address = None
        for node in row.find_elements(By.CSS_SELECTOR, SENDER_ADDRESS_SELECTOR):
            address = (node.get_attribute("email") or "").strip() or None
            if address:
                break
    except StaleElementReferenceException:
        return None

    if not address:
        found = EMAIL_RE.search(text)
        address = found.group(0) if found else None

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    display_name = lines[0] if lines else ""
    if not address and not display_name:
        return None
    return Target(address=address.lower() if address else None, display_name=display_name)


def find_target_row(driver, target: Target):
    """Look the target's row up again in the current tree."""
    for row in subscription_rows(driver):
        candidate = resolve_target(row)
        if candidate is not None and target.matches(candidate):
            return row
    return None


def find_purge_control(row):
    controls = visible_elements(row, PURGE_CONTROL_SELECTOR)
    return controls[0] if controls else None


def decorate_rows(driver, label: str = ACTION_LABEL) -> int:
    """Add the purge control to every undecorated row. Returns how many were added."""
    if not is_subscriptions_view(driver):
        return 0

    decorated = 0
    for row in subscription_rows(driver):
        if row.find_elements(By.CSS_SELECTOR, PURGE_CONTROL_SELECTOR):
            continue
        target = resolve_target(row)
        if target is None:
            continue
        driver.execute_script(INJECT_CONTROL_SCRIPT, row, label, target.key, PURGE_CONTROL_CLASS)
        decorated += 1

    if decorated:
        logger.info(f"Decorated {decorated} subscription row(s).")
    return decorated


def set_control_status(driver, control, label: str, disabled: bool) -> None:
    driver.execute_script(CONTROL_STATUS_SCRIPT, control, label, disabled)
