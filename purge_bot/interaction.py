import time
import logging

from selenium.common.exceptions import (
    ElementClickInterceptedException,
    ElementNotInteractableException,
    StaleElementReferenceException,
)

logger = logging.getLogger(__name__)

SETTLE_DELAY = 0.15

SCROLL_INTO_VIEW_SCRIPT = "arguments[0].scrollIntoView({block: 'center'});"
SCRIPT_CLICK_SCRIPT = "arguments[0].click();"
POINTER_EVENT_SCRIPT = """
const el = arguments[0];
const r = el.getBoundingClientRect();
const x = Math.floor(r.left + r.width / 2);
const y = Math.floor(r.top + r.height / 2);
el.dispatchEvent(new MouseEvent(arguments[1], {
  view: window, bubbles: true, cancelable: true, button: 0, clientX: x, clientY: y
}));
"""

# enter, press, release, click
POINTER_SEQUENCE = ("mouseover", "mousedown", "mouseup", "click")


def invoke(driver, element, settle: float = SETTLE_DELAY) -> None:
    """
    Activate an element the way a user would.

    Gmail wires many controls to low-level mouse events only, so after the
    direct click the full pointer sequence is always dispatched at the
    element's center.
    """
    driver.execute_script(SCROLL_INTO_VIEW_SCRIPT, element)
    try:
        element.click()
    except (ElementClickInterceptedException, ElementNotInteractableException) as e:
        logger.debug(f"Native click refused ({e.__class__.__name__}), using script click.")
        driver.execute_script(SCRIPT_CLICK_SCRIPT, element)
    time.sleep(settle)

    for event_type in POINTER_SEQUENCE:
        try:
            driver.execute_script(POINTER_EVENT_SCRIPT, element, event_type)
        except StaleElementReferenceException:
            # the click already navigated and took the element with it
            logger.debug(f"Element detached before '{event_type}', pointer sequence stopped.")
            return
        time.sleep(settle)
