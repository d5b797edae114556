import logging
import uuid

from selenium.common.exceptions import (
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.support.ui import WebDriverWait

from purge_bot.errors import WaitTimeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0

OBSERVE_SCRIPT = """
const root = arguments[0] || document.documentElement;
const key = arguments[1];
window.__purgeWatch = window.__purgeWatch || {};
const entry = {count: 0, observer: null};
entry.observer = new MutationObserver(() => { entry.count += 1; });
entry.observer.observe(root, {childList: true, subtree: true, attributes: true});
window.__purgeWatch[key] = entry;
return true;
"""

COUNT_SCRIPT = """
const entry = (window.__purgeWatch || {})[arguments[0]];
return entry ? entry.count : null;
"""

RELEASE_SCRIPT = """
const registry = window.__purgeWatch || {};
const entry = registry[arguments[0]];
if (entry) {
  entry.observer.disconnect();
  delete registry[arguments[0]];
}
return true;
"""


class ChangeSubscription:
    """
    Page-side MutationObserver counting structural changes under a root.

    A count of None means the observer is gone, which happens when the
    document was replaced by a navigation.
    """

    def __init__(self, driver, root=None):
        self.driver = driver
        self.root = root
        self.key = uuid.uuid4().hex

    def open(self) -> "ChangeSubscription":
        self.driver.execute_script(OBSERVE_SCRIPT, self.root, self.key)
        return self

    def count(self):
        return self.driver.execute_script(COUNT_SCRIPT, self.key)

    def release(self) -> None:
        try:
            self.driver.execute_script(RELEASE_SCRIPT, self.key)
        except WebDriverException as e:
            logger.debug(f"Change subscription {self.key} already gone: {e}")

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


def await_condition(driver, predicate, scope=None, timeout: float = DEFAULT_TIMEOUT,
                    poll_frequency: float = 0.1):
    """
    Wait until predicate(scope) is truthy and return its result.

    scope defaults to the driver (whole document). An already-true
    predicate returns without touching the page. Otherwise the predicate
    is re-evaluated after each structural change under scope, until
    timeout seconds have passed and WaitTimeout is raised.
    """
    scope = driver if scope is None else scope
    try:
        result = predicate(scope)
    except StaleElementReferenceException:
        result = None
    if result:
        return result

    observed_root = None if scope is driver else scope
    last_seen = [-1]

    def _changed_and_matches(_):
        count = subscription.count()
        if count is not None and count == last_seen[0]:
            return False
        if count is not None:
            last_seen[0] = count
        return predicate(scope)

    with ChangeSubscription(driver, observed_root) as subscription:
        try:
            return WebDriverWait(
                driver,
                timeout,
                poll_frequency=poll_frequency,
                ignored_exceptions=(StaleElementReferenceException,),
            ).until(_changed_and_matches)
        except TimeoutException as e:
            name = getattr(predicate, "__name__", "condition")
            raise WaitTimeout(f"Timed out after {timeout}s waiting for {name}") from e
