import re
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional
from urllib.parse import quote, urlsplit

from selenium.common.exceptions import WebDriverException

from purge_bot.errors import (
    DeleteNotFoundError,
    ElementNotFound,
    NavigationError,
    PurgeError,
    UserAbort,
    WaitTimeout,
)
from purge_bot.interaction import invoke
from purge_bot.locators import (
    find_delete_control,
    find_dialog_confirm,
    find_list_region,
    find_older_control,
    find_select_all_banner,
    find_select_page_checkbox,
    find_sender_link,
    find_toolbar,
    find_unsubscribe_control,
    is_disabled,
)
from purge_bot.settings import PurgeConfig
from purge_bot.subscriptions import (
    Target,
    find_purge_control,
    find_target_row,
    is_subscriptions_view,
    resolve_target,
    set_control_status,
)
from purge_bot.waits import await_condition

logger = logging.getLogger(__name__)

ACCOUNT_INDEX_RE = re.compile(r"/mail/u/(\d+)")

RUNNING_LABEL = "Purging..."
DONE_LABEL = "Done"
SKIPPED_UNSUBSCRIBE_LABEL = "Done (unsubscribe skipped)"
ERROR_LABEL = "Error"


class Phase(Enum):
    IDLE = "idle"
    NAVIGATE_TO_SENDER_SEARCH = "navigate_to_sender_search"
    AWAIT_LIST_LOADED = "await_list_loaded"
    SELECT_PAGE = "select_page"
    CHECK_BULK_BANNER = "check_bulk_banner"
    BULK_DELETE_ALL = "bulk_delete_all"
    PER_PAGE_DELETE_LOOP = "per_page_delete_loop"
    RETURN_TO_ORIGIN = "return_to_origin"
    UNSUBSCRIBE_ATTEMPT = "unsubscribe_attempt"
    DONE = "done"
    ERROR = "error"


@dataclass
class RunState:
    """Everything one run knows about itself. Discarded when the run ends."""

    origin_url: str
    origin_is_subscriptions: bool = False
    target: Optional[Target] = None
    phase: Phase = Phase.IDLE
    pages: int = 0
    page_turns: int = 0
    used_banner: bool = False
    unsubscribed: bool = False
    navigation_error: Optional[NavigationError] = None
    error: Optional[Exception] = None
    visited: List[Phase] = field(default_factory=lambda: [Phase.IDLE])

    def advance(self, phase: Phase) -> None:
        self.phase = phase
        self.visited.append(phase)

    @property
    def succeeded(self) -> bool:
        return self.phase is Phase.DONE

    def summary(self) -> str:
        name = self.target.key if self.target else "unknown sender"
        if not self.succeeded:
            return f"Failed for {name}: {self.error}"
        if self.used_banner:
            deletion = "all in one go via banner"
        else:
            deletion = f"paginated, {self.pages} page(s)"
        unsubscribe = "unsubscribe invoked" if self.unsubscribed else "unsubscribe skipped"
        return f"Done with {name}: {deletion}; {unsubscribe}."


def sender_search_url(current_url: str, address: str) -> str:
    parts = urlsplit(current_url)
    found = ACCOUNT_INDEX_RE.search(parts.path)
    index = found.group(1) if found else "0"
    return (
        f"{parts.scheme}://{parts.netloc}/mail/u/{index}/"
        f"#search/from:{quote(address, safe='')}"
    )


class PurgeOrchestrator:
    """
    Deletes every message from one sender, then unsubscribes from it.

    The run walks Phase in order: open the sender search, wait for the
    list, select the page, then either take the "select all matching"
    banner and delete once, or delete page by page through "Older".
    Afterwards it goes back to the view it started from, finds the
    sender's row again and invokes its unsubscribe control.

    Nothing is retried. The first fatal error ends the run in
    Phase.ERROR. A missing unsubscribe control or an unconfirmed return
    navigation are not fatal.
    """

    def __init__(self, driver, config: Optional[PurgeConfig] = None):
        self.driver = driver
        self.config = config or PurgeConfig()

    def run(self, row) -> RunState:
        state = RunState(
            origin_url=self.driver.current_url,
            origin_is_subscriptions=is_subscriptions_view(self.driver),
        )
        try:
            state.advance(Phase.NAVIGATE_TO_SENDER_SEARCH)
            state.target = resolve_target(row)
            if state.target is None:
                raise ElementNotFound("Could not resolve the sender of the triggering row.")
            logger.info(f"[PURGE] Starting run for {state.target.key}")
            self._open_sender_search(row, state.target)

            state.advance(Phase.AWAIT_LIST_LOADED)
            self._await_list_loaded()

            state.advance(Phase.SELECT_PAGE)
            self._select_page()

            state.advance(Phase.CHECK_BULK_BANNER)
            banner = find_select_all_banner(self.driver)
            if banner is not None:
                state.advance(Phase.BULK_DELETE_ALL)
                self._bulk_delete_all(state, banner)
            else:
                state.advance(Phase.PER_PAGE_DELETE_LOOP)
                self._per_page_delete_loop(state)

            state.advance(Phase.RETURN_TO_ORIGIN)
            self._return_to_origin(state)

            state.advance(Phase.UNSUBSCRIBE_ATTEMPT)
            state.unsubscribed = self._unsubscribe(state.target)

            state.advance(Phase.DONE)
            logger.info(f"[PURGE] {state.summary()}")
        except (PurgeError, WebDriverException) as e:
            failed_in = state.phase.value
            state.error = e
            state.advance(Phase.ERROR)
            logger.error(f"[PURGE] Run aborted during {failed_in}: {e!r}")
        return state

    def _settle(self, seconds: float) -> None:
        time.sleep(seconds)

    def _invoke(self, element) -> None:
        invoke(self.driver, element, self.config.settle_delay)

    def _wait(self, predicate, timeout: float):
        return await_condition(
            self.driver,
            predicate,
            timeout=timeout,
            poll_frequency=self.config.poll_frequency,
        )

    def _open_sender_search(self, row, target: Target) -> None:
        link = find_sender_link(row)
        if link is not None:
            logger.info(f"[PURGE] Following sender link for {target.key}")
            self._invoke(link)
            return

        if not target.address:
            raise NavigationError(
                f"No sender link or address to search for '{target.display_name}'."
            )
        url = sender_search_url(self.driver.current_url, target.address)
        logger.info(f"[PURGE] Opening sender search: {url}")
        self.driver.get(url)

    def _await_list_loaded(self):
        def list_and_toolbar_loaded(scope):
            if find_list_region(scope) is None:
                return None
            return find_toolbar(scope)

        return self._wait(list_and_toolbar_loaded, self.config.wait_timeout)

    def _select_page(self) -> bool:
        scope = find_list_region(self.driver) or self.driver
        checkbox = find_select_page_checkbox(scope)
        if checkbox is None:
            logger.info("[PURGE] No select-page checkbox on this page, continuing.")
            return False
        self._invoke(checkbox)
        self._settle(self.config.after_select_delay)
        return True

    def _confirm_dialog(self) -> bool:
        button = find_dialog_confirm(self.driver, self.config.confirm_labels)
        if button is None:
            return False
        logger.info(f"[PURGE] Confirming dialog with '{button.text}'")
        self._invoke(button)
        return True

    def _delete_selected(self, state: RunState) -> None:
        def delete_control_present(scope):
            toolbar = find_toolbar(scope)
            return find_delete_control(toolbar) if toolbar is not None else None

        try:
            control = self._wait(delete_control_present, self.config.control_timeout)
        except WaitTimeout as e:
            raise DeleteNotFoundError(
                f"Delete control not found on page {state.pages + 1}."
            ) from e

        self._invoke(control)
        self._settle(self.config.after_delete_delay)
        self._confirm_dialog()
        state.pages += 1
        logger.info(f"[PURGE] Deleted page {state.pages}")

    def _bulk_delete_all(self, state: RunState, banner) -> None:
        logger.info("[PURGE] Selecting every conversation that matches the search.")
        self._invoke(banner)
        self._settle(self.config.after_banner_delay)
        self._delete_selected(state)
        state.used_banner = True

    def _per_page_delete_loop(self, state: RunState) -> None:
        # TODO: decide whether a failed delete mid-pagination should skip to the next page
        while True:
            self._delete_selected(state)
            if state.pages >= self.config.max_pages:
                logger.warning(f"[PURGE] Stopping after {state.pages} pages (page bound reached).")
                return

            toolbar = find_toolbar(self.driver)
            older = find_older_control(toolbar) if toolbar is not None else None
            if older is None:
                logger.info(f"[PURGE] Pagination exhausted after {state.pages} page(s).")
                return

            self._invoke(older)
            state.page_turns += 1
            self._settle(self.config.after_page_turn_delay)
            self._await_list_loaded()
            self._select_page()

    def _at_origin(self, state: RunState) -> bool:
        if self.driver.current_url == state.origin_url:
            return True
        return state.origin_is_subscriptions and is_subscriptions_view(self.driver)

    def _wait_for_origin(self, state: RunState) -> bool:
        def origin_view_shown(_):
            return self._at_origin(state)

        try:
            self._wait(origin_view_shown, self.config.navigation_timeout)
            return True
        except WaitTimeout:
            return False

    def _return_to_origin(self, state: RunState) -> None:
        if self._at_origin(state):
            return

        for attempt in range(1, self.config.return_attempts + 1):
            self.driver.back()
            if self._wait_for_origin(state):
                logger.info(f"[PURGE] Back at origin view after {attempt} step(s).")
                return

        logger.warning("[PURGE] History did not lead back to the origin view, opening it directly.")
        self.driver.get(state.origin_url)
        if self._wait_for_origin(state):
            return

        state.navigation_error = NavigationError(
            f"Origin view {state.origin_url} not reached after "
            f"{self.config.return_attempts} back step(s)."
        )
        logger.warning(f"[PURGE] {state.navigation_error} Trying unsubscribe anyway.")

    def _unsubscribe(self, target: Target) -> bool:
        def target_row_present(_):
            return find_target_row(self.driver, target)

        try:
            row = self._wait(target_row_present, self.config.control_timeout)
        except WaitTimeout:
            logger.warning(f"[PURGE] Row for {target.key} not found, unsubscribe skipped.")
            return False

        control = find_unsubscribe_control(row)
        if control is None:
            logger.warning(f"[PURGE] No unsubscribe control for {target.key}, unsubscribe skipped.")
            return False

        self._invoke(control)
        self._confirm_dialog()
        logger.info(f"[PURGE] Unsubscribe invoked for {target.key}")
        return True


_active_targets = set()


def _outcome_label(state: RunState) -> str:
    if not state.succeeded:
        return ERROR_LABEL
    return DONE_LABEL if state.unsubscribed else SKIPPED_UNSUBSCRIBE_LABEL


def _report_status(driver, state: RunState) -> None:
    """Show the outcome on the target's control, looked up again after the run."""
    try:
        row = find_target_row(driver, state.target) if state.target else None
        control = find_purge_control(row) if row is not None else None
        if control is None:
            logger.info("[PURGE] Action control not on screen, outcome only logged.")
            return
        set_control_status(driver, control, _outcome_label(state), False)
    except WebDriverException as e:
        logger.warning(f"[PURGE] Could not update action control: {e}")


def trigger_purge(driver, row, config: Optional[PurgeConfig] = None,
                  confirm: Optional[Callable[[Target], bool]] = None) -> Optional[RunState]:
    """
    Launch one run from a decorated subscription row.

    Returns None when the row has no sender or a run for the same sender
    is already active. A declined confirmation returns a state in
    Phase.ERROR carrying UserAbort.
    """
    target = resolve_target(row)
    if target is None:
        logger.warning("[PURGE] Row has no resolvable sender, nothing to trigger.")
        return None

    control = find_purge_control(row)
    if target.key in _active_targets or (control is not None and is_disabled(control)):
        logger.warning(f"[PURGE] A run for {target.key} is already in progress.")
        return None

    if confirm is not None and not confirm(target):
        state = RunState(origin_url=driver.current_url, target=target)
        state.error = UserAbort(f"Purge of {target.key} declined.")
        state.advance(Phase.ERROR)
        logger.info(f"[PURGE] {state.error}")
        return state

    _active_targets.add(target.key)
    try:
        if control is not None:
            set_control_status(driver, control, RUNNING_LABEL, True)
        state = PurgeOrchestrator(driver, config).run(row)
        _report_status(driver, state)
        return state
    finally:
        _active_targets.discard(target.key)
