import csv
import time
import logging
from collections import OrderedDict

import pandas as pd

from purge_bot import settings
from purge_bot.database.db import SessionLocal
from purge_bot.database.models import find_profile
from purge_bot.errors import UserAbort
from purge_bot.purge import trigger_purge
from purge_bot.settings import PurgeConfig
from purge_bot.subscriptions import decorate_rows, find_target_row, Target
from purge_bot.utils import (
    configure_browser,
    ensure_screenshots_dir,
    open_subscriptions,
    random_sleep,
    save_error_screenshot,
    setup_gologin,
    setup_logging,
)

logger = logging.getLogger(__name__)


def load_targets(path: str) -> "OrderedDict[str, list]":
    """
    Read the Email,Sender CSV into account -> senders, keeping file order
    and dropping blank or repeated senders.
    """
    df = pd.read_csv(path, dtype=str).fillna("")
    targets = OrderedDict()
    for _, row in df.iterrows():
        account = row["Email"].strip()
        sender = row["Sender"].strip().lower()
        if not account or not sender:
            continue
        senders = targets.setdefault(account, [])
        if sender not in senders:
            senders.append(sender)
    return targets


def sender_target(sender: str) -> Target:
    if "@" in sender:
        return Target(address=sender, display_name=sender)
    return Target(address=None, display_name=sender)


def ask_confirmation(target: Target) -> bool:
    answer = input(
        f"Purge ALL emails from '{target.key}' and then unsubscribe? "
        "Emails go to Trash (recoverable for 30 days). [y/N]: "
    )
    return answer.strip().lower() in ("y", "yes")


def record_result(account: str, sender: str, state) -> None:
    if state is None:
        outcome, pages, used_banner = "skipped", 0, False
    elif state.succeeded:
        outcome = "success" if state.unsubscribed else "success_unsubscribe_skipped"
        pages, used_banner = state.pages, state.used_banner
    else:
        outcome = f"error:{state.error.__class__.__name__}"
        pages, used_banner = state.pages, state.used_banner

    with open(settings.RESULTS_CSV, "a", newline="", encoding="utf-8") as f:
        csv.writer(f).writerow([account, sender, outcome, pages, used_banner])


def purge_senders(driver, account: str, senders: list, config: PurgeConfig) -> None:
    confirm = ask_confirmation if settings.CONFIRM_EACH else None

    for sender in senders:
        open_subscriptions(driver)
        decorate_rows(driver)

        row = find_target_row(driver, sender_target(sender))
        if row is None:
            logger.warning(f"[{account}] No subscription row for {sender}, skipping.")
            record_result(account, sender, None)
            continue

        state = trigger_purge(driver, row, config, confirm=confirm)
        record_result(account, sender, state)
        if state is not None and not state.succeeded and not isinstance(state.error, UserAbort):
            save_error_screenshot(driver, f"{account}_{sender}".replace("@", "_at_"))
        elif state is not None:
            logger.info(f"[{account}] {state.summary()}")
        random_sleep()


def handle_browser_session(profile_id, account, senders, config):
    gl, driver = None, None
    try:
        gl, port = setup_gologin(profile_id)
        driver = configure_browser(port, settings.HEADLESS)
        purge_senders(driver, account, senders, config)
    finally:
        if driver:
            try:
                driver.quit()
                logger.info(f"[CLEANUP] Closed browser for {account}.")
            except Exception as e:
                logger.warning(f"[CLEANUP] Failed to quit browser: {e}")
        if gl:
            try:
                gl.stop()
                logger.info(f"[CLEANUP] Stopped GoLogin profile for {account}.")
            except Exception as e:
                logger.warning(f"[CLEANUP] Failed to stop GoLogin profile: {e}")


def main():
    setup_logging()
    ensure_screenshots_dir()
    targets = load_targets(settings.SENDERS_CSV)
    if not targets:
        logger.error(f"Nothing to do: no senders in {settings.SENDERS_CSV}.")
        return

    config = PurgeConfig.from_env()
    db = SessionLocal()
    try:
        for account, senders in targets.items():
            profile = find_profile(db, account)
            if not profile or not profile.profile_id:
                logger.warning(f"Email not found in DB: {account}")
                continue

            logger.info(f"[START] Processing account: {account} ({len(senders)} sender(s))")
            try:
                handle_browser_session(profile.profile_id, account, senders, config)
                logger.info(f"[DONE] Finished account: {account}")
            except Exception as e:
                logger.error(f"[FAIL] Final failure for {account}: {e}")
                timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
                with open(settings.FAILED_ACCOUNTS_LOG, "a", encoding="utf-8") as log_file:
                    log_file.write(f"[{timestamp}] Failed: {account} - {e}\n")
    finally:
        db.close()


if __name__ == "__main__":
    main()
