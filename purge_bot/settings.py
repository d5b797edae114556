import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


GOLOGIN_TOKEN = os.environ.get("GOLOGIN_TOKEN")
CHROMEDRIVER_PATH = os.getenv("CHROMEDRIVER_PATH")

HEADLESS = _env_flag("HEADLESS")
CONFIRM_EACH = _env_flag("CONFIRM_EACH", "1")

GMAIL_URL = os.getenv("GMAIL_URL", "https://mail.google.com/mail/u/0/")
SUBSCRIPTIONS_FRAGMENT = os.getenv("SUBSCRIPTIONS_FRAGMENT", "#sub")

SENDERS_CSV = os.getenv("SENDERS_CSV", "emails/senders_to_purge.csv")
RESULTS_CSV = os.getenv("RESULTS_CSV", "results.csv")
FAILED_ACCOUNTS_LOG = os.getenv("FAILED_ACCOUNTS_LOG", "failed_accounts.log")

ACTION_LABEL = "Purge + Unsub"


@dataclass(frozen=True)
class PurgeConfig:
    wait_timeout: float = 15.0
    control_timeout: float = 5.0
    navigation_timeout: float = 8.0
    settle_delay: float = 0.15
    after_select_delay: float = 0.3
    after_banner_delay: float = 0.25
    after_delete_delay: float = 0.8
    after_page_turn_delay: float = 0.45
    return_attempts: int = 3
    max_pages: int = 500
    poll_frequency: float = 0.1
    confirm_labels: tuple = ("ok", "confirm", "unsubscribe")

    @classmethod
    def from_env(cls) -> "PurgeConfig":
        return cls(
            wait_timeout=_env_float("WAIT_TIMEOUT", cls.wait_timeout),
            control_timeout=_env_float("CONTROL_TIMEOUT", cls.control_timeout),
            navigation_timeout=_env_float("NAVIGATION_TIMEOUT", cls.navigation_timeout),
            settle_delay=_env_float("SETTLE_DELAY", cls.settle_delay),
            return_attempts=_env_int("RETURN_ATTEMPTS", cls.return_attempts),
            max_pages=_env_int("MAX_PAGES", cls.max_pages),
        )
