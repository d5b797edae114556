import os
import time
import random
import logging
import datetime

import requests
from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.common.exceptions import TimeoutException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait
from tenacity import (
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from gologin import GoLogin

from purge_bot import settings

log_formatter = logging.Formatter(
    "%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger("purge_bot")
    root.setLevel(level)
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(log_formatter)
        root.addHandler(console_handler)


def random_sleep() -> None:
    time.sleep(random.uniform(0.5, 2.0))


def ensure_screenshots_dir() -> None:
    os.makedirs("screenshots", exist_ok=True)


def timestamped_name(prefix="screenshot"):
    now = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"screenshots/{prefix}_{now}.png"


@retry(
    stop=stop_after_attempt(3),
    wait=wait_fixed(2),
    retry=retry_if_exception_type(requests.RequestException),
    reraise=True,
)
def _probe_debugger(port: int) -> None:
    res = requests.get(f"http://127.0.0.1:{port}/json/version", timeout=10)
    res.raise_for_status()


def verify_debugger(port: int) -> bool:
    try:
        _probe_debugger(port)
        return True
    except requests.RequestException as e:
        logger.warning(f"DevTools on port {port} not reachable: {e}")
        return False


@retry(
    stop=stop_after_attempt(3),
    wait=wait_fixed(5),
    retry=retry_if_not_exception_type(ValueError),
    reraise=True,
)
def setup_gologin(profile_id: str):
    """
    Start a GoLogin profile that is already signed in to Gmail.
    Returns the GoLogin handle and the DevTools port.
    """
    if not settings.GOLOGIN_TOKEN:
        raise ValueError("GOLOGIN_TOKEN is not set in the environment.")

    gl = GoLogin({
        "token": settings.GOLOGIN_TOKEN,
        "profile_id": profile_id,
        "headless": settings.HEADLESS,
    })
    logger.info(f"[INFO] Starting GoLogin profile: {profile_id}")
    port = int(gl.start().split(":")[-1])
    logger.info(f"DevTools on port: {port}")

    if not verify_debugger(port):
        gl.stop()
        raise ConnectionError("DevTools debugger is not responding.")
    return gl, port


def configure_browser(port: int, headless: bool) -> webdriver.Chrome:
    """
    Attach Selenium to the Chrome started by GoLogin.
    """
    options = Options()
    options.add_experimental_option("debuggerAddress", f"127.0.0.1:{port}")
    if headless:
        options.add_argument("--headless=new")

    options.add_argument("--window-size=1280,720")
    options.add_argument("--lang=en-US")

    chromedriver_path = settings.CHROMEDRIVER_PATH
    if not chromedriver_path or not os.path.isfile(chromedriver_path):
        raise FileNotFoundError(
            f"Chromedriver not found at path: {chromedriver_path}")

    service = Service(chromedriver_path)
    return webdriver.Chrome(service=service, options=options)


def open_subscriptions(driver, timeout: int = 40) -> None:
    """
    Load Gmail and switch to the "Manage subscriptions" view.
    """
    url = settings.GMAIL_URL.rstrip("/") + "/" + settings.SUBSCRIPTIONS_FRAGMENT
    driver.get(url)
    logger.info(f"Opened {url}")

    try:
        WebDriverWait(driver, timeout).until(
            lambda d: d.execute_script("return document.readyState") == "complete"
        )
    except TimeoutException:
        logger.warning("Page took too long to load completely.")

    WebDriverWait(driver, timeout).until(
        EC.presence_of_element_located((By.CSS_SELECTOR, "[role='main']"))
    )
    time.sleep(2)
    logger.info("Subscriptions view loaded.")


def save_error_screenshot(driver, prefix: str) -> None:
    ensure_screenshots_dir()
    path = timestamped_name(prefix)
    try:
        driver.save_screenshot(path)
        logger.warning(f"[FAILURE] Screenshot saved at: {path}")
    except Exception as e:
        logger.warning(f"Failed to save screenshot {path}: {e}")
