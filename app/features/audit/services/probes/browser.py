import time
from contextlib import contextmanager
from typing import Iterator, Tuple

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service

from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger("browser")

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


def build_driver() -> webdriver.Chrome:
    chrome_options = Options()
    chrome_options.add_argument("--headless=new")
    chrome_options.add_argument("--no-sandbox")
    chrome_options.add_argument("--disable-dev-shm-usage")
    chrome_options.add_argument(f"--user-agent={DESKTOP_USER_AGENT}")

    if settings.CHROMEDRIVER_PATH:
        driver_service = Service(executable_path=settings.CHROMEDRIVER_PATH)
        return webdriver.Chrome(service=driver_service, options=chrome_options)
    return webdriver.Chrome(options=chrome_options)


@contextmanager
def chrome_driver(page_load_timeout: int | None = None) -> Iterator[webdriver.Chrome]:
    """
    A headless Chrome owned by the caller for the duration of the block.
    The browser process is shut down on every exit path.
    """
    if page_load_timeout is None:
        page_load_timeout = settings.BROWSER_PAGE_LOAD_TIMEOUT
    driver = build_driver()
    try:
        driver.set_page_load_timeout(page_load_timeout)
        yield driver
    finally:
        try:
            driver.quit()
        except WebDriverException as e:
            logger.error(f"Error closing browser: {e}")


def load_page(driver: webdriver.Chrome, url: str) -> Tuple[str, int]:
    """Navigates to `url`; returns (final_url, load_time_ms)."""
    start_time = time.perf_counter()
    driver.get(url)
    load_time_ms = int((time.perf_counter() - start_time) * 1000)
    return driver.current_url, load_time_ms
