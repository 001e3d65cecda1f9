"""
Browser Session

Owns one Chrome WebDriver instance for the purchase path. The page-load
timeout bounds every navigation so a hung site degrades into an error.
"""

import logging

from selenium import webdriver
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.support.ui import WebDriverWait
from selenium.common.exceptions import TimeoutException
from webdriver_manager.chrome import ChromeDriverManager

from utils.errors import BrowserError

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
)
PAGE_LOAD_TIMEOUT = 30
READY_TIMEOUT = 15


def build_chrome_options(headless=True):
    chrome_options = Options()

    if headless:
        chrome_options.add_argument("--headless=new")

    # Flags needed inside containers
    chrome_options.add_argument("--no-sandbox")
    chrome_options.add_argument("--disable-dev-shm-usage")
    chrome_options.add_argument("--window-size=1280,720")
    chrome_options.add_argument("--lang=uk-UA")

    # Anti-detection
    chrome_options.add_argument(f"--user-agent={USER_AGENT}")
    chrome_options.add_argument("--disable-blink-features=AutomationControlled")
    chrome_options.add_experimental_option("excludeSwitches", ["enable-automation"])
    chrome_options.add_experimental_option("useAutomationExtension", False)

    return chrome_options


class BrowserSession:
    """
    Wrapper over a WebDriver with the handful of operations the purchase
    flow needs.
    """

    def __init__(self, driver):
        self.driver = driver
        self._closed = False

    @classmethod
    def launch(cls, headless=True):
        """
        Start a new Chrome instance.

        Raises:
            BrowserError: If Chrome or the driver could not be started
        """
        logger.info(f"Launching browser (headless={headless})")
        try:
            driver = webdriver.Chrome(
                service=Service(ChromeDriverManager().install()),
                options=build_chrome_options(headless),
            )
            driver.set_page_load_timeout(PAGE_LOAD_TIMEOUT)

            # Hide the webdriver property from page scripts
            driver.execute_cdp_cmd(
                "Page.addScriptToEvaluateOnNewDocument",
                {"source": "Object.defineProperty(navigator, 'webdriver', {get: () => undefined})"},
            )
        except Exception as e:  # driver download errors come from requests and webdriver-manager
            raise BrowserError(f"Failed to launch browser: {e}") from e

        logger.info("Browser launched successfully")
        return cls(driver)

    @property
    def current_url(self):
        return self.driver.current_url

    def get(self, url):
        logger.debug(f"Navigating to {url}")
        self.driver.get(url)
        self.wait_ready()

    def wait_ready(self, timeout=READY_TIMEOUT):
        """
        Wait for the document to finish loading; a timeout is logged, not raised.
        """
        try:
            WebDriverWait(self.driver, timeout).until(
                lambda d: d.execute_script("return document.readyState") in ("interactive", "complete")
            )
        except TimeoutException:
            logger.warning(f"Page not ready after {timeout}s: {self.driver.current_url}")

    def find(self, css_selector):
        """
        Return the first element matching `css_selector`, or None.
        """
        elements = self.driver.find_elements(By.CSS_SELECTOR, css_selector)
        return elements[0] if elements else None

    def has_element(self, css_selector):
        return self.find(css_selector) is not None

    def page_text(self):
        return self.driver.execute_script("return document.body ? document.body.innerText : ''") or ""

    def execute_script(self, script, *args):
        return self.driver.execute_script(script, *args)

    def is_alive(self):
        """
        Cheap liveness probe: the driver answers and still has a window.
        """
        if self._closed:
            return False
        try:
            return bool(self.driver.window_handles)
        except Exception as e:  # a dead chromedriver surfaces as urllib3 errors too
            logger.error(f"Browser disconnected: {e}")
            return False

    def close(self):
        if self._closed:
            return
        self._closed = True
        logger.info("Closing browser")
        try:
            self.driver.quit()
        except Exception as e:
            logger.warning(f"Error while closing browser: {e}")
