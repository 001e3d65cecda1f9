"""
CAPTCHA Solver

Detects Cloudflare Turnstile challenges in the browser and solves them
through the 2captcha HTTP API.
"""

import re
import time
import logging
import requests
from selenium.common.exceptions import WebDriverException

from utils.errors import CaptchaError

logger = logging.getLogger(__name__)

TWOCAPTCHA_SUBMIT_URL = "https://2captcha.com/in.php"
TWOCAPTCHA_RESULT_URL = "https://2captcha.com/res.php"
REQUEST_TIMEOUT = 10
POLL_INTERVAL = 5
SOLVE_TIMEOUT = 120

CHALLENGE_SELECTORS = [
    ".cf-turnstile",
    'iframe[src*="challenges.cloudflare.com"]',
    "#challenge-form",
]

APPLY_TOKEN_SCRIPT = """
const token = arguments[0];
const input = document.querySelector('[name="cf-turnstile-response"]');
if (input) { input.value = token; }
const widget = document.querySelector('.cf-turnstile');
const cb = widget ? widget.getAttribute('data-callback') : null;
if (cb && typeof window[cb] === 'function') { window[cb](token); }
"""


class TwoCaptchaClient:
    """Minimal client for the 2captcha in.php/res.php API."""

    def __init__(self, api_key, session=None, sleep=time.sleep, clock=time.monotonic):
        self.api_key = api_key
        self._session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock

    def solve_turnstile(self, sitekey, page_url, timeout=SOLVE_TIMEOUT):
        """
        Submit a Turnstile task and poll until a token is ready.

        Returns:
            str: The solved token

        Raises:
            CaptchaError: On submit errors, solver errors or timeout
        """
        data = {
            "key": self.api_key,
            "method": "turnstile",
            "sitekey": sitekey,
            "pageurl": page_url,
            "json": 1,
        }
        result = self._call("post", TWOCAPTCHA_SUBMIT_URL, data=data)
        if result.get("status") != 1:
            raise CaptchaError(f"2captcha submit error: {result.get('request')}")

        captcha_id = result["request"]
        logger.info(f"CAPTCHA submitted to 2captcha (id={captcha_id})")

        params = {"key": self.api_key, "action": "get", "id": captcha_id, "json": 1}
        deadline = self._clock() + timeout
        while self._clock() < deadline:
            self._sleep(POLL_INTERVAL)
            result = self._call("get", TWOCAPTCHA_RESULT_URL, params=params)
            if result.get("status") == 1:
                logger.info(f"CAPTCHA solution received (id={captcha_id})")
                return result["request"]
            if result.get("request") != "CAPCHA_NOT_READY":
                raise CaptchaError(f"2captcha error: {result.get('request')}")

        raise CaptchaError(f"2captcha did not solve the challenge within {timeout}s")

    def _call(self, method, url, **kwargs):
        try:
            resp = self._session.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            raise CaptchaError(f"2captcha request failed: {e}") from e


class CaptchaSolver:
    def __init__(self, client):
        self.client = client

    def detect_challenge(self, browser):
        """
        Check the current page for a Turnstile challenge. Errors count as no challenge.
        """
        try:
            found = any(browser.has_element(selector) for selector in CHALLENGE_SELECTORS)
        except WebDriverException as e:
            logger.warning(f"Error detecting challenge: {e}")
            return False

        if found:
            logger.info(f"Cloudflare Turnstile challenge detected on {browser.current_url}")
        return found

    def extract_sitekey(self, browser):
        widget = browser.find(".cf-turnstile")
        if widget is not None:
            sitekey = widget.get_attribute("data-sitekey")
            if sitekey:
                return sitekey

        iframe = browser.find('iframe[src*="challenges.cloudflare.com"]')
        if iframe is not None:
            match = re.search(r"sitekey=([^&]+)", iframe.get_attribute("src") or "")
            if match:
                return match.group(1)
        return None

    def solve(self, browser):
        """
        Solve the challenge on the current page and inject the token.

        Raises:
            CaptchaError: If the sitekey is missing or solving fails
        """
        try:
            sitekey = self.extract_sitekey(browser)
            page_url = browser.current_url
        except WebDriverException as e:
            raise CaptchaError(f"Could not read challenge parameters: {e}") from e

        if not sitekey:
            raise CaptchaError("Could not extract Turnstile sitekey from page")

        logger.info(f"Submitting CAPTCHA for {page_url}")
        token = self.client.solve_turnstile(sitekey, page_url)

        try:
            browser.execute_script(APPLY_TOKEN_SCRIPT, token)
        except WebDriverException as e:
            raise CaptchaError(f"Could not apply CAPTCHA token: {e}") from e

        logger.info("CAPTCHA token applied to page")
        return token
