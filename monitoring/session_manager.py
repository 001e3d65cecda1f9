"""
Session Manager

Keeps the shop login alive in the shared browser session. It is the only
holder of the browser handle; other components reach the browser through
`session_manager.browser`, so swapping in a relaunched browser after a crash
is a single assignment in `attach`.
"""

import logging
import threading

from selenium.common.exceptions import WebDriverException

from config.models import SessionStatus
from utils.errors import AuthenticationError, CaptchaError
from utils.retry import retry

logger = logging.getLogger(__name__)

LOGIN_ATTEMPTS = 3
LOGIN_INITIAL_DELAY = 2.0

# The login field is "email_address"; a plain "email" input is the footer newsletter form
EMAIL_INPUT = 'input[name="email_address"]'
PASSWORD_INPUT = 'input[name="password"]'
SUBMIT_BUTTON = 'button[type="submit"].btn.btn-default'

LOGGED_IN_SCRIPT = """
return !!(
  document.querySelector('a[href*="account.php"]') ||
  document.querySelector('.user-menu') ||
  document.querySelector('a[href*="logout"]') ||
  document.querySelector('.cabinet-link') ||
  Array.from(document.querySelectorAll('a')).some(a => a.textContent.includes('Мій кабінет'))
);
"""


class SessionManager:
    def __init__(self, email, password, login_url, captcha_solver, browser=None,
                 login_attempts=LOGIN_ATTEMPTS, initial_delay=LOGIN_INITIAL_DELAY, sleep=None, notifier=None):
        self.email = email
        self.password = password
        self.login_url = login_url
        self.captcha_solver = captcha_solver
        self.notifier = notifier
        self.login_attempts = login_attempts
        self.initial_delay = initial_delay
        self._retry_kwargs = {"sleep": sleep} if sleep else {}

        self.browser = browser
        self.status = SessionStatus.NO_SESSION
        self._crash_listeners = []
        self._lock = threading.RLock()

    # -- handle ownership ---------------------------------------------------

    def attach(self, browser):
        """
        Swap in a new browser handle. The session starts unauthenticated.
        """
        with self._lock:
            self.browser = browser
            self.status = SessionStatus.NO_SESSION
        logger.info("Browser session attached")

    def detach(self):
        """
        Drop the browser handle and return it (the caller closes it).
        """
        with self._lock:
            browser, self.browser = self.browser, None
            self.status = SessionStatus.NO_SESSION
        return browser

    @property
    def has_session(self):
        return self.browser is not None

    def on_crash(self, listener):
        """
        Subscribe to crash events. Listeners are called with the dead handle.
        """
        self._crash_listeners.append(listener)

    def check_browser(self):
        """
        Probe the browser and, if it died, invalidate the handle and emit a
        crash event.

        Returns:
            bool: True if the browser is alive
        """
        browser = self.browser
        if browser is None:
            return False
        if browser.is_alive():
            return True

        logger.error("Browser disconnected unexpectedly")
        with self._lock:
            # Another caller may already have swapped in a replacement
            if self.browser is not browser:
                return self.browser is not None
            self.browser = None
            self.status = SessionStatus.NO_SESSION

        for listener in list(self._crash_listeners):
            try:
                listener(browser)
            except Exception as e:
                logger.error(f"Crash listener failed: {e}", exc_info=True)
        return False

    # -- authentication -----------------------------------------------------

    def is_logged_in(self):
        """
        Non-navigating probe for logged-in markers on the current page.
        """
        browser = self.browser
        if browser is None:
            return False
        try:
            return bool(browser.execute_script(LOGGED_IN_SCRIPT))
        except WebDriverException as e:
            logger.warning(f"Error checking login status: {e}")
            return False

    def login(self):
        """
        Submit credentials on the login page, solving a challenge if one
        appears after submit.

        Raises:
            AuthenticationError: If the page does not show a logged-in state
        """
        browser = self.browser
        if browser is None:
            raise AuthenticationError("No browser session")

        logger.info("Navigating to login page")
        browser.get(self.login_url)

        email_input = browser.find(EMAIL_INPUT)
        password_input = browser.find(PASSWORD_INPUT)
        submit = browser.find(SUBMIT_BUTTON)
        if email_input is None or password_input is None or submit is None:
            raise AuthenticationError("Login form not found")

        email_input.clear()
        email_input.send_keys(self.email)
        password_input.clear()
        password_input.send_keys(self.password)
        submit.click()
        browser.wait_ready()

        if self.captcha_solver.detect_challenge(browser):
            logger.info("CAPTCHA detected during login, solving...")
            self.captcha_solver.solve(browser)
            browser.wait_ready()

        if not self.is_logged_in():
            raise AuthenticationError("Login failed, still on login page after submission")

        logger.info("Login successful")
        return True

    def ensure_authenticated(self):
        """
        Make sure the browser session is logged in.

        Returns:
            bool: True if authenticated; False if there is no browser or every
            login attempt failed
        """
        with self._lock:
            if self.browser is None:
                logger.warning("Cannot authenticate without a browser session")
                return False

            if self.is_logged_in():
                self.status = SessionStatus.AUTHENTICATED
                logger.info("Session is valid, already logged in")
                return True

            self.status = SessionStatus.AUTHENTICATING
            try:
                retry(
                    self.login,
                    max_attempts=self.login_attempts,
                    initial_delay=self.initial_delay,
                    backoff_multiplier=2,
                    description="Login",
                    **self._retry_kwargs,
                )
            except Exception as e:
                self.status = SessionStatus.NO_SESSION
                logger.error(f"All login attempts failed: {e}")
                if isinstance(e, CaptchaError) and self.notifier is not None:
                    self.notifier.notify_captcha_failure(f"Login: {e}")
                return False

            self.status = SessionStatus.AUTHENTICATED
            return True

    def health_check(self):
        """
        Periodic session probe; re-authenticates when the session expired.
        Never raises.

        Returns:
            bool: True if the session is authenticated afterwards
        """
        try:
            if self.browser is None:
                logger.warning("Session health check skipped: no browser session")
                return False
            if self.is_logged_in():
                self.status = SessionStatus.AUTHENTICATED
                return True

            logger.warning("Session expired (periodic check), re-authenticating")
            self.status = SessionStatus.EXPIRED
            return self.ensure_authenticated()
        except Exception as e:
            logger.warning(f"Session health check failed: {e}")
            return False

    def close(self):
        browser = self.detach()
        if browser is not None:
            browser.close()
