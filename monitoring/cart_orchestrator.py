"""
Cart Orchestrator

Adds one product to the shop cart in the shared browser session. Every
outcome is reported to the operator and returned as a CartResult; nothing
raises out of `add_to_cart`, so one product's failure never stops the
check cycle.
"""

import logging

from selenium.common.exceptions import WebDriverException
from selenium.webdriver.support.ui import Select

from config import state_store
from config.models import CartResult
from utils.errors import CaptchaError

logger = logging.getLogger(__name__)

CART_SUCCESS_TEXT = "Товар успішно доданий у кошик"
OUT_OF_STOCK_MARKERS = ["немає в наявності", "out of stock"]
LOGIN_PAGE_MARKER = "login.php"
CART_PAGE_MARKER = "shopping_cart.php"

BUY_BUTTON_SELECTOR = ".btn-primary.buy"
QUANTITY_SELECTOR = 'select[name="quantity"], select.quantity'

ALREADY_IN_CART = "already_in_cart"
AUTH_FAILED = "auth_failed"
SOLD_OUT = "sold_out"
NO_SESSION = "no_session"
UNKNOWN_RESULT = "unknown_result"


def is_login_page(url):
    return LOGIN_PAGE_MARKER in (url or "")


def classify_cart_page(page_text, url):
    """
    Decide the outcome of a buy click from the resulting page.

    Only a positive signal counts as success; anything unrecognised fails.
    """
    if CART_SUCCESS_TEXT in page_text:
        return CartResult(True)

    lowered = page_text.lower()
    if any(marker in lowered for marker in OUT_OF_STOCK_MARKERS):
        return CartResult(False, SOLD_OUT)

    if CART_PAGE_MARKER in (url or ""):
        return CartResult(True)

    return CartResult(False, UNKNOWN_RESULT)


class CartOrchestrator:
    def __init__(self, session_manager, captcha_solver, notifier, quantity=1):
        self.session_manager = session_manager
        self.captcha_solver = captcha_solver
        self.notifier = notifier
        self.quantity = quantity

    def add_to_cart(self, product, state=None):
        """
        Add `product` to the cart unless it is already there.

        Args:
            product (ProductCheckResult): The product that became available
            state (WatcherState, optional): State to check and mark `in_cart` on

        Returns:
            CartResult
        """
        if state is not None and state_store.is_in_cart(state, product.url):
            logger.info(f"Skipping cart addition, already in cart: {product.url}")
            return CartResult(False, ALREADY_IN_CART)

        logger.info(f"Starting cart flow for {product.url} (quantity={self.quantity})")

        try:
            result = self._run_flow(product)
        except Exception as e:
            logger.error(f"Cart flow error for {product.url}: {e}")
            if isinstance(e, WebDriverException):
                self.session_manager.check_browser()
            result = CartResult(False, str(e) or type(e).__name__)

        if result.success:
            logger.info(f"Cart addition successful: {product.name}")
            if state is not None:
                state_store.mark_in_cart(state, product.url)
            self.notifier.notify_cart_success(product, self.quantity)
        else:
            logger.warning(f"Cart addition failed for {product.name}: {result.reason}")
            self.notifier.notify_cart_failure(product, result.reason)

        return result

    def _solve_if_challenged(self, browser, where):
        if not self.captcha_solver.detect_challenge(browser):
            return
        logger.info(f"CAPTCHA detected {where}, solving...")
        try:
            self.captcha_solver.solve(browser)
        except CaptchaError as e:
            self.notifier.notify_captcha_failure(f"Cart {where}: {e}")
            raise
        browser.wait_ready()

    def _run_flow(self, product):
        browser = self.session_manager.browser
        if browser is None:
            return CartResult(False, NO_SESSION)

        browser.get(product.url)

        if is_login_page(browser.current_url):
            logger.info("Redirected to login, re-authenticating")
            if not self.session_manager.ensure_authenticated():
                return CartResult(False, AUTH_FAILED)
            browser = self.session_manager.browser
            browser.get(product.url)

        self._solve_if_challenged(browser, "on product page")

        # Availability may have changed since the check
        buy_button = browser.find(BUY_BUTTON_SELECTOR)
        if buy_button is None:
            logger.info(f"Buy button not found, product no longer available: {product.url}")
            return CartResult(False, SOLD_OUT)

        quantity_select = browser.find(QUANTITY_SELECTOR)
        if quantity_select is not None:
            Select(quantity_select).select_by_value(str(self.quantity))

        logger.info(f"Clicking buy button for {product.url}")
        buy_button.click()
        browser.wait_ready()

        self._solve_if_challenged(browser, "after buy click")

        return classify_cart_page(browser.page_text(), browser.current_url)
