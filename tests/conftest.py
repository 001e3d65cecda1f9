"""
Pytest fixtures and test doubles for the watcher test suite.

Nothing here touches the network or a real browser.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.models import ProductCheckResult
from config.settings import AutoPurchaseSettings, Settings
from utils.errors import ProductCheckError

SHOP_URL = "https://shop.example"
PRODUCT_A = f"{SHOP_URL}/coin-a.html"
PRODUCT_B = f"{SHOP_URL}/coin-b.html"


def no_sleep(seconds):
    pass


# === Browser doubles ===

class FakeElement:
    def __init__(self, on_click=None, attributes=None):
        self.on_click = on_click
        self.attributes = attributes or {}
        self.clicked = 0
        self.keys = []

    def click(self):
        self.clicked += 1
        if self.on_click:
            self.on_click()

    def clear(self):
        self.keys = []

    def send_keys(self, value):
        self.keys.append(value)

    def get_attribute(self, name):
        return self.attributes.get(name)


class FakeBrowser:
    """
    Stand-in for BrowserSession. Pages are configured through `elements`,
    `text`, `redirects` and `logged_in`.
    """

    def __init__(self, logged_in=True, alive=True):
        self.logged_in = logged_in
        self.alive = alive
        self.closed = False
        self.current_url = "about:blank"
        self.visited = []
        self.elements = {}
        self.redirects = {}
        self.text = ""
        self.scripts = []

    def get(self, url):
        self.visited.append(url)
        self.current_url = self.redirects.get(url, url)

    def wait_ready(self, timeout=None):
        pass

    def find(self, css_selector):
        return self.elements.get(css_selector)

    def has_element(self, css_selector):
        return css_selector in self.elements

    def page_text(self):
        return self.text

    def execute_script(self, script, *args):
        self.scripts.append((script, args))
        return self.logged_in

    def is_alive(self):
        return self.alive and not self.closed

    def close(self):
        self.closed = True


class FakeCaptchaSolver:
    def __init__(self, challenges=None, error=None):
        # Successive detect_challenge() answers; False once exhausted
        self.challenges = list(challenges or [])
        self.error = error
        self.solved = 0

    def detect_challenge(self, browser):
        return self.challenges.pop(0) if self.challenges else False

    def solve(self, browser):
        if self.error:
            raise self.error
        self.solved += 1
        return "token"


# === Service doubles ===

class FakeNotifier:
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.available = []
        self.cart_success = []
        self.cart_failure = []
        self.auth_failures = []
        self.captcha_failures = []
        self.fatal = []
        self.replies = []

    def notify_available(self, product):
        self.available.append(product)
        return self.succeed

    def notify_cart_success(self, product, quantity):
        self.cart_success.append((product, quantity))
        return True

    def notify_cart_failure(self, product, reason):
        self.cart_failure.append((product, reason))
        return True

    def notify_auth_failure(self, reason):
        self.auth_failures.append(reason)
        return True

    def notify_captcha_failure(self, context):
        self.captcha_failures.append(context)
        return True

    def notify_fatal(self, reason):
        self.fatal.append(reason)
        return True

    def send_reply(self, text):
        self.replies.append(text)
        return True


class FakeChecker:
    """
    Returns scripted availability per URL. Each script entry is True/False
    or an exception instance to raise.
    """

    def __init__(self, scripts=None, default=False):
        self.scripts = {url: list(seq) for url, seq in (scripts or {}).items()}
        self.default = default
        self.calls = []

    def check(self, url):
        self.calls.append(url)
        seq = self.scripts.get(url)
        outcome = seq.pop(0) if seq else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return ProductCheckResult(url=url, available=outcome, name=f"Coin {url[-6:-5]}", price="1 200 грн")


class FakeTelegramClient:
    def __init__(self, updates=None):
        self.sent = []
        self.updates = list(updates or [])
        self.offsets = []
        self.chat_id = "42"

    def send_message(self, text, chat_id=None):
        self.sent.append(text)
        return {"message_id": len(self.sent)}

    def get_updates(self, offset=0, timeout=30):
        self.offsets.append(offset)
        batch, self.updates = self.updates, []
        return batch


# === Fixtures ===

@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "data" / "state.json"


@pytest.fixture
def make_settings(state_path):
    def factory(**overrides):
        purchase = overrides.pop("auto_purchase", None) or AutoPurchaseSettings(enabled=False)
        values = dict(
            telegram_bot_token="123:abc",
            telegram_chat_id="42",
            product_urls=[PRODUCT_A],
            check_interval=60,
            max_retries=3,
            state_file=str(state_path),
            shop_url=SHOP_URL,
            session_check_every=10,
            notify_dedup_hours=24,
            log_file=None,
            auto_purchase=purchase,
        )
        values.update(overrides)
        return Settings(**values)

    return factory


@pytest.fixture
def purchase_settings():
    return AutoPurchaseSettings(
        enabled=True,
        email="operator@example.com",
        password="secret",
        captcha_api_key="captcha-key",
        cart_quantity=2,
    )


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def check_error():
    return ProductCheckError("HTTP 503")
