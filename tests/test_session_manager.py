"""
Tests for login, session health and browser crash handling.
"""

import pytest

from conftest import FakeBrowser, FakeCaptchaSolver, FakeElement, FakeNotifier, SHOP_URL, no_sleep
from config.models import SessionStatus
from monitoring.session_manager import EMAIL_INPUT, PASSWORD_INPUT, SUBMIT_BUTTON, SessionManager
from utils.errors import AuthenticationError, CaptchaError

LOGIN_URL = f"{SHOP_URL}/login.php"


def make_manager(browser=None, captcha=None):
    return SessionManager(
        "operator@example.com", "secret", LOGIN_URL, captcha or FakeCaptchaSolver(),
        browser=browser, sleep=no_sleep,
    )


def add_login_form(browser, logs_in=True):
    def submit():
        browser.logged_in = logs_in

    browser.elements[EMAIL_INPUT] = FakeElement()
    browser.elements[PASSWORD_INPUT] = FakeElement()
    browser.elements[SUBMIT_BUTTON] = FakeElement(on_click=submit)


def test_already_logged_in_skips_login():
    browser = FakeBrowser(logged_in=True)
    manager = make_manager(browser)

    assert manager.ensure_authenticated() is True
    assert manager.status == SessionStatus.AUTHENTICATED
    assert browser.visited == []


def test_login_submits_credentials():
    browser = FakeBrowser(logged_in=False)
    add_login_form(browser)
    manager = make_manager(browser)

    assert manager.ensure_authenticated() is True
    assert browser.visited == [LOGIN_URL]
    assert browser.elements[EMAIL_INPUT].keys == ["operator@example.com"]
    assert browser.elements[PASSWORD_INPUT].keys == ["secret"]
    assert browser.elements[SUBMIT_BUTTON].clicked == 1


def test_login_solves_challenge_after_submit():
    browser = FakeBrowser(logged_in=False)
    add_login_form(browser)
    captcha = FakeCaptchaSolver(challenges=[True])
    manager = make_manager(browser, captcha)

    assert manager.ensure_authenticated() is True
    assert captcha.solved == 1


def test_rejected_credentials_exhaust_attempts():
    browser = FakeBrowser(logged_in=False)
    add_login_form(browser, logs_in=False)
    manager = make_manager(browser)

    assert manager.ensure_authenticated() is False
    assert manager.status == SessionStatus.NO_SESSION
    assert browser.visited == [LOGIN_URL] * 3


def test_login_without_form_raises():
    manager = make_manager(FakeBrowser(logged_in=False))

    with pytest.raises(AuthenticationError, match="Login form not found"):
        manager.login()


def test_no_browser_cannot_authenticate():
    manager = make_manager()

    assert manager.ensure_authenticated() is False
    assert manager.health_check() is False


def test_health_check_reauthenticates_expired_session():
    browser = FakeBrowser(logged_in=False)
    add_login_form(browser)
    manager = make_manager(browser)

    assert manager.health_check() is True
    assert manager.status == SessionStatus.AUTHENTICATED
    assert browser.visited == [LOGIN_URL]


def test_check_browser_emits_crash_event_once():
    browser = FakeBrowser()
    manager = make_manager(browser)
    crashed = []
    manager.on_crash(crashed.append)

    assert manager.check_browser() is True
    browser.alive = False

    assert manager.check_browser() is False
    assert manager.check_browser() is False
    assert crashed == [browser]
    assert manager.browser is None
    assert manager.has_session is False


def test_crash_listener_can_attach_replacement():
    dead = FakeBrowser()
    replacement = FakeBrowser()
    manager = make_manager(dead)
    manager.on_crash(lambda old: manager.attach(replacement))
    dead.alive = False

    manager.check_browser()

    assert manager.browser is replacement


def test_failing_crash_listener_is_contained():
    browser = FakeBrowser(alive=False)
    manager = make_manager(browser)

    def explode(old):
        raise RuntimeError("relaunch failed")

    manager.on_crash(explode)

    assert manager.check_browser() is False


def test_close_detaches_and_closes():
    browser = FakeBrowser()
    manager = make_manager(browser)

    manager.close()

    assert browser.closed is True
    assert manager.browser is None
    manager.close()


def test_unsolved_login_challenge_is_reported_once():
    browser = FakeBrowser(logged_in=False)
    add_login_form(browser)
    captcha = FakeCaptchaSolver(challenges=[True, True, True], error=CaptchaError("2captcha error: ERROR_ZERO_BALANCE"))
    notifier = FakeNotifier()
    manager = SessionManager(
        "operator@example.com", "secret", LOGIN_URL, captcha,
        browser=browser, sleep=no_sleep, notifier=notifier,
    )

    assert manager.ensure_authenticated() is False
    assert notifier.captcha_failures == ["Login: 2captcha error: ERROR_ZERO_BALANCE"]
