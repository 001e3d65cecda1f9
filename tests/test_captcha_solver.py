"""
Tests for challenge detection and the 2captcha client.
"""

from unittest.mock import MagicMock

import pytest

from conftest import FakeBrowser, FakeElement, no_sleep
from monitoring.captcha_solver import CaptchaSolver, TwoCaptchaClient
from utils.errors import CaptchaError


def json_response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    return resp


def test_solve_turnstile_polls_until_ready():
    session = MagicMock()
    session.request.side_effect = [
        json_response({"status": 1, "request": "99"}),
        json_response({"status": 0, "request": "CAPCHA_NOT_READY"}),
        json_response({"status": 1, "request": "TOKEN"}),
    ]
    client = TwoCaptchaClient("key", session=session, sleep=no_sleep)

    assert client.solve_turnstile("sitekey", "https://shop.example/login.php") == "TOKEN"
    method, url = session.request.call_args_list[0].args
    assert method == "post"
    assert session.request.call_args_list[0].kwargs["data"]["method"] == "turnstile"


def test_solve_turnstile_submit_error():
    session = MagicMock()
    session.request.return_value = json_response({"status": 0, "request": "ERROR_WRONG_USER_KEY"})
    client = TwoCaptchaClient("key", session=session, sleep=no_sleep)

    with pytest.raises(CaptchaError, match="ERROR_WRONG_USER_KEY"):
        client.solve_turnstile("sitekey", "https://shop.example")


def test_solve_turnstile_times_out():
    session = MagicMock()
    session.request.side_effect = [json_response({"status": 1, "request": "7"})] + [
        json_response({"status": 0, "request": "CAPCHA_NOT_READY"})
    ] * 10
    ticks = iter(range(0, 1000, 50))
    client = TwoCaptchaClient("key", session=session, sleep=no_sleep, clock=lambda: next(ticks))

    with pytest.raises(CaptchaError, match="did not solve"):
        client.solve_turnstile("sitekey", "https://shop.example", timeout=120)


def test_detect_and_solve_injects_token():
    browser = FakeBrowser()
    browser.current_url = "https://shop.example/login.php"
    browser.elements[".cf-turnstile"] = FakeElement(attributes={"data-sitekey": "0x4AAA"})
    client = MagicMock()
    client.solve_turnstile.return_value = "TOKEN"
    solver = CaptchaSolver(client)

    assert solver.detect_challenge(browser) is True
    assert solver.solve(browser) == "TOKEN"
    client.solve_turnstile.assert_called_once_with("0x4AAA", "https://shop.example/login.php")
    assert browser.scripts[-1][1] == ("TOKEN",)


def test_sitekey_from_iframe():
    browser = FakeBrowser()
    browser.elements['iframe[src*="challenges.cloudflare.com"]'] = FakeElement(
        attributes={"src": "https://challenges.cloudflare.com/turnstile?sitekey=0xIFRAME&theme=light"}
    )

    assert CaptchaSolver(MagicMock()).extract_sitekey(browser) == "0xIFRAME"


def test_missing_sitekey_raises():
    with pytest.raises(CaptchaError, match="sitekey"):
        CaptchaSolver(MagicMock()).solve(FakeBrowser())


def test_no_challenge_detected():
    assert CaptchaSolver(MagicMock()).detect_challenge(FakeBrowser()) is False
