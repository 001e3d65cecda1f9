"""
Configuration Management

Loads watcher settings from environment variables (optionally via a .env
file) and validates them before anything else starts.
"""

import os
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from utils.errors import ConfigError

logger = logging.getLogger(__name__)

RECOMMENDED_MIN_INTERVAL = 60

DEFAULT_SHOP_URL = "https://coins.bank.gov.ua"
DEFAULT_STATE_FILE = "data/state.json"
DEFAULT_LOG_FILE = "nbu_watcher.log"


@dataclass
class AutoPurchaseSettings:
    enabled: bool = False
    email: Optional[str] = None
    password: Optional[str] = None
    captcha_service: str = "2captcha"
    captcha_api_key: Optional[str] = None
    cart_quantity: int = 1
    browser_headless: bool = True

    def __repr__(self):
        # Keep credentials out of logs and tracebacks
        return (
            f"AutoPurchaseSettings(enabled={self.enabled}, email={self.email!r}, "
            f"captcha_service={self.captcha_service!r}, cart_quantity={self.cart_quantity}, "
            f"browser_headless={self.browser_headless})"
        )


@dataclass
class Settings:
    telegram_bot_token: str
    telegram_chat_id: str
    product_urls: List[str]
    check_interval: int = 60
    max_retries: int = 3
    state_file: str = DEFAULT_STATE_FILE
    shop_url: str = DEFAULT_SHOP_URL
    session_check_every: int = 10
    notify_dedup_hours: float = 24
    log_level: str = "INFO"
    log_file: Optional[str] = DEFAULT_LOG_FILE
    auto_purchase: AutoPurchaseSettings = field(default_factory=AutoPurchaseSettings)

    def __repr__(self):
        return (
            f"Settings(products={len(self.product_urls)}, check_interval={self.check_interval}, "
            f"state_file={self.state_file!r}, auto_purchase={self.auto_purchase!r})"
        )

    @property
    def notify_dedup_window(self):
        return timedelta(hours=self.notify_dedup_hours)

    @property
    def login_url(self):
        return f"{self.shop_url}/login.php"

    @property
    def cart_url(self):
        return f"{self.shop_url}/shopping_cart.php"


def parse_product_urls(value):
    """
    Split a comma-separated list of URLs, dropping blanks.
    """
    if not value:
        return []
    return [url.strip() for url in value.split(",") if url.strip()]


def is_valid_url(url):
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _env_int(env, name, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from None


def _env_float(env, name, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'") from None


def _env_flag(env, name, default=True):
    """Flags are on unless set to the literal 'false'."""
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() != "false"


def load_settings(env=None, env_file=None):
    """
    Build validated Settings from the environment.

    Args:
        env (dict, optional): Mapping to read instead of os.environ
        env_file (str, optional): .env file to load into os.environ first

    Returns:
        Settings: Validated configuration

    Raises:
        ConfigError: If required variables are missing or values are invalid
    """
    if env is None:
        load_dotenv(env_file)
        env = os.environ

    auto_purchase = AutoPurchaseSettings(
        enabled=_env_flag(env, "AUTO_PURCHASE_ENABLED"),
        email=env.get("NBU_LOGIN_EMAIL"),
        password=env.get("NBU_LOGIN_PASSWORD"),
        captcha_service=env.get("CAPTCHA_SERVICE") or "2captcha",
        captcha_api_key=env.get("CAPTCHA_API_KEY"),
        cart_quantity=_env_int(env, "CART_QUANTITY", 1),
        browser_headless=_env_flag(env, "BROWSER_HEADLESS"),
    )

    log_file = env.get("LOG_FILE", DEFAULT_LOG_FILE)

    settings = Settings(
        telegram_bot_token=env.get("TELEGRAM_BOT_TOKEN", ""),
        telegram_chat_id=env.get("TELEGRAM_CHAT_ID", ""),
        product_urls=parse_product_urls(env.get("PRODUCT_URLS")),
        check_interval=_env_int(env, "CHECK_INTERVAL_SECONDS", 60),
        max_retries=_env_int(env, "MAX_RETRIES", 3),
        state_file=env.get("STATE_FILE") or DEFAULT_STATE_FILE,
        shop_url=(env.get("SHOP_BASE_URL") or DEFAULT_SHOP_URL).rstrip("/"),
        session_check_every=_env_int(env, "SESSION_CHECK_EVERY", 10),
        notify_dedup_hours=_env_float(env, "NOTIFY_DEDUP_HOURS", 24),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        log_file=log_file or None,
        auto_purchase=auto_purchase,
    )

    validate_settings(settings)
    return settings


def validate_settings(settings):
    missing = []

    if not settings.telegram_bot_token:
        missing.append("TELEGRAM_BOT_TOKEN")
    if not settings.telegram_chat_id:
        missing.append("TELEGRAM_CHAT_ID")
    if not settings.product_urls:
        missing.append("PRODUCT_URLS")

    if settings.auto_purchase.enabled:
        if not settings.auto_purchase.email:
            missing.append("NBU_LOGIN_EMAIL")
        if not settings.auto_purchase.password:
            missing.append("NBU_LOGIN_PASSWORD")
        if not settings.auto_purchase.captcha_api_key:
            missing.append("CAPTCHA_API_KEY")

    if missing:
        logger.error(f"Missing required configuration: {', '.join(missing)}")
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    invalid_urls = [url for url in settings.product_urls if not is_valid_url(url)]
    if invalid_urls:
        raise ConfigError(f"Invalid URLs: {', '.join(invalid_urls)}")

    if not is_valid_url(settings.shop_url):
        raise ConfigError(f"Invalid SHOP_BASE_URL: {settings.shop_url}")

    if settings.check_interval <= 0:
        raise ConfigError("CHECK_INTERVAL_SECONDS must be positive")
    if settings.max_retries < 1:
        raise ConfigError("MAX_RETRIES must be at least 1")
    if settings.session_check_every < 1:
        raise ConfigError("SESSION_CHECK_EVERY must be at least 1")
    if settings.notify_dedup_hours < 0:
        raise ConfigError("NOTIFY_DEDUP_HOURS must not be negative")
    if settings.auto_purchase.cart_quantity < 1:
        raise ConfigError("CART_QUANTITY must be at least 1")

    if settings.check_interval < RECOMMENDED_MIN_INTERVAL:
        logger.warning(
            f"CHECK_INTERVAL_SECONDS={settings.check_interval} is below the recommended "
            f"minimum of {RECOMMENDED_MIN_INTERVAL} seconds"
        )
