"""
Error Types

Exception hierarchy shared by the watcher components.
"""


class WatcherError(Exception):
    """Base class for all watcher errors."""


class ConfigError(WatcherError):
    """Required configuration is missing or invalid."""


class StateFileError(WatcherError):
    """The persisted state file could not be read or written."""


class ProductCheckError(WatcherError):
    """A product page could not be fetched or parsed."""


class TelegramError(WatcherError):
    """The Telegram Bot API rejected a request or did not answer."""


class CaptchaError(WatcherError):
    """A challenge could not be solved."""


class AuthenticationError(WatcherError):
    """Login did not result in an authenticated session."""


class BrowserError(WatcherError):
    """The browser session is missing or unusable."""
