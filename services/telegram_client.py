"""
Telegram Bot API Client

Thin transport over the Bot API: sending messages and long-polling for
inbound updates.
"""

import logging
import requests

from utils.errors import TelegramError

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot"
SEND_TIMEOUT = 10
POLL_TIMEOUT = 30


class TelegramClient:
    def __init__(self, bot_token, chat_id, session=None):
        self.chat_id = str(chat_id)
        self._base_url = f"{TELEGRAM_API_URL}{bot_token}"
        self._session = session or requests.Session()

    def _post(self, method, payload, timeout):
        url = f"{self._base_url}/{method}"
        try:
            resp = self._session.post(url, json=payload, timeout=timeout)
        except requests.Timeout as e:
            raise TelegramError(f"Telegram API request '{method}' timed out") from e
        except requests.RequestException as e:
            raise TelegramError(f"Telegram API request '{method}' failed: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if not resp.ok or not data.get("ok", False):
            description = data.get("description") or f"HTTP {resp.status_code}"
            raise TelegramError(f"Telegram API error: {description}")

        return data.get("result")

    def send_message(self, text, chat_id=None):
        """
        Send a message to the operator chat.

        Raises:
            TelegramError: If the request fails or the API rejects it
        """
        payload = {
            "chat_id": chat_id or self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        return self._post("sendMessage", payload, SEND_TIMEOUT)

    def get_updates(self, offset=0, timeout=POLL_TIMEOUT):
        """
        Long-poll for new updates starting at `offset`.

        Returns:
            list: Raw update objects, possibly empty
        """
        payload = {
            "offset": offset,
            "timeout": timeout,
            "allowed_updates": ["message"],
        }
        return self._post("getUpdates", payload, timeout + 5) or []
