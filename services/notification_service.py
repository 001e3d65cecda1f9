"""
Notification Service

Formats operator notifications and delivers them over Telegram, retrying
transient failures with backoff.
"""

import html
import logging

from utils.retry import retry
from utils.time_utils import now_iso

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, client, max_retries=3, initial_delay=1.0, cart_url=None, sleep=None):
        self.client = client
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.cart_url = cart_url
        self._retry_kwargs = {"sleep": sleep} if sleep else {}

    def _send(self, text, label):
        """
        Send with retry. Returns True if the message was delivered.
        """
        try:
            retry(
                lambda: self.client.send_message(text),
                max_attempts=self.max_retries,
                initial_delay=self.initial_delay,
                backoff_multiplier=2,
                description=f"Telegram {label}",
                **self._retry_kwargs,
            )
        except Exception as e:
            logger.error(f"Failed to send {label} notification: {e}")
            return False

        logger.info(f"Sent {label} notification")
        return True

    def notify_available(self, product):
        """
        Tell the operator that a product became available.

        Args:
            product (ProductCheckResult): The fresh check result

        Returns:
            bool: True if the notification was delivered
        """
        lines = [
            "🔔 Product Available!",
            "",
            f"Product: {_esc(product.name)}",
            f"URL: {_esc(product.url)}",
        ]
        if product.price:
            lines.append(f"Price: {_esc(product.price)}")
        lines += ["", f"Status changed at: {now_iso()}"]
        return self._send("\n".join(lines), "availability")

    def notify_cart_success(self, product, quantity):
        lines = [
            "🛒 Added to Cart!",
            "",
            f"Product: {_esc(product.name)}",
            f"Price: {_esc(product.price or 'N/A')}",
            f"Quantity: {quantity}",
        ]
        if self.cart_url:
            lines.append(f"Cart: {_esc(self.cart_url)}")
        lines.append(f"Time: {now_iso()}")
        return self._send("\n".join(lines), "cart success")

    def notify_cart_failure(self, product, reason):
        lines = [
            "❌ Cart Failed",
            "",
            f"Product: {_esc(product.name)}",
            f"Reason: {_esc(reason)}",
            f"URL: {_esc(product.url)}",
            f"Time: {now_iso()}",
        ]
        return self._send("\n".join(lines), "cart failure")

    def notify_auth_failure(self, reason):
        lines = [
            "🔑 Login Failed",
            "",
            f"Reason: {_esc(reason)}",
            "Action: Check credentials in .env",
            f"Time: {now_iso()}",
        ]
        return self._send("\n".join(lines), "auth failure")

    def notify_captcha_failure(self, context):
        lines = [
            "⚠️ CAPTCHA Failed",
            "",
            f"Context: {_esc(context)}",
            "Action: Manual intervention may be needed",
            f"Time: {now_iso()}",
        ]
        return self._send("\n".join(lines), "captcha failure")

    def notify_fatal(self, reason):
        lines = [
            "🛑 Watcher Stopped",
            "",
            f"Reason: {_esc(reason)}",
            f"Time: {now_iso()}",
        ]
        return self._send("\n".join(lines), "fatal error")

    def send_reply(self, text):
        """
        Best-effort reply to an operator command (no retry).
        """
        try:
            self.client.send_message(text)
            return True
        except Exception as e:
            logger.warning(f"Failed to send bot reply: {e}")
            return False


def _esc(value):
    # Messages are sent with parse_mode=HTML
    return html.escape(str(value), quote=False)
