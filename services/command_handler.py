"""
Operator Commands

Translates Telegram commands from the configured operator chat into
scheduler and state store calls, and long-polls the Bot API for them.

Commands: /start, /stop, /status, /reset_cart, /clear_data, /help
"""

import logging
import threading

from config import state_store
from config.models import CommandMessage

logger = logging.getLogger(__name__)

ERROR_RETRY_DELAY = 5
STOP_JOIN_TIMEOUT = 1

HELP_TEXT = "\n".join([
    "/start - resume monitoring",
    "/stop - pause monitoring",
    "/status - show watcher status",
    "/reset_cart - forget which products were added to cart",
    "/clear_data - clear all saved product data",
])


class CommandHandler:
    def __init__(self, operator_chat_id, scheduler, store, notifier):
        self.operator_chat_id = str(operator_chat_id)
        self.scheduler = scheduler
        self.store = store
        self.notifier = notifier
        self._commands = {
            "/start": self._resume,
            "/stop": self._pause,
            "/status": self._status,
            "/reset_cart": self._reset_cart,
            "/clear_data": self._clear_data,
            "/help": self._help,
        }

    def is_authorized(self, message):
        return message.chat_id == self.operator_chat_id

    def handle(self, message):
        """
        Dispatch one operator message.

        Returns:
            bool: True if a command was executed
        """
        if not self.is_authorized(message):
            logger.warning(f"Unauthorized bot command from chat {message.chat_id}: {message.command}")
            return False

        action = self._commands.get(message.command)
        if action is None:
            logger.debug(f"Ignoring unknown command: {message.command}")
            return False

        logger.info(f"Handling bot command {message.command}")
        action()
        return True

    def _resume(self):
        self.scheduler.resume()
        count = self.scheduler.status().product_count
        self.notifier.send_reply(f"Watcher resumed. Monitoring {count} products.")

    def _pause(self):
        self.scheduler.pause()
        self.notifier.send_reply("Watcher paused. Send /start to resume.")

    def _status(self):
        status = self.scheduler.status()
        lines = [
            f"Status: {_describe(status)}",
            f"Products: {status.product_count}",
            f"Last check: {status.last_check_time or 'never'}",
            f"Auto-purchase: {'on' if status.auto_purchase else 'off'}",
        ]
        self.notifier.send_reply("\n".join(lines))

    def _reset_cart(self):
        with self.store.transaction() as state:
            state_store.clear_cart_marks(state)
        self.notifier.send_reply("Cart records cleared. Products can be re-added to cart.")

    def _clear_data(self):
        with self.store.transaction() as state:
            state_store.clear_all_products(state)
        self.notifier.send_reply("All saved product data cleared.")

    def _help(self):
        self.notifier.send_reply(HELP_TEXT)


def _describe(status):
    if not status.running:
        return "stopped"
    return "paused" if status.paused else "running"


def parse_update(update):
    """
    Convert a raw Bot API update into a CommandMessage, or None if it
    carries no text message.
    """
    message = update.get("message") or {}
    text = message.get("text")
    chat = message.get("chat") or {}
    if not text or "id" not in chat:
        return None
    return CommandMessage(update_id=update["update_id"], chat_id=str(chat["id"]), text=text)


class CommandListener:
    """
    Background long-poll loop. The offset advances past every update it
    sees, handled or not, so nothing is delivered twice.
    """

    def __init__(self, client, handler, retry_delay=ERROR_RETRY_DELAY, join_timeout=STOP_JOIN_TIMEOUT):
        self.client = client
        self.handler = handler
        self.retry_delay = retry_delay
        self.join_timeout = join_timeout
        self.offset = 0
        self._stop_event = threading.Event()
        self._thread = None

    def start(self):
        if self._thread is not None and not self._stop_event.is_set():
            return
        if self._thread is not None:
            # The previous poller may still be inside a long poll
            self._thread.join()
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, name="command-listener", daemon=True)
        self._thread.start()
        logger.info("Bot command listener started")

    def stop(self):
        if self._thread is None or self._stop_event.is_set():
            return
        self._stop_event.set()
        # A pending long poll is not interrupted; the thread is kept until it exits
        self._thread.join(self.join_timeout)
        logger.info("Bot command listener stopped")

    def _poll_loop(self):
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception as e:
                logger.warning(f"Bot polling error: {e}")
                self._stop_event.wait(self.retry_delay)

    def poll_once(self):
        """
        Fetch one batch of updates and dispatch them.
        """
        updates = self.client.get_updates(offset=self.offset)
        for update in updates:
            self.offset = update["update_id"] + 1
            message = parse_update(update)
            if message is None:
                continue
            try:
                self.handler.handle(message)
            except Exception as e:
                logger.error(f"Error handling bot command '{message.text}': {e}", exc_info=True)
        return len(updates)
