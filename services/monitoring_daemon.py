"""
Monitoring Daemon

Process-level owner of the watcher: wires the components together, logs
in for the purchase path, recovers the browser after a crash, runs the
scheduler and the command listener, and shuts everything down on SIGINT
or SIGTERM.
"""

import sys
import signal
import logging
import threading
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from config.settings import load_settings
from config.state_store import StateStore
from monitoring.browser_session import BrowserSession
from monitoring.captcha_solver import CaptchaSolver, TwoCaptchaClient
from monitoring.cart_orchestrator import CartOrchestrator
from monitoring.product_checker import ProductChecker
from monitoring.session_manager import SessionManager
from services.command_handler import CommandHandler, CommandListener
from services.notification_service import Notifier
from services.scheduler import Scheduler
from services.telegram_client import TelegramClient
from utils.errors import AuthenticationError, ConfigError, StateFileError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level="INFO", log_file=None):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # Selenium and urllib3 are chatty at INFO
    logging.getLogger("selenium").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


class WatcherDaemon:
    def __init__(self, settings, client=None, checker=None, browser_factory=None, captcha_solver=None):
        self.settings = settings
        self.browser_factory = browser_factory or BrowserSession.launch

        self.client = client or TelegramClient(settings.telegram_bot_token, settings.telegram_chat_id)
        self.notifier = Notifier(self.client, max_retries=settings.max_retries, cart_url=settings.cart_url)
        self.store = StateStore(settings.state_file)
        self.checker = checker or ProductChecker(max_retries=settings.max_retries)

        self.session_manager = None
        self.cart = None
        purchase = settings.auto_purchase
        if purchase.enabled:
            captcha_solver = captcha_solver or CaptchaSolver(TwoCaptchaClient(purchase.captcha_api_key))
            self.session_manager = SessionManager(
                purchase.email, purchase.password, settings.login_url, captcha_solver, notifier=self.notifier
            )
            self.cart = CartOrchestrator(
                self.session_manager, captcha_solver, self.notifier, quantity=purchase.cart_quantity
            )

        self.scheduler = Scheduler(
            settings, self.store, self.checker, self.notifier,
            session_manager=self.session_manager, cart=self.cart, on_fatal=self._on_fatal,
        )
        self.command_handler = CommandHandler(
            settings.telegram_chat_id, self.scheduler, self.store, self.notifier
        )
        self.listener = CommandListener(self.client, self.command_handler)

        self._shutdown = threading.Event()

    # -- startup --------------------------------------------------------------

    def prepare(self):
        """
        Make sure the state file location exists and the current file is readable.

        Raises:
            StateFileError: If an existing state file is corrupt
        """
        Path(self.settings.state_file).parent.mkdir(parents=True, exist_ok=True)
        state = self.store.load()
        logger.info(f"State file {self.settings.state_file}: {len(state.products)} known product(s)")

    def start_browser(self):
        """
        Launch the browser and log in for the purchase path. On failure the
        operator is alerted and auto-purchase is turned off; monitoring continues.

        Returns:
            bool: True if the purchase path is ready
        """
        if not self.scheduler.auto_purchase:
            return False

        logger.info("Auto-purchase enabled, launching browser...")
        try:
            browser = self.browser_factory(self.settings.auto_purchase.browser_headless)
        except Exception as e:
            logger.error(f"Browser launch failed: {e}")
            self.notifier.notify_auth_failure(f"Browser launch failed: {e}")
            self.scheduler.disable_auto_purchase("browser launch failed")
            return False

        self.session_manager.attach(browser)
        if not self.session_manager.ensure_authenticated():
            self.notifier.notify_auth_failure("Initial login failed")
            self.scheduler.disable_auto_purchase("initial login failed")
            self.session_manager.close()
            return False

        self.session_manager.on_crash(self._recover_browser)
        return True

    def _recover_browser(self, dead_browser):
        """
        Crash listener: relaunch, swap the new handle in and log in again.
        A failed recovery disables auto-purchase for good.
        """
        logger.warning("Browser crashed, restarting...")
        dead_browser.close()

        try:
            browser = self.browser_factory(self.settings.auto_purchase.browser_headless)
            self.session_manager.attach(browser)
            if not self.session_manager.ensure_authenticated():
                raise AuthenticationError("re-authentication after restart failed")
        except Exception as e:
            logger.error(f"Browser recovery failed: {e}")
            self.session_manager.close()
            self.scheduler.disable_auto_purchase(f"browser recovery failed: {e}")
            self.notifier.notify_auth_failure(f"Browser recovery failed: {e}")
            return

        logger.info("Browser recovered successfully")

    # -- lifecycle ------------------------------------------------------------

    def _on_fatal(self, error):
        self._shutdown.set()

    def request_shutdown(self, signum=None, frame=None):
        logger.info("Received shutdown signal. Stopping gracefully...")
        self._shutdown.set()

    def run(self):
        """
        Run until a shutdown signal or a fatal scheduler error.

        Returns:
            int: Process exit code
        """
        self.prepare()
        self.start_browser()

        signal.signal(signal.SIGINT, self.request_shutdown)
        signal.signal(signal.SIGTERM, self.request_shutdown)

        try:
            self.scheduler.start()
            self.listener.start()
            logger.info("Watcher is running")

            # Short waits keep the main thread responsive to signals
            while not self._shutdown.wait(1):
                pass
        finally:
            self.shutdown()

        return 1 if self.scheduler.fatal_error else 0

    def run_once(self):
        self.prepare()
        self.start_browser()
        try:
            self.scheduler.run_cycle()
        finally:
            self.shutdown()
        return 0

    def shutdown(self):
        self.listener.stop()
        self.scheduler.stop()
        if self.session_manager is not None:
            self.session_manager.close()
        logger.info("Watcher stopped")


def main(env_file=None, once=False, log_level=None):
    """
    Load configuration, start the watcher and return an exit code.
    """
    configure_logging(log_level or "INFO")

    try:
        settings = load_settings(env_file=env_file)
    except ConfigError as e:
        logger.error(f"Failed to start watcher: {e}")
        return 1

    configure_logging(log_level or settings.log_level, settings.log_file)
    logger.info(
        f"Watcher starting: {len(settings.product_urls)} product(s), interval {settings.check_interval}s, "
        f"state file {settings.state_file}, auto-purchase {settings.auto_purchase.enabled}"
    )

    daemon = WatcherDaemon(settings)
    try:
        return daemon.run_once() if once else daemon.run()
    except StateFileError as e:
        logger.error(f"Failed to start watcher: {e}")
        daemon.notifier.notify_fatal(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
