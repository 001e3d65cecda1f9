"""
Scheduler

Runs the product check cycle on a fixed period, interleaves periodic
session health checks, and exposes pause/resume/status to the command
handler. Cycles never overlap: the timer thread runs each cycle to
completion before waiting for the next tick.
"""

import time
import logging
import threading

from config import state_store
from config.models import ProductStatus, SchedulerStatus
from utils.errors import StateFileError
from utils.time_utils import is_within, now_iso

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(self, settings, store, checker, notifier, session_manager=None, cart=None, on_fatal=None):
        self.product_urls = list(settings.product_urls)
        self.interval = settings.check_interval
        self.session_check_every = settings.session_check_every
        self.dedup_window = settings.notify_dedup_window

        self.store = store
        self.checker = checker
        self.notifier = notifier
        self.session_manager = session_manager
        self.cart = cart
        self.on_fatal = on_fatal

        self.auto_purchase = bool(
            settings.auto_purchase.enabled and session_manager is not None and cart is not None
        )

        self._running = False
        self._paused = False
        self._cycle_count = 0
        self._last_check_time = None
        self.fatal_error = None

        self._stop_event = threading.Event()
        self._cycle_lock = threading.Lock()
        self._thread = None

    # -- control surface ----------------------------------------------------

    @property
    def running(self):
        return self._running

    @property
    def paused(self):
        return self._paused

    def start(self):
        """
        Run one check cycle immediately, then keep checking every
        `interval` seconds on a background thread.
        """
        if self._running:
            logger.warning("Scheduler already running")
            return

        logger.info(
            f"Starting scheduler: {len(self.product_urls)} product(s), interval {self.interval}s, "
            f"auto-purchase {'on' if self.auto_purchase else 'off'}"
        )
        self._running = True
        self._paused = False
        self._stop_event.clear()
        started_at = time.monotonic()

        try:
            self.run_cycle()
        except Exception:
            self._running = False
            raise

        self._thread = threading.Thread(
            target=self._timer_loop, args=(started_at,), name="scheduler", daemon=True
        )
        self._thread.start()

    def stop(self):
        if not self._running:
            logger.debug("Scheduler not running")
            return

        logger.info("Stopping scheduler")
        self._running = False
        self._stop_event.set()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None

    def pause(self):
        self._paused = True
        logger.info("Scheduler paused")

    def resume(self):
        self._paused = False
        logger.info("Scheduler resumed")

    def disable_auto_purchase(self, reason):
        """
        Turn off the cart path for the rest of the process lifetime.
        """
        if self.auto_purchase:
            logger.warning(f"Auto-purchase disabled: {reason}")
        self.auto_purchase = False

    def status(self):
        return SchedulerStatus(
            running=self._running,
            paused=self._paused,
            product_count=len(self.product_urls),
            last_check_time=self._last_check_time,
            cycle_count=self._cycle_count,
            auto_purchase=self.auto_purchase,
        )

    def wait(self, timeout=None):
        """
        Block until the scheduler stops. Returns True if it has stopped.
        """
        return self._stop_event.wait(timeout)

    # -- timer --------------------------------------------------------------

    def _timer_loop(self, started_at):
        next_fire = started_at + self.interval
        while not self._stop_event.wait(max(0.0, next_fire - time.monotonic())):
            try:
                self.run_cycle()
            except StateFileError as e:
                self._handle_fatal(e)
                return
            except Exception as e:
                logger.error(f"Error in check cycle: {e}", exc_info=True)

            # Skip ticks missed by an overrunning cycle
            now = time.monotonic()
            next_fire += self.interval
            while next_fire <= now:
                next_fire += self.interval

    def _handle_fatal(self, error):
        logger.critical(f"Unrecoverable error, stopping scheduler: {error}", exc_info=True)
        self.fatal_error = error
        self._running = False
        try:
            self.notifier.notify_fatal(str(error))
            if self.on_fatal:
                self.on_fatal(error)
        finally:
            self._stop_event.set()

    # -- check cycle --------------------------------------------------------

    def run_cycle(self):
        """
        Check every product once. Skipped entirely while paused.

        Raises:
            StateFileError: If the state file cannot be loaded or saved
        """
        if self._paused:
            logger.info("Check cycle skipped, scheduler paused")
            return

        with self._cycle_lock:
            self._cycle_count += 1
            logger.info(f"=== Check cycle #{self._cycle_count} ({len(self.product_urls)} products) ===")

            self._check_session()

            with self.store.transaction() as state:
                for url in self.product_urls:
                    self.check_product(url, state)

            self._last_check_time = now_iso()
            logger.info(f"Check cycle #{self._cycle_count} complete")

    def _check_session(self):
        if not self.auto_purchase or not self.session_manager.has_session:
            return
        try:
            # Crash detection runs every cycle; it may swap in a new browser
            self.session_manager.check_browser()
            if self._cycle_count % self.session_check_every == 0 and self.session_manager.has_session:
                logger.info("Running session health check")
                if not self.session_manager.health_check():
                    self.notifier.notify_auth_failure("Session re-authentication failed")
                    self.disable_auto_purchase("session re-authentication failed")
        except Exception as e:
            logger.warning(f"Session check failed: {e}")

    def check_product(self, url, state):
        """
        Check one product and act on a transition to available.

        Errors are logged and never propagate, so the remaining products
        in the cycle are still checked.
        """
        try:
            previous = state_store.get_status(state, url)
            result = self.checker.check(url)
            state_store.set_status(state, url, result.status, result.name)

            if result.status != ProductStatus.AVAILABLE or previous == ProductStatus.AVAILABLE:
                return

            logger.info(f"Product became available: {result.name} ({url})")

            last_notified = state_store.get_last_notified(state, url)
            if self.dedup_window and is_within(last_notified, self.dedup_window):
                logger.info(f"Already notified recently ({last_notified}), skipping: {url}")
            elif self.notifier.notify_available(result):
                state_store.mark_notified(state, url)

            if self.auto_purchase and self.session_manager.has_session:
                self.cart.add_to_cart(result, state)

        except Exception as e:
            logger.error(f"Error checking product {url}: {e}")
