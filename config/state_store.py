"""
State Store (JSON file)

Durable per-product records keyed by product URL. The whole document is
loaded at the start of a check cycle and written back at the end; writes go
to a temporary sibling file which then replaces the target, so a crash never
leaves a half-written state file behind.
"""

import os
import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path

from config.models import (
    DEFAULT_PRODUCT_NAME,
    ProductRecord,
    ProductStatus,
    WatcherState,
)
from utils.errors import StateFileError
from utils.time_utils import now_iso

logger = logging.getLogger(__name__)


def load(path):
    """
    Load the watcher state from disk.

    A missing file is a first run and yields an empty state. A file that
    exists but cannot be parsed raises StateFileError rather than being
    discarded.

    Args:
        path (str | Path): State file location

    Returns:
        WatcherState: The loaded state
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        logger.info(f"State file {path} not found, starting with empty state")
        return WatcherState(last_updated=now_iso())
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"Error loading state from {path}: {e}")
        raise StateFileError(f"Failed to load state from {path}: {e}") from e

    try:
        state = WatcherState.from_dict(raw)
    except ValueError as e:
        logger.error(f"State file {path} has an invalid shape: {e}")
        raise StateFileError(f"Failed to load state from {path}: {e}") from e

    logger.debug(f"Loaded state for {len(state.products)} product(s) from {path}")
    return state


def save(state, path):
    """
    Write the whole state to disk atomically and stamp `last_updated`.
    """
    path = Path(path)
    state.last_updated = now_iso()
    tmp_path = path.with_name(f"{path.name}.tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        logger.error(f"Error saving state to {path}: {e}")
        try:
            tmp_path.unlink()
        except OSError:
            pass
        raise StateFileError(f"Failed to save state to {path}: {e}") from e

    logger.debug(f"State saved to {path}")


def get_status(state, url):
    record = state.products.get(url)
    return record.status if record else ProductStatus.UNKNOWN


def set_status(state, url, status, name=None):
    """
    Record the latest observed status for a product.

    Notification and cart markers on an existing record are preserved.
    """
    record = state.products.get(url)
    if record is None:
        record = ProductRecord()
        state.products[url] = record

    record.status = ProductStatus(status)
    record.name = name or record.name or DEFAULT_PRODUCT_NAME
    record.updated_at = now_iso()
    logger.debug(f"Product status updated: {url} -> {record.status.value}")
    return record


def get_last_notified(state, url):
    record = state.products.get(url)
    return record.last_notified_at if record else None


def mark_notified(state, url):
    record = state.products.get(url)
    if record is None:
        logger.warning(f"Cannot mark unknown product as notified: {url}")
        return
    record.last_notified_at = now_iso()
    logger.info(f"Product marked as notified: {url}")


def is_in_cart(state, url):
    record = state.products.get(url)
    return bool(record and record.in_cart)


def mark_in_cart(state, url):
    record = state.products.get(url)
    if record is None:
        logger.warning(f"Cannot mark unknown product as in cart: {url}")
        return
    record.in_cart = True
    record.carted_at = now_iso()
    logger.info(f"Product marked as in cart: {url}")


def clear_cart_marks(state):
    for record in state.products.values():
        record.in_cart = False
        record.carted_at = None
    logger.info("All cart records cleared")


def clear_all_products(state):
    state.products.clear()
    logger.info("All product data cleared")


class StateStore:
    """
    Binds the state file path to a lock so the check cycle and operator
    commands never interleave their load-mutate-save sequences.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.RLock()

    def load(self):
        with self._lock:
            return load(self.path)

    def save(self, state):
        with self._lock:
            save(state, self.path)

    @contextmanager
    def transaction(self):
        """
        Load the state, yield it for mutation and save it on clean exit.

        If the body raises, nothing is written.
        """
        with self._lock:
            state = load(self.path)
            yield state
            save(state, self.path)
