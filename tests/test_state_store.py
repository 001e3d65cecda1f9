"""
Tests for the JSON state store.
"""

import json
from datetime import timedelta

import pytest

from config import state_store
from config.models import ProductStatus, WatcherState
from config.state_store import StateStore
from utils.errors import StateFileError
from utils.time_utils import parse_iso, to_iso, utc_now

URL = "https://shop.example/coin-a.html"
OTHER = "https://shop.example/coin-b.html"


def test_load_missing_file_returns_empty_state(state_path):
    state = state_store.load(state_path)

    assert state.products == {}
    assert state.last_updated is not None
    assert not state_path.exists()


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]", '{"products": []}', '{"products": ""}', '{"products": 0}'])
def test_load_corrupt_file_raises(state_path, content):
    state_path.parent.mkdir(parents=True)
    state_path.write_text(content, encoding="utf-8")

    with pytest.raises(StateFileError):
        state_store.load(state_path)

    # The corrupt file is left in place for the operator
    assert state_path.read_text(encoding="utf-8") == content


def test_save_creates_directory_and_stamps_last_updated(state_path):
    state = WatcherState(last_updated="2000-01-01T00:00:00.000Z")
    state_store.set_status(state, URL, ProductStatus.UNAVAILABLE, "Coin A")

    state_store.save(state, state_path)

    data = json.loads(state_path.read_text(encoding="utf-8"))
    assert data["lastUpdated"] != "2000-01-01T00:00:00.000Z"
    assert data["products"][URL]["status"] == "unavailable"
    assert data["products"][URL]["name"] == "Coin A"
    assert not state_path.with_name("state.json.tmp").exists()


def test_round_trip_is_a_fixed_point(state_path):
    state = WatcherState()
    state_store.set_status(state, URL, ProductStatus.AVAILABLE, "Монета А")
    state_store.mark_notified(state, URL)
    state_store.mark_in_cart(state, URL)
    state_store.set_status(state, OTHER, ProductStatus.UNAVAILABLE, "Coin B")
    state_store.save(state, state_path)
    first = json.loads(state_path.read_text(encoding="utf-8"))

    state_store.save(state_store.load(state_path), state_path)
    second = json.loads(state_path.read_text(encoding="utf-8"))

    assert first["products"] == second["products"]


def test_failed_save_keeps_previous_file(state_path, monkeypatch):
    state = WatcherState()
    state_store.set_status(state, URL, ProductStatus.UNAVAILABLE, "Coin A")
    state_store.save(state, state_path)
    before = state_path.read_text(encoding="utf-8")

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(state_store.os, "replace", broken_replace)
    state_store.set_status(state, URL, ProductStatus.AVAILABLE, "Coin A")

    with pytest.raises(StateFileError):
        state_store.save(state, state_path)

    assert state_path.read_text(encoding="utf-8") == before
    assert not state_path.with_name("state.json.tmp").exists()


def test_set_status_preserves_markers():
    state = WatcherState()
    state_store.set_status(state, URL, ProductStatus.AVAILABLE, "Coin A")
    state_store.mark_notified(state, URL)
    state_store.mark_in_cart(state, URL)

    state_store.set_status(state, URL, ProductStatus.UNAVAILABLE, "")

    record = state.products[URL]
    assert record.status == ProductStatus.UNAVAILABLE
    assert record.name == "Coin A"
    assert record.last_notified_at is not None
    assert state_store.is_in_cart(state, URL)


def test_unknown_product_defaults():
    state = WatcherState()

    assert state_store.get_status(state, URL) == ProductStatus.UNKNOWN
    assert state_store.get_last_notified(state, URL) is None
    assert not state_store.is_in_cart(state, URL)


def test_marks_on_missing_product_are_noops():
    state = WatcherState()

    state_store.mark_notified(state, URL)
    state_store.mark_in_cart(state, URL)

    assert state.products == {}


def test_clear_cart_marks_and_clear_all_products():
    state = WatcherState()
    state_store.set_status(state, URL, ProductStatus.AVAILABLE, "Coin A")
    state_store.mark_notified(state, URL)
    state_store.mark_in_cart(state, URL)

    state_store.clear_cart_marks(state)
    assert not state_store.is_in_cart(state, URL)
    assert state.products[URL].carted_at is None
    assert state.products[URL].last_notified_at is not None
    assert "inCart" not in state.products[URL].to_dict()

    state_store.clear_all_products(state)
    assert state.products == {}


def test_legacy_last_notified_key_is_read(state_path):
    notified = to_iso(utc_now() - timedelta(hours=1))
    state_path.parent.mkdir(parents=True)
    state_path.write_text(json.dumps({
        "lastUpdated": notified,
        "products": {URL: {"status": "available", "name": "Coin A", "updatedAt": notified, "lastNotified": notified}},
    }), encoding="utf-8")

    state = state_store.load(state_path)

    assert parse_iso(state_store.get_last_notified(state, URL)) == parse_iso(notified)


def test_transaction_saves_on_success_and_skips_on_error(state_path):
    store = StateStore(state_path)

    with store.transaction() as state:
        state_store.set_status(state, URL, ProductStatus.UNAVAILABLE, "Coin A")

    with pytest.raises(RuntimeError):
        with store.transaction() as state:
            state_store.clear_all_products(state)
            raise RuntimeError("boom")

    assert URL in store.load().products


def test_null_products_loads_as_empty(state_path):
    state_path.parent.mkdir(parents=True)
    state_path.write_text('{"lastUpdated": null, "products": null}', encoding="utf-8")

    assert state_store.load(state_path).products == {}
