"""
Data Models

Records persisted in the state file and the value objects passed between
the watcher components.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


DEFAULT_PRODUCT_NAME = "Unknown Product"


class ProductStatus(str, Enum):
    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"

    @classmethod
    def parse(cls, value):
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class SessionStatus(str, Enum):
    NO_SESSION = "no_session"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


@dataclass
class ProductRecord:
    """
    Last known state of one monitored product, keyed by URL in WatcherState.

    `last_notified_at` and `in_cart` only ever move forward during check
    cycles; clearing them is an operator action.
    """
    status: ProductStatus = ProductStatus.UNKNOWN
    name: str = DEFAULT_PRODUCT_NAME
    updated_at: Optional[str] = None
    last_notified_at: Optional[str] = None
    in_cart: bool = False
    carted_at: Optional[str] = None

    def to_dict(self):
        data = {
            "status": self.status.value,
            "name": self.name,
            "updatedAt": self.updated_at,
        }
        if self.last_notified_at:
            data["lastNotifiedAt"] = self.last_notified_at
        if self.in_cart:
            data["inCart"] = True
            data["cartedAt"] = self.carted_at
        return data

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValueError(f"Product record must be an object, got {type(data).__name__}")
        return cls(
            status=ProductStatus.parse(data.get("status")),
            name=data.get("name") or DEFAULT_PRODUCT_NAME,
            updated_at=data.get("updatedAt"),
            # "lastNotified" is the key used by older state files
            last_notified_at=data.get("lastNotifiedAt") or data.get("lastNotified"),
            in_cart=data.get("inCart") is True,
            carted_at=data.get("cartedAt"),
        )


@dataclass
class WatcherState:
    products: Dict[str, ProductRecord] = field(default_factory=dict)
    last_updated: Optional[str] = None

    def to_dict(self):
        return {
            "lastUpdated": self.last_updated,
            "products": {url: record.to_dict() for url, record in self.products.items()},
        }

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValueError("State document must be a JSON object")
        products = data.get("products", {})
        if products is None:
            products = {}
        if not isinstance(products, dict):
            raise ValueError("'products' must be a JSON object")
        return cls(
            products={url: ProductRecord.from_dict(rec) for url, rec in products.items()},
            last_updated=data.get("lastUpdated"),
        )


@dataclass(frozen=True)
class ProductCheckResult:
    url: str
    available: bool
    name: str = DEFAULT_PRODUCT_NAME
    price: str = ""

    @property
    def status(self):
        return ProductStatus.AVAILABLE if self.available else ProductStatus.UNAVAILABLE


@dataclass(frozen=True)
class CartResult:
    success: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class CommandMessage:
    """An inbound operator message from the command channel."""
    update_id: int
    chat_id: str
    text: str

    @property
    def command(self):
        """First token of the message, lower-cased, without any @botname suffix."""
        parts = self.text.strip().split()
        if not parts:
            return ""
        return parts[0].split("@", 1)[0].lower()


@dataclass(frozen=True)
class SchedulerStatus:
    running: bool
    paused: bool
    product_count: int
    last_check_time: Optional[str]
    cycle_count: int
    auto_purchase: bool
