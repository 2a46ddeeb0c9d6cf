"""Shared fixtures and fakes for the engine test suite."""

import os

# Keep test runs off the /data volume
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from engine.errors import AccountError, AuthenticationRequired, ProviderError
from engine.models import Product
from engine.normalize import saved_payload
from engine.storage import MemoryStore


def make_product(item_id: str, title: Optional[str] = None, store: str = "Amazon", **kwargs) -> Product:
    return Product(
        id=item_id,
        title=title or f"Product {item_id}",
        price=kwargs.pop("price", "$10.00"),
        store=store,
        product_url=kwargs.pop("product_url", f"https://example.com/{item_id}"),
        **kwargs,
    )


class FakeProvider:
    """Search provider returning canned results and counting calls."""

    def __init__(self, name: str, results: Optional[Dict[str, List[Product]]] = None, default=None):
        self.name = name
        self.results = results or {}
        self.default = default or []
        self.calls: List[str] = []

    def search(self, query: str) -> List[Product]:
        self.calls.append(query)
        return list(self.results.get(query, self.default))


class FakeMarketplace(FakeProvider):
    """Provider with a detail endpoint; errors maps ids to exceptions to raise."""

    def __init__(self, name: str = "amazon", details=None, errors=None, **kwargs):
        super().__init__(name, **kwargs)
        self.details: Dict[str, Product] = details or {}
        self.errors: Dict[str, Exception] = errors or {}
        self.detail_calls: List[str] = []

    def product_details(self, asin: str) -> Product:
        self.detail_calls.append(asin)
        if asin in self.errors:
            raise self.errors[asin]
        if asin not in self.details:
            raise ProviderError(self.name, f"no data for {asin}", status=404)
        return self.details[asin]


class FakeAccount:
    """In-memory account backend with switchable failures."""

    def __init__(self, logged_in: bool = True):
        self.logged_in = logged_in
        self.failing = False
        self.remote: Dict[str, Product] = {}
        self.history: Dict[str, list] = {"today": [], "pastWeek": [], "pastMonth": []}
        self.calls: List[str] = []

    def _check(self, op: str) -> None:
        if not self.logged_in:
            raise AuthenticationRequired()
        self.calls.append(op)
        if self.failing:
            raise AccountError(f"{op} failed", status=503)

    def is_authenticated(self) -> bool:
        return self.logged_in

    def get_saved_products(self):
        self._check("get_saved")
        return [saved_payload(p) for p in self.remote.values()]

    def save_product(self, product: Product):
        self._check("save")
        self.remote[product.id] = product

    def delete_saved_product(self, product_id: str):
        self._check("delete")
        self.remote.pop(product_id, None)

    def clear_saved_products(self):
        self._check("clear")
        self.remote.clear()

    def get_history(self):
        self._check("get_history")
        return self.history

    def add_history(self, query: str):
        self._check("add_history")
        self.history["today"].append({"id": str(len(self.calls)), "query": query})

    def delete_history_item(self, history_id: str):
        self._check("delete_history")

    def clear_history(self):
        self._check("clear_history")


def mock_response(status: int = 200, body=None, content: bytes = b"{}") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.content = content
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def logged_in_store():
    return MemoryStore({"userToken": "tok-123", "userId": "u1", "userEmail": "sam@example.com"})


@pytest.fixture
def account():
    return FakeAccount()
