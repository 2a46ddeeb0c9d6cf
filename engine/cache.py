# engine/cache.py
import json
from typing import Dict, List, Optional

from .errors import StorageError
from .logger import get_logger
from .models import Product

logger = get_logger(__name__)

KEY_PREFIX = "productCache:"


class DetailCache:
    """
    Write-through cache of detail-fetched products, keyed by provider item id.

    Entries never expire. They live in memory for the session and are
    mirrored to the local store so they survive restarts.
    """

    def __init__(self, store):
        self.store = store
        self._entries: Dict[str, Product] = {}

    @staticmethod
    def key_for(item_id: str) -> str:
        return f"{KEY_PREFIX}{item_id}"

    def get(self, item_id: str) -> Optional[Product]:
        product = self._entries.get(item_id)
        if product is not None:
            return product

        try:
            raw = self.store.get(self.key_for(item_id))
        except StorageError as e:
            logger.error("Detail cache read failed for %s: %s", item_id, e)
            return None
        if raw is None:
            return None

        try:
            product = Product.from_dict(json.loads(raw))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Discarding unreadable cache entry for %s: %s", item_id, e)
            return None

        self._entries[item_id] = product
        return product

    def put(self, item_id: str, product: Product) -> None:
        self._entries[item_id] = product
        try:
            self.store.set(self.key_for(item_id), json.dumps(product.to_dict()))
        except StorageError as e:
            logger.error("Detail cache write failed for %s: %s", item_id, e)

    def cached_ids(self) -> List[str]:
        try:
            persisted = [k[len(KEY_PREFIX):] for k in self.store.keys(KEY_PREFIX)]
        except StorageError as e:
            logger.error("Detail cache listing failed: %s", e)
            persisted = []
        return sorted(set(persisted) | set(self._entries))
