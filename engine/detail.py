# engine/detail.py
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import List, Optional, Sequence

from .cache import DetailCache
from .errors import ProviderError, ProviderUnavailable, RateLimitError
from .logger import get_logger
from .models import Product
from .normalize import placeholder_product

logger = get_logger(__name__)

DETAIL_MAX_WORKERS = int(os.getenv("DETAIL_MAX_WORKERS", "4"))


class DetailFetcher:
    """
    Resolve a provider item id to a Product.

    Order: cache, primary detail endpoint, secondary search-by-id (only when
    the primary is rate limited or unreachable), then a placeholder. Real
    results are written through to the cache; placeholders never are.

    Two concurrent fetches for the same uncached id both go to the network;
    the second write overwrites the first with the same data.
    """

    def __init__(
        self,
        cache: DetailCache,
        primary,
        secondary=None,
        max_workers: int = DETAIL_MAX_WORKERS,
    ):
        self.cache = cache
        self.primary = primary
        self.secondary = secondary
        self.max_workers = max(1, max_workers)

    def _from_secondary(self, item_id: str) -> Optional[Product]:
        if self.secondary is None:
            return None
        matches = self.secondary.search(item_id)
        if not matches:
            logger.info("Secondary lookup found nothing for %s.", item_id)
            return None
        # Keep the requested id so cache and saved entries stay keyed by it
        return replace(matches[0], id=item_id)

    def fetch_detail(self, item_id: str) -> Product:
        cached = self.cache.get(item_id)
        if cached is not None:
            logger.debug("Detail cache hit for %s", item_id)
            return cached

        product: Optional[Product] = None
        try:
            product = self.primary.product_details(item_id)
        except RateLimitError as e:
            logger.warning("Primary detail lookup rate limited for %s: %s", item_id, e)
            product = self._from_secondary(item_id)
        except ProviderUnavailable as e:
            logger.warning("Primary detail lookup unavailable for %s: %s", item_id, e)
            product = self._from_secondary(item_id)
        except ProviderError as e:
            logger.warning("Primary detail lookup failed for %s: %s", item_id, e)

        if product is None:
            logger.info("Returning placeholder for %s.", item_id)
            return placeholder_product(item_id)

        self.cache.put(item_id, product)
        return product

    def _fetch_isolated(self, item_id: str) -> Product:
        try:
            return self.fetch_detail(item_id)
        except Exception as e:
            logger.exception("Unexpected error fetching detail for %s: %s", item_id, e)
            return placeholder_product(item_id)

    def fetch_many(self, item_ids: Sequence[str]) -> List[Product]:
        """
        Fetch several ids concurrently. Results line up with item_ids and a
        failure for one id never affects the others.
        """
        ids = list(item_ids)
        if not ids:
            return []
        workers = min(self.max_workers, len(ids))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(self._fetch_isolated, ids))
