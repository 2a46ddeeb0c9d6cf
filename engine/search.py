# engine/search.py
from typing import List, Optional, Sequence

from .logger import get_logger
from .models import Product, SearchResult

logger = get_logger(__name__)

ALL_STORES = "All"


def no_results_message(query: str) -> str:
    return f'No results found for "{query}"'


class SearchOrchestrator:
    """
    Query providers in fixed priority order and return the first non-empty
    result set. There are no retries here; a retry re-runs the whole search.
    """

    def __init__(self, providers: Sequence):
        if not providers:
            raise ValueError("SearchOrchestrator needs at least one provider")
        self.providers = list(providers)

    def search_products(self, query: str) -> SearchResult:
        for provider in self.providers:
            name = getattr(provider, "name", provider.__class__.__name__)
            products = provider.search(query)
            if products:
                logger.info("Search '%s' answered by %s (%d items).", query, name, len(products))
                return SearchResult(products=products, error=None, provider=name)
            logger.info("Provider %s returned nothing for '%s'; trying next.", name, query)

        logger.info("No provider returned results for '%s'.", query)
        return SearchResult(products=[], error=no_results_message(query))


def available_stores(products: List[Product]) -> List[str]:
    """Distinct store names in first-seen order, prefixed with "All"."""
    stores = [ALL_STORES]
    for p in products:
        if p.store and p.store not in stores:
            stores.append(p.store)
    return stores


def filter_by_store(products: List[Product], store: Optional[str]) -> List[Product]:
    if not store or store == ALL_STORES:
        return list(products)
    return [p for p in products if p.store == store]
