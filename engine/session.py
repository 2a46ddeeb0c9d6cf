# engine/session.py
import os
import random
from dataclasses import dataclass
from typing import List, Optional

from providers import MarketplaceClient, ShoppingClient

from .account import AccountClient
from .cache import DetailCache
from .credentials import load_credentials
from .detail import DetailFetcher
from .history import SearchHistory
from .logger import get_logger
from .models import Credentials, Product, SearchResult
from .recommend import Recommender
from .saved import SavedItemsSynchronizer
from .search import SearchOrchestrator
from .storage import SqliteStore

logger = get_logger(__name__)

# Featured items shown before the user searches
FEATURED_ASINS = [
    a.strip()
    for a in os.getenv("FEATURED_ASINS", "B07ZPKBL9V,B08RCJCGDJ,B08PF1Y7Q5,B07VKG1LFZ").split(",")
    if a.strip()
]


@dataclass
class Session:
    """Everything one app session shares, built once and passed around."""
    store: object
    cache: DetailCache
    account: AccountClient
    orchestrator: SearchOrchestrator
    fetcher: DetailFetcher
    saved: SavedItemsSynchronizer
    history: SearchHistory
    recommender: Recommender
    featured_ids: List[str]

    def credentials(self) -> Optional[Credentials]:
        return load_credentials(self.store)

    def search(self, query: str) -> SearchResult:
        """User-initiated search: record the query, then orchestrate."""
        query = query.strip()
        if not query:
            raise ValueError("search query must not be empty")
        self.history.record(query)
        return self.orchestrator.search_products(query)

    def featured(self) -> List[Product]:
        return self.fetcher.fetch_many(self.featured_ids)

    def recommend(self) -> List[Product]:
        return self.recommender.recommend()


def build_session(
    store=None,
    shopping: Optional[ShoppingClient] = None,
    marketplace: Optional[MarketplaceClient] = None,
    account: Optional[AccountClient] = None,
    rng: Optional[random.Random] = None,
    featured_ids: Optional[List[str]] = None,
) -> Session:
    if store is None:
        store = SqliteStore()
        store.ensure_db()
    shopping = shopping or ShoppingClient()
    marketplace = marketplace or MarketplaceClient()
    account = account or AccountClient(store)

    cache = DetailCache(store)
    orchestrator = SearchOrchestrator([shopping, marketplace])
    history = SearchHistory(account)

    logger.debug("Session built with providers %s, %s.", shopping.name, marketplace.name)
    return Session(
        store=store,
        cache=cache,
        account=account,
        orchestrator=orchestrator,
        fetcher=DetailFetcher(cache, primary=marketplace, secondary=shopping),
        saved=SavedItemsSynchronizer(store, account),
        history=history,
        recommender=Recommender(history, orchestrator, rng=rng),
        featured_ids=list(featured_ids if featured_ids is not None else FEATURED_ASINS),
    )
