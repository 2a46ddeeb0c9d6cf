# engine/recommend.py
import random
from typing import List, Optional, Sequence

from .errors import AccountError
from .history import SearchHistory
from .logger import get_logger
from .models import Product
from .search import SearchOrchestrator

logger = get_logger(__name__)

DEFAULT_CATEGORIES = [
    "Best protein powder",
    "Top-rated jogging strollers",
    "Best moisturizers for dry skin",
    "Women's hiking boots",
]


class Recommender:
    """Search on a random term from the user's history (or a stock category)."""

    def __init__(
        self,
        history: SearchHistory,
        orchestrator: SearchOrchestrator,
        categories: Sequence[str] = DEFAULT_CATEGORIES,
        rng: Optional[random.Random] = None,
    ):
        if not categories:
            raise ValueError("Recommender needs at least one fallback category")
        self.history = history
        self.orchestrator = orchestrator
        self.categories = list(categories)
        self.rng = rng or random.Random()

    def pick_term(self) -> str:
        try:
            terms = [t.query for t in self.history.terms()]
        except AccountError as e:
            logger.info("History unavailable (%s); recommending from stock categories.", e)
            terms = []
        if not terms:
            terms = self.categories
        return self.rng.choice(terms)

    def recommend(self) -> List[Product]:
        term = self.pick_term()
        logger.info("Recommending from term '%s'.", term)
        return self.orchestrator.search_products(term).products
