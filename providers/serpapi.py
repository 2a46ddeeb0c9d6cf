import os
from typing import Any, Dict, List, Optional

import requests

from engine.logger import get_logger
from engine.models import Product
from engine.normalize import from_shopping_result

logger = get_logger(__name__)

SERPAPI_URL = os.getenv("SERPAPI_URL", "https://serpapi.com/search.json")
SERPAPI_KEY = os.getenv("SERPAPI_KEY", "").strip()
SERPAPI_GL = os.getenv("SERPAPI_GL", "us")
SERPAPI_HL = os.getenv("SERPAPI_HL", "en")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))


class ShoppingClient:
    """Google Shopping results through SerpAPI (the aggregator provider)."""

    name = "serpapi"

    def __init__(
        self,
        api_key: str = SERPAPI_KEY,
        session: Optional[requests.Session] = None,
        gl: str = SERPAPI_GL,
        hl: str = SERPAPI_HL,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.gl = gl
        self.hl = hl
        self.timeout = timeout

    def _fetch(self, query: str) -> Dict[str, Any]:
        params = {
            "q": query,
            "api_key": self.api_key,
            "engine": "google_shopping",
            "gl": self.gl,
            "hl": self.hl,
        }
        resp = self.session.get(SERPAPI_URL, params=params, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError("SerpAPI returned a non-object body")
        return data

    def search(self, query: str) -> List[Product]:
        """
        Search Google Shopping for query. Any failure yields an empty list.
        """
        logger.info("Searching '%s' via SerpAPI", query)
        if not self.api_key:
            logger.warning("SERPAPI_KEY is not set; skipping SerpAPI search.")
            return []

        try:
            data = self._fetch(query)
        except requests.RequestException as e:
            logger.warning("SerpAPI request failed for '%s': %s", query, e)
            return []
        except ValueError as e:
            logger.warning("SerpAPI returned malformed JSON for '%s': %s", query, e)
            return []

        if data.get("error"):
            logger.warning("SerpAPI error for '%s': %s", query, data["error"])
            return []

        results = data.get("shopping_results")
        if not isinstance(results, list) or not results:
            logger.info("No shopping results in SerpAPI response for '%s'", query)
            return []

        products: List[Product] = []
        for index, item in enumerate(results):
            if not isinstance(item, dict):
                continue
            try:
                products.append(from_shopping_result(item, query, index))
            except (TypeError, ValueError) as e:
                logger.debug("Skipping unparseable SerpAPI item %d: %s", index, e)

        logger.info("SerpAPI: found %d results for '%s'", len(products), query)
        return products
