import os
from typing import Any, Dict, List, Optional

import requests

from engine.errors import ProviderError, ProviderUnavailable, RateLimitError
from engine.logger import get_logger
from engine.models import Product
from engine.normalize import from_marketplace_product

logger = get_logger(__name__)

RAPIDAPI_HOST = os.getenv("RAPIDAPI_HOST", "real-time-amazon-data.p.rapidapi.com")
RAPIDAPI_KEY = os.getenv("RAPIDAPI_KEY", "").strip()
BASE_URL = os.getenv("MARKETPLACE_BASE_URL", f"https://{RAPIDAPI_HOST}")
MARKETPLACE_COUNTRY = os.getenv("MARKETPLACE_COUNTRY", "US")
MARKETPLACE_MAX_RESULTS = int(os.getenv("MARKETPLACE_MAX_RESULTS", "5"))
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))

PROVIDER = "amazon"


def _looks_rate_limited(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    message = str(body.get("message") or body.get("error") or "").lower()
    return "rate limit" in message or "too many requests" in message or "exceeded" in message


class MarketplaceClient:
    """Real-Time Amazon Data API on RapidAPI (the marketplace provider)."""

    name = PROVIDER

    def __init__(
        self,
        api_key: str = RAPIDAPI_KEY,
        session: Optional[requests.Session] = None,
        country: str = MARKETPLACE_COUNTRY,
        max_results: int = MARKETPLACE_MAX_RESULTS,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.country = country
        self.max_results = max_results
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "x-rapidapi-host": RAPIDAPI_HOST,
            "x-rapidapi-key": self.api_key,
        }

    def _get(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        """
        GET an endpoint and return its "data" object.

        Raises RateLimitError on 429/quota messages, ProviderUnavailable on
        transport errors and 5xx, ProviderError for anything else.
        """
        url = f"{BASE_URL}{path}"
        try:
            resp = self.session.get(url, headers=self._headers(), params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderUnavailable(PROVIDER, f"request to {path} failed: {e}") from e

        status = resp.status_code
        if status == 429:
            raise RateLimitError(PROVIDER, f"rate limited on {path}", status=status)
        if status >= 500:
            raise ProviderUnavailable(PROVIDER, f"HTTP {status} on {path}", status=status)

        try:
            body = resp.json()
        except ValueError as e:
            raise ProviderError(PROVIDER, f"malformed JSON from {path}", status=status) from e

        if status != 200:
            if _looks_rate_limited(body):
                raise RateLimitError(PROVIDER, f"quota exceeded on {path}", status=status)
            raise ProviderError(PROVIDER, f"HTTP {status} on {path}", status=status)

        if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
            raise ProviderError(PROVIDER, f"unexpected payload from {path}", status=status)
        return body["data"]

    def search(self, query: str) -> List[Product]:
        """
        Search the marketplace for query; never raises.
        """
        logger.info("Searching '%s' via marketplace API", query)
        if not self.api_key:
            logger.warning("RAPIDAPI_KEY is not set; skipping marketplace search.")
            return []

        try:
            data = self._get("/search", {"query": query, "country": self.country, "page": "1"})
        except ProviderError as e:
            logger.warning("Marketplace search failed for '%s': %s", query, e)
            return []

        raw_products = data.get("products")
        if not isinstance(raw_products, list) or not raw_products:
            logger.info("No products in marketplace response for '%s'", query)
            return []

        products: List[Product] = []
        for item in raw_products[: self.max_results]:
            if not isinstance(item, dict):
                continue
            try:
                products.append(from_marketplace_product(item, default_category=query))
            except (TypeError, ValueError) as e:
                logger.debug("Skipping unparseable marketplace item: %s", e)

        logger.info("Marketplace: found %d results for '%s'", len(products), query)
        return products

    def product_details(self, asin: str) -> Product:
        """Fetch one item by ASIN. Raises ProviderError subclasses on failure."""
        if not self.api_key:
            raise ProviderError(PROVIDER, "RAPIDAPI_KEY is not set")

        logger.debug("Fetching marketplace details for %s", asin)
        data = self._get("/product-details", {"asin": asin, "country": self.country})
        try:
            return from_marketplace_product(data, default_category="Amazon Product", asin=asin)
        except (TypeError, ValueError) as e:
            raise ProviderError(PROVIDER, f"invalid product data for {asin}: {e}") from e
