# engine/account.py
import os
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .credentials import load_credentials
from .errors import AccountError, AuthenticationRequired
from .logger import get_logger
from .models import Product
from .normalize import saved_payload

logger = get_logger(__name__)

ACCOUNT_API_URL = os.getenv("ACCOUNT_API_URL", "http://localhost:3000/api").rstrip("/")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))


class AccountClient:
    """
    Client for the account backend (search history and saved products).

    The session token is read from the local store on every call, and a
    missing token raises AuthenticationRequired before anything is sent.
    """

    def __init__(
        self,
        store,
        base_url: str = ACCOUNT_API_URL,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def is_authenticated(self) -> bool:
        return load_credentials(self.store) is not None

    def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Any:
        creds = load_credentials(self.store)
        if creds is None:
            raise AuthenticationRequired(f"No session token for {method} {path}")

        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json", "x-auth-token": creds.token}
        try:
            resp = self.session.request(
                method, url, headers=headers, json=json_body, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise AccountError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 404 and allow_missing:
            logger.debug("%s %s returned 404; treating as already done.", method, path)
            return None
        if resp.status_code == 401:
            raise AuthenticationRequired(f"Session rejected for {method} {path}")
        if resp.status_code >= 400:
            message = ""
            try:
                body = resp.json()
                if isinstance(body, dict):
                    message = str(body.get("message") or "")
            except ValueError:
                pass
            raise AccountError(
                f"{method} {path} returned HTTP {resp.status_code} {message}".strip(),
                status=resp.status_code,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise AccountError(f"{method} {path} returned malformed JSON") from e

    # History

    def get_history(self) -> Dict[str, Any]:
        data = self._request("GET", "/history")
        return data if isinstance(data, dict) else {}

    def add_history(self, query: str) -> Any:
        return self._request("POST", "/history", {"query": query})

    def delete_history_item(self, history_id: str) -> Any:
        return self._request("DELETE", f"/history/{quote(str(history_id), safe='')}", allow_missing=True)

    def clear_history(self) -> Any:
        return self._request("DELETE", "/history")

    # Saved products

    def get_saved_products(self) -> List[Dict[str, Any]]:
        data = self._request("GET", "/products/saved")
        if isinstance(data, dict):
            for key in ("savedProducts", "products", "data"):
                if isinstance(data.get(key), list):
                    return data[key]
            raise AccountError("Saved products response has no product list")
        if isinstance(data, list):
            return data
        raise AccountError("Saved products response is not a list")

    def save_product(self, product: Product) -> Any:
        return self._request("POST", "/products/save", saved_payload(product))

    def delete_saved_product(self, product_id: str) -> Any:
        return self._request("DELETE", f"/products/saved/{quote(product_id, safe='')}", allow_missing=True)

    def clear_saved_products(self) -> Any:
        return self._request("DELETE", "/products/saved")
