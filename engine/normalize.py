# engine/normalize.py
"""
Mapping of provider payloads onto the canonical Product record.

Each provider gets its own mapping function because field names differ
(e.g. SerpAPI "thumbnail" vs. the marketplace API "product_photo"). Every
function applies the same defaulting rules so no display field is ever
left empty for the rendering layer.
"""
import hashlib
import re
from typing import Any, Dict, Iterable, Optional
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from .logger import get_logger
from .models import (
    DEFAULT_CATEGORY,
    DEFAULT_DESCRIPTION,
    DEFAULT_PRICE,
    DEFAULT_REVIEW_COUNT,
    PLACEHOLDER_IMAGE,
    Product,
    RawCategory,
    SavedProduct,
)

logger = get_logger(__name__)

AMAZON_PRODUCT_URL = "https://www.amazon.com/dp/{asin}"
SHOPPING_SEARCH_URL = "https://www.google.com/search?tbm=shop&q={q}"

SHOPPING_STORE = "Google Shopping"
MARKETPLACE_STORE = "Amazon"

UNAVAILABLE_TITLE = "Product Information Unavailable"
UNAVAILABLE_DESCRIPTION = "Could not retrieve product details at this time."

_NUMBER_RE = re.compile(r"[-+]?\d[\d,]*(?:\.\d+)?")


def _first(item: Dict[str, Any], keys: Iterable[str]) -> Any:
    """Return the first non-empty value among keys."""
    for k in keys:
        val = item.get(k)
        if val not in (None, "", [], {}):
            return val
    return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    m = _NUMBER_RE.search(str(value))
    if not m:
        return None
    try:
        return float(m.group(0).replace(",", ""))
    except ValueError:
        return None


def resolve_category(raw: RawCategory, default: str = DEFAULT_CATEGORY) -> str:
    """Collapse a string-or-object category into its display name."""
    if isinstance(raw, dict):
        name = raw.get("name")
        return str(name).strip() if name else default
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return default


def clean_description(raw: Any) -> str:
    """Strip markup from a provider description; fall back to the sentinel."""
    if isinstance(raw, (list, tuple)):
        raw = " ".join(str(part) for part in raw if part)
    if not raw:
        return DEFAULT_DESCRIPTION
    text = str(raw)
    if "<" in text and ">" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ", strip=True)
    text = " ".join(text.split())
    return text or DEFAULT_DESCRIPTION


def display_price(raw: Any) -> Optional[str]:
    """Keep provider formatting for strings; render bare numbers as dollars."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return f"${raw:,.2f}"
    text = str(raw).strip()
    return text or None


def parse_rating(raw: Any) -> float:
    value = _to_float(raw)
    if value is None or value < 0:
        return 0.0
    return value


def format_review_count(raw: Any) -> str:
    if raw is None or raw == "":
        return DEFAULT_REVIEW_COUNT
    value = _to_float(raw)
    if value is None:
        return DEFAULT_REVIEW_COUNT
    return f"({int(value):,} reviews)"


def discount_label(
    percentage: Any = None,
    price: Any = None,
    original_price: Any = None,
) -> Optional[str]:
    """Derive a "NN% off!" badge from an explicit percentage or a price pair."""
    pct = _to_float(percentage)
    if pct is None:
        now = _to_float(price)
        before = _to_float(original_price)
        if now is None or not before or before <= now:
            return None
        pct = (before - now) * 100.0 / before
    if pct <= 0:
        return None
    return f"{int(round(pct))}% off!"


def image_or_placeholder(value: Any) -> str:
    """Only a non-blank URL string is usable as an image."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return PLACEHOLDER_IMAGE


def marketplace_url(asin: str) -> str:
    return AMAZON_PRODUCT_URL.format(asin=quote_plus(asin))


def shopping_url(title: str) -> str:
    return SHOPPING_SEARCH_URL.format(q=quote_plus(title))


def shopping_item_id(item: Dict[str, Any], index: int) -> str:
    """
    SerpAPI items carry a product_id only sometimes; otherwise derive a
    slug that is stable for the same title/link within a result set.
    """
    product_id = item.get("product_id")
    if product_id:
        return str(product_id)
    key = f"{item.get('title', '')}|{item.get('link') or item.get('product_link') or ''}"
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]
    return f"serp-{index}-{digest}"


def from_shopping_result(item: Dict[str, Any], query: str, index: int) -> Product:
    """Map one SerpAPI google_shopping "shopping_results" entry."""
    title = str(item.get("title") or "").strip() or "Unknown Product"
    price = display_price(_first(item, ("price", "extracted_price"))) or DEFAULT_PRICE
    original_price = display_price(_first(item, ("old_price", "extracted_old_price")))
    product_url = _first(item, ("product_link", "link")) or shopping_url(title)

    return Product(
        id=shopping_item_id(item, index),
        title=title,
        description=clean_description(_first(item, ("snippet", "description"))),
        price=price,
        original_price=original_price,
        discount_label=discount_label(
            price=_first(item, ("extracted_price", "price")),
            original_price=_first(item, ("extracted_old_price", "old_price")),
        ),
        image_url=image_or_placeholder(_first(item, ("thumbnail", "serpapi_thumbnail"))),
        store=str(item.get("source") or SHOPPING_STORE),
        category=resolve_category(item.get("category"), default=query or DEFAULT_CATEGORY),
        product_url=str(product_url),
        rating=parse_rating(item.get("rating")),
        review_count=format_review_count(item.get("reviews")),
    )


def from_marketplace_product(
    item: Dict[str, Any],
    default_category: str = DEFAULT_CATEGORY,
    asin: Optional[str] = None,
) -> Product:
    """
    Map a marketplace search entry or product-details payload.

    Accepts both the current API field names (product_title, product_price,
    product_photo, ...) and the older flat ones (title, price_string,
    image_url, ...).
    """
    item_id = str(asin or item.get("asin") or "").strip()
    if not item_id:
        raise ValueError("marketplace item without asin")

    title = str(_first(item, ("product_title", "title")) or "").strip() or "Unknown Product"
    original_price = display_price(_first(item, ("product_original_price", "original_price")))
    price = (
        display_price(_first(item, ("product_price", "price_string", "price")))
        or original_price
        or DEFAULT_PRICE
    )
    if original_price == price:
        original_price = None

    images = _first(item, ("product_photos", "images")) or []
    image = _first(item, ("product_photo", "image_url"))
    if not image and isinstance(images, list) and images:
        image = images[0]

    label = None
    if item.get("is_on_sale") or item.get("discount_percentage"):
        label = discount_label(percentage=item.get("discount_percentage"))
    if label is None:
        label = discount_label(price=price, original_price=original_price)

    return Product(
        id=item_id,
        title=title,
        description=clean_description(
            _first(item, ("product_description", "description", "about_product"))
        ),
        price=price,
        original_price=original_price,
        discount_label=label,
        image_url=image_or_placeholder(image),
        store=MARKETPLACE_STORE,
        category=resolve_category(item.get("category"), default=default_category),
        product_url=str(item.get("product_url") or marketplace_url(item_id)),
        rating=parse_rating(_first(item, ("product_star_rating", "rating"))),
        review_count=format_review_count(
            _first(item, ("product_num_ratings", "reviews_count", "ratings_total"))
        ),
    )


def placeholder_product(item_id: str) -> Product:
    """Stand-in shown when no provider could resolve an item."""
    return Product(
        id=item_id,
        title=UNAVAILABLE_TITLE,
        description=UNAVAILABLE_DESCRIPTION,
        price="N/A",
        image_url=PLACEHOLDER_IMAGE,
        store=MARKETPLACE_STORE,
        category="Unknown",
        product_url=marketplace_url(item_id),
    )


def saved_payload(product: Product) -> Dict[str, Any]:
    """Body for the account backend's save endpoint."""
    return {
        "productId": product.id,
        "productData": {
            "name": product.title or "Unknown Product",
            "price": product.price or DEFAULT_PRICE,
            "image": product.image_url or PLACEHOLDER_IMAGE,
            "store": product.store or MARKETPLACE_STORE,
            "description": product.description or DEFAULT_DESCRIPTION,
            "productUrl": product.product_url,
            "category": product.category or DEFAULT_CATEGORY,
        },
    }


def from_saved_record(record: Dict[str, Any]) -> SavedProduct:
    """Map one entry of the account backend's saved-products listing."""
    product_id = record.get("productId") or record.get("id")
    if not product_id:
        raise ValueError(f"saved record without productId: {record!r}")
    data = record.get("productData") or {}
    title = str(_first(data, ("name", "title")) or "Unknown Product")

    product = Product(
        id=str(product_id),
        title=title,
        description=clean_description(data.get("description")),
        price=display_price(data.get("price")) or DEFAULT_PRICE,
        original_price=display_price(data.get("originalPrice")),
        discount_label=data.get("discountLabel") or None,
        image_url=image_or_placeholder(_first(data, ("image", "imageUrl"))),
        store=str(data.get("store") or MARKETPLACE_STORE),
        category=resolve_category(data.get("category")),
        product_url=str(data.get("productUrl") or shopping_url(title)),
        rating=parse_rating(data.get("rating")),
        review_count=format_review_count(data.get("reviewCount")),
    )
    return SavedProduct(
        product=product,
        saved_at=record.get("savedAt") or record.get("createdAt"),
    )
