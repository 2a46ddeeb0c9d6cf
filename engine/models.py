# engine/models.py
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

DEFAULT_DESCRIPTION = "No description available"
DEFAULT_PRICE = "$0"
DEFAULT_REVIEW_COUNT = "(0 reviews)"
DEFAULT_CATEGORY = "Uncategorized"
PLACEHOLDER_IMAGE = "https://via.placeholder.com/300"

# Upstream category fields arrive either as a plain name or as an object
# such as {"id": "...", "name": "Electronics"}.
RawCategory = Union[str, Dict[str, Any], None]

_FIELD_KEYS = {
    "id": "id",
    "title": "title",
    "description": "description",
    "price": "price",
    "original_price": "originalPrice",
    "discount_label": "discountLabel",
    "image_url": "imageUrl",
    "store": "store",
    "category": "category",
    "product_url": "productUrl",
    "rating": "rating",
    "review_count": "reviewCount",
}


@dataclass
class Product:
    """
    Canonical product record shared by every provider.
    Prices stay as provider-formatted display strings.
    """
    id: str
    title: str
    description: str = DEFAULT_DESCRIPTION
    price: str = DEFAULT_PRICE
    original_price: Optional[str] = None
    discount_label: Optional[str] = None
    image_url: str = PLACEHOLDER_IMAGE
    store: str = ""
    category: str = DEFAULT_CATEGORY
    product_url: str = ""
    rating: float = 0.0
    review_count: str = DEFAULT_REVIEW_COUNT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys the presentation layer reads."""
        raw = asdict(self)
        return {_FIELD_KEYS[k]: v for k, v in raw.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        """Inverse of to_dict; also accepts snake_case keys."""
        kwargs: Dict[str, Any] = {}
        for attr, key in _FIELD_KEYS.items():
            if key in data:
                kwargs[attr] = data[key]
            elif attr in data:
                kwargs[attr] = data[attr]
        if "id" not in kwargs or "title" not in kwargs:
            raise ValueError(f"Product record missing id/title: {data!r}")
        kwargs["id"] = str(kwargs["id"])
        try:
            kwargs["rating"] = float(kwargs.get("rating") or 0)
        except (TypeError, ValueError):
            kwargs["rating"] = 0.0
        return cls(**kwargs)


@dataclass
class SavedProduct:
    """A bookmarked product; at most one per product_id."""
    product: Product
    saved_at: Optional[str] = None

    @property
    def product_id(self) -> str:
        return self.product.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product.id,
            "savedAt": self.saved_at,
            "product": self.product.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavedProduct":
        return cls(product=Product.from_dict(data["product"]), saved_at=data.get("savedAt"))


@dataclass
class SaveState:
    """Outcome of a save toggle as seen by the caller."""
    product_id: str
    saved: bool
    synced: bool = True
    authenticated: bool = True


@dataclass
class PendingChange:
    """A saved-items mutation the remote store has not confirmed."""
    product_id: str
    op: str  # "save" | "unsave"
    product: Optional[Product] = None
    recorded_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "op": self.op,
            "product": self.product.to_dict() if self.product else None,
            "recordedAt": self.recorded_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingChange":
        product = data.get("product")
        return cls(
            product_id=str(data["productId"]),
            op=data["op"],
            product=Product.from_dict(product) if product else None,
            recorded_at=data.get("recordedAt"),
        )


@dataclass
class HistoryTerm:
    """A past search query; the bucket is assigned by the account backend."""
    query: str
    bucket: str  # "today" | "pastWeek" | "pastMonth"
    id: Optional[str] = None
    timestamp: Optional[str] = None


@dataclass
class SearchResult:
    products: List[Product] = field(default_factory=list)
    error: Optional[str] = None
    provider: Optional[str] = None


@dataclass
class Credentials:
    token: str
    user_id: Optional[str] = None
    email: Optional[str] = None
