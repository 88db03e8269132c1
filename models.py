from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from errors import ValidationError


# -------------------------
# Field coercion
# -------------------------
def _text(raw: Dict[str, Any], key: str, *, required: bool = False) -> str:
    value = raw.get(key)
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"Field '{key}' must be a string.")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"Field '{key}' is required.")
    return value


def _flag(raw: Dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key)
    if value is None:
        return default
    # sqlite hands booleans back as 0/1
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValidationError(f"Field '{key}' must be a boolean.")


def _price(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise ValidationError("Field 'price' must be a number.")
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Field 'price' must be a number.") from None
    if math.isnan(price) or math.isinf(price) or price < 0:
        raise ValidationError("Field 'price' must be a non-negative number.")
    return price


def _rating(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("Rating must be an integer between 1 and 5.")
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Rating must be an integer between 1 and 5.") from None
    if rating != value and not (isinstance(value, str) and value.strip() == str(rating)):
        raise ValidationError("Rating must be an integer between 1 and 5.")
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be an integer between 1 and 5.")
    return rating


# -------------------------
# Model
# -------------------------
@dataclass(frozen=True)
class Review:
    id: str
    user_name: str
    rating: int
    comment: str
    date: str

    @classmethod
    def from_dict(cls, raw: Any) -> "Review":
        if not isinstance(raw, dict):
            raise ValidationError("Each review must be an object.")
        return cls(
            id=_text(raw, "id"),
            user_name=_text(raw, "userName", required=True),
            rating=_rating(raw.get("rating")),
            comment=_text(raw, "comment", required=True),
            date=_text(raw, "date"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userName": self.user_name,
            "rating": self.rating,
            "comment": self.comment,
            "date": self.date,
        }


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    description: str
    category: str
    price: float
    image_urls: Tuple[str, ...] = ()
    is_in_stock: bool = True
    is_new_arrival: bool = False
    is_visible: bool = True
    reviews: Tuple[Review, ...] = field(default_factory=tuple)
    version: Optional[int] = None

    def primary_image(self) -> Optional[str]:
        return self.image_urls[0] if self.image_urls else None

    def average_rating(self) -> float:
        if not self.reviews:
            return 0.0
        return sum(r.rating for r in self.reviews) / len(self.reviews)

    def with_review(self, review: Review) -> "Product":
        return replace(self, reviews=self.reviews + (review,))

    @classmethod
    def from_dict(cls, raw: Any) -> "Product":
        """Build a product from its wire form (camelCase keys).

        Missing optional fields take their defaults; ``id`` may be empty when
        the server is expected to assign one.
        """
        if not isinstance(raw, dict):
            raise ValidationError("Each product must be an object.")

        urls = raw.get("imageUrls")
        if urls is None:
            urls = []
        if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
            raise ValidationError("Field 'imageUrls' must be a list of strings.")

        reviews = raw.get("reviews")
        if reviews is None:
            reviews = []
        if not isinstance(reviews, list):
            raise ValidationError("Field 'reviews' must be a list.")

        version = raw.get("version")
        if version is not None and (isinstance(version, bool) or not isinstance(version, int)):
            raise ValidationError("Field 'version' must be an integer.")

        return cls(
            id=_text(raw, "id"),
            name=_text(raw, "name", required=True),
            description=_text(raw, "description"),
            category=_text(raw, "category", required=True),
            price=_price(raw.get("price")),
            image_urls=tuple(u.strip() for u in urls if u.strip()),
            is_in_stock=_flag(raw, "isInStock", True),
            is_new_arrival=_flag(raw, "isNewArrival", False),
            is_visible=_flag(raw, "isVisible", True),
            reviews=tuple(Review.from_dict(r) for r in reviews),
            version=version,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": self.price,
            "imageUrls": list(self.image_urls),
            "isInStock": self.is_in_stock,
            "isNewArrival": self.is_new_arrival,
            "isVisible": self.is_visible,
            "reviews": [r.to_dict() for r in self.reviews],
        }
        if self.version is not None:
            data["version"] = self.version
        return data


def products_from_list(raw: Any) -> List[Product]:
    if not isinstance(raw, list):
        raise ValidationError("Expected an array of products.")
    return [Product.from_dict(x) for x in raw]
