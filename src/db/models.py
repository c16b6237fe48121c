# provide dataclass models, plus the (de)serialisation to the remote/persisted JSON shapes
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


def _to_int(val, default: int = 0) -> int:
    try:
        return int(val)
    except (TypeError, ValueError):
        return default


def _to_float(val, default: float = 0.0) -> float:
    try:
        return float(val)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Product:
    id: int
    title: str
    price: float
    discount_percentage: float = 0.0
    stock: int = 0
    brand: str = ""
    category: str = ""
    thumbnail: str = ""
    rating: float = 0.0
    description: str = ""

    @property
    def discounted_price(self) -> float:
        if not self.discount_percentage:
            return self.price
        return self.price * (1 - self.discount_percentage / 100)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Product":
        """Build from the catalog JSON (camelCase keys). Raises KeyError/ValueError on garbage."""
        if "id" not in data or "price" not in data:
            raise KeyError("product requires 'id' and 'price'")
        return cls(
            id=int(data["id"]),
            title=str(data.get("title") or ""),
            price=float(data["price"]),
            discount_percentage=_to_float(data.get("discountPercentage")),
            stock=max(_to_int(data.get("stock")), 0),
            brand=str(data.get("brand") or ""),
            category=str(data.get("category") or ""),
            thumbnail=str(data.get("thumbnail") or ""),
            rating=_to_float(data.get("rating")),
            description=str(data.get("description") or ""),
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "price": self.price,
            "discountPercentage": self.discount_percentage,
            "stock": self.stock,
            "brand": self.brand,
            "category": self.category,
            "thumbnail": self.thumbnail,
            "rating": self.rating,
            "description": self.description,
        }


@dataclass(frozen=True)
class UserProfile:
    id: str
    display_name: str
    email: str = ""
    address: str = ""
    phone: str = ""
    avatar_url: str = ""
    username: str = ""

    @classmethod
    def from_remote(cls, data: Dict[str, Any]) -> "UserProfile":
        """
        Map whichever profile shape the identity service returns.

        dummyjson: firstName/lastName/image/phone, address as a nested object.
        flat: name/phoneNumber/address string, avatarUrl.
        """
        name = data.get("name") or " ".join(
            part for part in (data.get("firstName"), data.get("lastName")) if part
        )
        address = data.get("address") or ""
        if isinstance(address, dict):
            address = ", ".join(
                str(address[k])
                for k in ("address", "city", "state", "postalCode", "country")
                if address.get(k)
            )
        username = str(data.get("username") or "")
        return cls(
            id=str(data.get("id", "")),
            display_name=str(name or username or data.get("email") or ""),
            email=str(data.get("email") or ""),
            address=str(address),
            phone=str(data.get("phone") or data.get("phoneNumber") or ""),
            avatar_url=str(data.get("image") or data.get("avatarUrl") or ""),
            username=username,
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "name": self.display_name,
            "email": self.email,
            "address": self.address,
            "phoneNumber": self.phone,
            "avatarUrl": self.avatar_url,
            "username": self.username,
        }


@dataclass(frozen=True)
class CartItem:
    id: int  # synthetic, not the product id
    product: Product
    quantity: int

    @property
    def line_total(self) -> float:
        return self.product.discounted_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "product": self.product.to_api(), "quantity": self.quantity}


@dataclass(frozen=True)
class WishlistItem:
    id: int
    product: Product

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "product": self.product.to_api()}


@dataclass(frozen=True)
class OrderSummary:
    subtotal: float = 0.0
    shipping: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    item_count: int = 0


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: Optional[str] = None


@dataclass(frozen=True)
class CatalogPage:
    products: list[Product] = field(default_factory=list)
    total: int = 0
