"""
Price math for the cart and the catalog listing.

Everything here is a pure function of its arguments. Totals are recomputed on
every read from the product snapshots held by the cart; nothing is cached.
"""

from __future__ import annotations

from typing import Iterable, List, Literal, Optional, Sequence, Tuple

from db.models import CartItem, OrderSummary, Product
from utils import config

SortKey = Literal["default", "price-low", "price-high", "rating", "name"]


def discounted_price(product: Product) -> float:
    return product.discounted_price


def line_total(item: CartItem) -> float:
    return discounted_price(item.product) * item.quantity


def subtotal(items: Iterable[CartItem]) -> float:
    return sum((line_total(item) for item in items), 0.0)


def shipping_for(amount: float, item_count: int = 1) -> float:
    """Flat fee unless the subtotal is strictly above the free-shipping threshold."""
    if item_count <= 0:
        return 0.0
    if amount > config.FREE_SHIPPING_OVER:
        return 0.0
    return config.SHIPPING_FEE


def tax_for(amount: float) -> float:
    return amount * config.TAX_RATE


def summarize(items: Sequence[CartItem]) -> OrderSummary:
    sub = subtotal(items)
    count = sum(item.quantity for item in items)
    shipping = shipping_for(sub, count)
    tax = tax_for(sub)
    return OrderSummary(
        subtotal=sub,
        shipping=shipping,
        tax=tax,
        total=sub + shipping + tax,
        item_count=count,
    )


# ---------------------------
# Catalog listing helpers
# ---------------------------


def filter_products(
    products: Iterable[Product],
    price_range: Optional[Tuple[float, float]] = None,
    brands: Optional[Iterable[str]] = None,
) -> List[Product]:
    """Keep products whose discounted price lies in price_range (inclusive) and,
    when brands is non-empty, whose brand is one of them. No range means no price bound."""
    wanted = set(brands or ())
    result = []
    for p in products:
        if price_range is not None:
            low, high = price_range
            price = discounted_price(p)
            if price < low or price > high:
                continue
        if wanted and p.brand not in wanted:
            continue
        result.append(p)
    return result


def sort_products(products: Iterable[Product], sort_by: SortKey = "default") -> List[Product]:
    products = list(products)
    if sort_by == "price-low":
        products.sort(key=discounted_price)
    elif sort_by == "price-high":
        products.sort(key=discounted_price, reverse=True)
    elif sort_by == "rating":
        products.sort(key=lambda p: p.rating, reverse=True)
    elif sort_by == "name":
        products.sort(key=lambda p: p.title.casefold())
    return products


def available_brands(products: Iterable[Product]) -> List[str]:
    """Distinct non-empty brands in first-seen order."""
    seen: dict[str, None] = {}
    for p in products:
        if p.brand:
            seen.setdefault(p.brand, None)
    return list(seen)


def browse(
    products: Iterable[Product],
    max_price: Optional[float] = None,
    brand: Optional[str] = None,
    sort_by: SortKey = "default",
) -> List[Product]:
    """The product listing as shown: nothing is hidden until the user picks a cap or a brand."""
    price_range = (0, max_price) if max_price is not None else None
    brands = [brand] if brand else None
    return sort_products(filter_products(products, price_range, brands), sort_by)
