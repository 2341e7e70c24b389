"""
Catalog rules that run over already-loaded documents: product filtering and
sorting for the shop page, and promotional event discounts.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from database import as_naive_utc, utcnow


class ProductFilter(BaseModel):
    category_slug: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    search_query: Optional[str] = None
    sort: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(v not in (None, "") for v in self.model_dump().values())


def _category_slug(product: Dict[str, Any]) -> Optional[str]:
    category = product.get("category") or {}
    return category.get("slug")


def _matches(product: Dict[str, Any], options: ProductFilter) -> bool:
    if options.category_slug and _category_slug(product) != options.category_slug:
        return False
    price = product.get("price", 0)
    if options.min_price is not None and price < options.min_price:
        return False
    if options.max_price is not None and price > options.max_price:
        return False
    if options.search_query:
        needle = options.search_query.lower()
        name = (product.get("name") or "").lower()
        description = (product.get("description") or "").lower()
        if needle not in name and needle not in description:
            return False
    return True


def sort_products(products: List[Dict[str, Any]], sort: Optional[str] = None) -> List[Dict[str, Any]]:
    # sorted() is stable, so ties keep their incoming order
    if sort == "newest":
        return sorted(products, key=lambda p: p.get("created_at") or datetime.min, reverse=True)
    if sort == "price-low":
        return sorted(products, key=lambda p: p.get("price", 0))
    if sort == "price-high":
        return sorted(products, key=lambda p: p.get("price", 0), reverse=True)
    return sorted(products, key=lambda p: not p.get("is_featured", False))


def filter_products(products: Iterable[Dict[str, Any]], options: ProductFilter) -> List[Dict[str, Any]]:
    """Full scan: keep matching products, then order them by options.sort."""
    return sort_products([p for p in products if _matches(p, options)], options.sort)


# Events

def is_running(event: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    if not event.get("is_active"):
        return False
    return as_naive_utc(event["start_date"]) <= now <= as_naive_utc(event["end_date"])


def event_applies(event: Dict[str, Any], product: Dict[str, Any]) -> bool:
    scope = event.get("applies_to", "ALL")
    if scope == "ALL":
        return True
    if scope == "CATEGORY":
        return bool(event.get("category_id")) and event.get("category_id") == product.get("category_id")
    if scope == "PRICE_RANGE":
        price = product.get("price", 0)
        low = event.get("min_price")
        high = event.get("max_price")
        return (low is None or price >= low) and (high is None or price <= high)
    return False


def discount_for(product: Dict[str, Any], events: Iterable[Dict[str, Any]], now: Optional[datetime] = None) -> float:
    """Largest discount percentage among running events that cover the product."""
    best = 0.0
    for event in events:
        if is_running(event, now) and event_applies(event, product):
            best = max(best, float(event.get("discount_percent", 0)))
    return best


def with_discount(product: Dict[str, Any], events: Iterable[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    percent = discount_for(product, events, now)
    result = dict(product)
    result["discount_percent"] = percent
    result["discounted_price"] = round(product["price"] * (1 - percent / 100), 2) if percent > 0 else None
    return result
