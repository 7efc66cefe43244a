"""
Catalog browsing: the filter and sort the storefront applies to the full
product list. Works on plain product dicts and never mutates its input.
"""
from typing import Any, Dict, List, Optional, Sequence

from pricing import discounted_price

SORT_ORDERS = ("featured", "price-low", "price-high", "rating", "newest")


def _final_price(p):
    return discounted_price(p.get("price", 0), p.get("discount", 0))


def _matches_query(p, query):
    fields = (p.get("name"), p.get("description"), p.get("category"))
    return any(query in (f or "").lower() for f in fields)


def browse_products(
    products: Sequence[Dict[str, Any]],
    query: Optional[str] = None,
    categories: Optional[List[str]] = None,
    materials: Optional[List[str]] = None,
    min_price: float = 0,
    max_price: Optional[float] = None,
    sort: str = "featured",
) -> List[Dict[str, Any]]:
    if sort not in SORT_ORDERS:
        raise ValueError(f"Unknown sort order: {sort}")

    result = [p for p in products if p.get("enabled")]

    if query:
        q = query.lower()
        result = [p for p in result if _matches_query(p, q)]

    result = [
        p for p in result
        if _final_price(p) >= min_price and (max_price is None or _final_price(p) <= max_price)
    ]

    if materials:
        wanted = [m.lower() for m in materials]
        result = [p for p in result if any(m in (p.get("material") or "").lower() for m in wanted)]

    if categories:
        result = [p for p in result if p.get("category") in categories]

    if sort == "price-low":
        result.sort(key=_final_price)
    elif sort == "price-high":
        result.sort(key=_final_price, reverse=True)
    elif sort == "rating":
        result.sort(key=lambda p: p.get("rating") or 0, reverse=True)
    elif sort == "newest":
        result.reverse()
    return result
