"""
Checkout arithmetic: discounted prices, cart totals and coupon amounts.

Amounts are rupees. Tax and coupon amounts are rounded half up to whole
rupees, which is what the storefront displays.
"""
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, Optional

from errors import ValidationFailure

FREE_SHIPPING_THRESHOLD = 5000
SHIPPING_FEE = 200
TAX_RATE = Decimal("0.03")


def _round_rupees(amount) -> int:
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _whole(amount):
    return int(amount) if float(amount).is_integer() else amount


def discounted_price(price, discount) -> float:
    return price - price * (discount or 0) / 100


def shipping_for(subtotal) -> int:
    return 0 if subtotal >= FREE_SHIPPING_THRESHOLD else SHIPPING_FEE


def tax_for(subtotal) -> int:
    return _round_rupees(Decimal(str(subtotal)) * TAX_RATE)


def cart_totals(items: Iterable[Any], coupon_amount=0) -> Dict[str, Any]:
    """Totals for cart lines carrying an already-discounted unit ``price`` and a ``quantity``."""
    subtotal = _whole(sum(item.price * item.quantity for item in items))
    shipping = shipping_for(subtotal)
    tax = tax_for(subtotal)
    totals = {
        "subtotal": subtotal,
        "shipping": shipping,
        "tax": tax,
        "total": _whole(subtotal + shipping + tax),
    }
    if coupon_amount:
        totals["couponDiscount"] = coupon_amount
        totals["total"] = _whole(totals["total"] - coupon_amount)
    return totals


def coupon_discount(discount: Dict[str, Any], subtotal, today: Optional[date] = None) -> int:
    today = today or date.today()
    code = discount.get("code")
    if not discount.get("enabled", True):
        raise ValidationFailure(f"Coupon {code} is not active")
    expiry = discount.get("expiryDate")
    if expiry and date.fromisoformat(expiry) < today:
        raise ValidationFailure(f"Coupon {code} has expired")
    limit = discount.get("usageLimit") or 0
    if limit and discount.get("usedCount", 0) >= limit:
        raise ValidationFailure(f"Coupon {code} usage limit reached")
    min_order = discount.get("minOrder") or 0
    if subtotal < min_order:
        raise ValidationFailure(f"Coupon {code} requires a minimum order of {min_order}")

    value = discount.get("value", 0)
    if discount.get("type") == "percentage":
        amount = subtotal * value / 100
        cap = discount.get("maxDiscount") or 0
        if cap:
            amount = min(amount, cap)
    else:
        amount = value
    return _round_rupees(min(amount, subtotal))
