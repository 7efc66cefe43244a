"""
Store services

Each service is a thin read-modify-write layer over a RecordStore. They stamp
ids and timestamps, apply the few business rules the shop has, and raise the
errors from ``errors`` for the HTTP layer to render.
"""
import logging
import random
import string
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from auth import create_token, decode_token, hash_password, verify_password
from config import Settings
from database import RecordStore
from errors import InvalidTransition, NotFound, Unauthorized, ValidationFailure
from pricing import cart_totals, coupon_discount
from schemas import (
    DiscountCreate,
    DiscountUpdate,
    LoginRequest,
    OrderCreate,
    OrderStatus,
    PaymentStatus,
    Product,
    ProductCreate,
    ProductUpdate,
    QuoteRequest,
    RegisterRequest,
    StatusUpdate,
)

logger = logging.getLogger(__name__)

_BASE36 = string.ascii_lowercase + string.digits


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _millis() -> int:
    return int(time.time() * 1000)


def _suffix(length: int) -> str:
    return "".join(random.choices(_BASE36, k=length))


def new_product_id() -> str:
    return f"prod_{_millis()}_{_suffix(9)}"


def new_order_id() -> str:
    return f"ORD{_millis()}{_suffix(5).upper()}"


def new_user_id() -> str:
    return f"user_{_millis()}_{_suffix(6)}"


def new_discount_id() -> str:
    return f"disc_{_millis()}_{_suffix(6)}"


def _newest_first(records):
    return sorted(records, key=lambda r: r.get("createdAt") or "", reverse=True)


# ----------------------- Catalog -----------------------
class CatalogService:
    def __init__(self, store: RecordStore):
        self.store = store

    def list_products(self) -> List[Dict[str, Any]]:
        return self.store.list("product")

    def get_product(self, product_id: str) -> Dict[str, Any]:
        product = self.store.get("product", product_id)
        if not product:
            raise NotFound("Product not found")
        return product

    def create_product(self, data: ProductCreate) -> Dict[str, Any]:
        now = _now()
        product = Product(id=new_product_id(), created_at=now, updated_at=now, **data.model_dump())
        record = product.model_dump(by_alias=True)
        self.store.put("product", product.id, record)
        logger.info("Product created: %s", product.id)
        return record

    def update_product(self, product_id: str, data: ProductUpdate) -> Dict[str, Any]:
        existing = self.get_product(product_id)
        updates = data.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
        updated = {**existing, **updates, "id": product_id, "updatedAt": _now()}
        self.store.put("product", product_id, updated)
        logger.info("Product updated: %s", product_id)
        return updated

    def delete_product(self, product_id: str) -> None:
        self.store.delete("product", product_id)
        logger.info("Product deleted: %s", product_id)


# ----------------------- Discounts -----------------------
class DiscountService:
    def __init__(self, store: RecordStore):
        self.store = store

    def list_discounts(self) -> List[Dict[str, Any]]:
        return self.store.list("discount")

    def get_discount(self, discount_id: str) -> Dict[str, Any]:
        discount = self.store.get("discount", discount_id)
        if not discount:
            raise NotFound("Discount not found")
        return discount

    def find_by_code(self, code: str) -> Dict[str, Any]:
        matches = self.store.find("discount", code=code.strip().upper())
        if not matches:
            raise ValidationFailure(f"Unknown coupon code {code}")
        return matches[0]

    def create_discount(self, data: DiscountCreate) -> Dict[str, Any]:
        if self.store.find("discount", code=data.code):
            raise ValidationFailure(f"Coupon code {data.code} already exists")
        now = _now()
        record = {
            "id": new_discount_id(),
            **data.model_dump(by_alias=True, mode="json"),
            "usedCount": 0,
            "createdAt": now,
            "updatedAt": now,
        }
        self.store.put("discount", record["id"], record)
        logger.info("Discount created: %s (%s)", record["id"], record["code"])
        return record

    def update_discount(self, discount_id: str, data: DiscountUpdate) -> Dict[str, Any]:
        existing = self.get_discount(discount_id)
        updates = data.model_dump(by_alias=True, mode="json", exclude_unset=True, exclude_none=True)
        updated = {**existing, **updates, "id": discount_id, "updatedAt": _now()}
        if updated.get("type") == "percentage" and updated.get("value", 0) > 100:
            raise ValidationFailure("percentage discount cannot exceed 100")
        self.store.put("discount", discount_id, updated)
        logger.info("Discount updated: %s", discount_id)
        return updated

    def delete_discount(self, discount_id: str) -> None:
        self.store.delete("discount", discount_id)
        logger.info("Discount deleted: %s", discount_id)

    def evaluate(self, code: str, subtotal, today: Optional[date] = None) -> Tuple[Dict[str, Any], int]:
        discount = self.find_by_code(code)
        return discount, coupon_discount(discount, subtotal, today)

    def redeem(self, discount: Dict[str, Any]) -> None:
        discount = {**discount, "usedCount": discount.get("usedCount", 0) + 1, "updatedAt": _now()}
        self.store.put("discount", discount["id"], discount)


# ----------------------- Orders -----------------------
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PACKED, OrderStatus.CANCELLED},
    OrderStatus.PACKED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    # re-sending the current status only touches tracking details
    return new == current or new in ALLOWED_TRANSITIONS[current]


class OrderService:
    def __init__(self, store: RecordStore, discounts: DiscountService):
        self.store = store
        self.discounts = discounts

    def quote(self, data: QuoteRequest) -> Dict[str, Any]:
        totals = cart_totals(data.items)
        if data.coupon_code:
            _, amount = self.discounts.evaluate(data.coupon_code, totals["subtotal"])
            totals = cart_totals(data.items, coupon_amount=amount)
        return totals

    def create_order(self, user_id: str, data: OrderCreate) -> Dict[str, Any]:
        payload = data.model_dump(by_alias=True, exclude={"coupon_code"})
        coupon = None
        if data.coupon_code:
            coupon, amount = self.discounts.evaluate(data.coupon_code, data.subtotal)
            payload["couponCode"] = coupon["code"]
            payload["couponDiscount"] = amount

        now = _now()
        order_id = new_order_id()
        order = {
            "id": order_id,
            "userId": user_id,
            **payload,
            "status": OrderStatus.PENDING.value,
            "paymentStatus": (
                PaymentStatus.PAID.value if data.payment_method == "online" else PaymentStatus.PENDING.value
            ),
            "createdAt": now,
            "updatedAt": now,
        }
        self.store.put("order", order_id, order)
        if coupon:
            self.discounts.redeem(coupon)
        logger.info("New order created: %s Customer: %s", order_id, data.address.full_name)
        return order

    def get_order(self, order_id: str) -> Dict[str, Any]:
        order = self.store.get("order", order_id)
        if not order:
            raise NotFound("Order not found")
        return order

    def list_orders_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        return _newest_first(self.store.find("order", userId=user_id))

    def list_all_orders(self) -> List[Dict[str, Any]]:
        return _newest_first(self.store.list("order"))

    def update_order_status(self, order_id: str, data: StatusUpdate) -> Dict[str, Any]:
        existing = self.get_order(order_id)
        try:
            current = OrderStatus(existing.get("status") or OrderStatus.PENDING.value)
        except ValueError:
            current = OrderStatus.PENDING
        if not can_transition(current, data.status):
            raise InvalidTransition(f"Cannot move order from {current.value} to {data.status.value}")

        updated = {
            **existing,
            "status": data.status.value,
            "tracking": data.tracking or existing.get("tracking"),
            "courierName": data.courier_name or existing.get("courierName"),
            "updatedAt": _now(),
        }
        self.store.put("order", order_id, updated)
        logger.info("Order status updated: %s New status: %s", order_id, data.status.value)
        return updated

    def list_payments(self) -> List[Dict[str, Any]]:
        payments = []
        for order in self.list_all_orders():
            address = order.get("address") or {}
            payments.append({
                "id": f"pay_{order['id']}",
                "orderId": order["id"],
                "amount": order.get("total", 0),
                "method": order.get("paymentMethod"),
                "status": order.get("paymentStatus", PaymentStatus.PENDING.value),
                "customerName": address.get("fullName"),
                "customerEmail": address.get("email"),
                "date": order.get("createdAt"),
            })
        return payments


# ----------------------- Identity -----------------------
def public_user(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": record["id"],
        "email": record.get("email"),
        "name": record.get("name"),
        "isAdmin": bool(record.get("isAdmin")),
        "createdAt": record.get("createdAt"),
        "user_metadata": {"name": record.get("name"), "isAdmin": bool(record.get("isAdmin"))},
    }


class IdentityService:
    """
    Accounts and sessions.

    The admin role is decided once, when the account is created, from the
    configured email rules; logging in never re-derives it.
    """

    def __init__(self, store: RecordStore, settings: Settings):
        self.store = store
        self.settings = settings

    @property
    def expires_in(self) -> int:
        return self.settings.jwt_expire_minutes * 60

    def is_admin_email(self, email: str) -> bool:
        email = email.lower()
        if email in self.settings.admin_emails:
            return True
        marker = self.settings.admin_email_marker
        return bool(marker) and marker.lower() in email

    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        matches = self.store.find("user", email=email.lower())
        return matches[0] if matches else None

    def issue_token(self, user_id: str) -> str:
        return create_token(
            {"sub": user_id},
            self.settings.jwt_secret,
            timedelta(minutes=self.settings.jwt_expire_minutes),
        )

    def create_user(self, email: str, password: str, name: str, is_admin: bool) -> Dict[str, Any]:
        email = email.lower()
        if self.find_by_email(email):
            raise ValidationFailure("Email already registered")
        record = {
            "id": new_user_id(),
            "email": email,
            "passwordHash": hash_password(password),
            "name": name,
            "isAdmin": is_admin,
            "createdAt": _now(),
        }
        self.store.put("user", record["id"], record)
        logger.info("User registered: %s (admin=%s)", record["id"], is_admin)
        return record

    def register(self, data: RegisterRequest) -> Dict[str, Any]:
        record = self.create_user(data.email, data.password, data.name, self.is_admin_email(data.email))
        return {
            "user": public_user(record),
            "session": {
                "access_token": self.issue_token(record["id"]),
                "token_type": "bearer",
                "expires_in": self.expires_in,
            },
        }

    def login(self, data: LoginRequest) -> Dict[str, Any]:
        record = self.find_by_email(data.email)
        if not record or not verify_password(data.password, record.get("passwordHash", "")):
            raise Unauthorized("Invalid login credentials")
        return {
            "access_token": self.issue_token(record["id"]),
            "token_type": "bearer",
            "expires_in": self.expires_in,
            "user": public_user(record),
        }

    def get_current_user(self, token: str) -> Dict[str, Any]:
        payload = decode_token(token, self.settings.jwt_secret)
        user_id = payload.get("sub")
        if not user_id:
            raise Unauthorized("Invalid token payload")
        record = self.store.get("user", user_id)
        if not record:
            raise Unauthorized("User not found")
        return public_user(record)


# ----------------------- Seed Demo Data -----------------------
DEMO_PRODUCTS = [
    {
        "id": "prod_demo_1",
        "name": "Royal Gold Diamond Ring",
        "category": "Rings",
        "price": 45000,
        "discount": 15,
        "weight": "5.2g",
        "material": "Gold",
        "size": "Adjustable",
        "description": "Exquisite 22K gold ring with precious diamonds. Perfect for special occasions.",
        "image": "https://images.unsplash.com/photo-1605100804763-247f67b3557e?auto=format&fit=crop&q=80&w=1000",
        "rating": 4.8,
        "stock": 12,
    },
    {
        "id": "prod_demo_2",
        "name": "Elegant Pearl Necklace",
        "category": "Necklaces",
        "price": 32000,
        "discount": 20,
        "weight": "8.5g",
        "material": "Gold",
        "size": "Standard",
        "description": "Beautiful gold necklace adorned with natural pearls. A timeless classic.",
        "image": "https://images.unsplash.com/photo-1599643478518-17488fbbcd75?auto=format&fit=crop&q=80&w=1000",
        "rating": 4.7,
        "stock": 8,
    },
    {
        "id": "prod_demo_3",
        "name": "Diamond Stud Earrings",
        "category": "Earrings",
        "price": 28000,
        "discount": 10,
        "weight": "3.2g",
        "material": "Diamond",
        "size": "Small",
        "description": "Sparkling diamond earrings that add elegance to any outfit.",
        "image": "https://images.unsplash.com/photo-1535632066927-ab7c9ab60908?auto=format&fit=crop&q=80&w=1000",
        "rating": 4.9,
        "stock": 15,
    },
    {
        "id": "prod_demo_4",
        "name": "Traditional Gold Bangles Set",
        "category": "Bangles",
        "price": 55000,
        "discount": 25,
        "weight": "12.5g",
        "material": "Gold",
        "size": "2.4",
        "description": "Set of 4 traditional 22K gold bangles with intricate designs.",
        "image": "https://images.unsplash.com/photo-1611591437281-460bfbe1220a?auto=format&fit=crop&q=80&w=1000",
        "rating": 4.6,
        "stock": 5,
    },
]

DEMO_ADMIN = {"email": "admin@jewelpalace.com", "password": "admin123", "name": "Admin User"}
DEMO_USER = {"email": "user@jewelpalace.com", "password": "user123", "name": "Demo User"}


def seed_demo_data(store: RecordStore, identity: IdentityService) -> Dict[str, Any]:
    now = _now()
    for p in DEMO_PRODUCTS:
        product = Product(created_at=now, updated_at=now, **p)
        store.put("product", product.id, product.model_dump(by_alias=True))

    for account, is_admin in ((DEMO_ADMIN, True), (DEMO_USER, False)):
        if identity.find_by_email(account["email"]):
            continue
        identity.create_user(account["email"], account["password"], account["name"], is_admin)

    logger.info("Demo data seeded successfully")
    return {
        "message": "Demo data seeded successfully",
        "productsCreated": len(DEMO_PRODUCTS),
        "adminEmail": DEMO_ADMIN["email"],
        "userEmail": DEMO_USER["email"],
    }
