"""
Schemas for the Jewel Palace store

Records are stored and served with camelCase keys (``createdAt``,
``paymentMethod`` ...), which is what the storefront reads. Python code uses
the snake_case attribute names; ``by_alias=True`` dumps produce the wire form.
"""
from datetime import date
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Category = Literal["Rings", "Earrings", "Necklaces", "Bangles", "Bracelets", "Pendants"]

SUGGESTED_MATERIALS = ["Gold", "Silver", "Diamond", "Platinum", "Pearl", "Rose Gold"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PACKED = "Packed"
    SHIPPED = "Shipped"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"


# ----------------------- Products -----------------------
class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1)
    category: Category
    price: int = Field(..., ge=0, description="Price in rupees")
    discount: int = Field(0, ge=0, le=100, description="Percent off")
    weight: str = ""
    material: str = ""
    size: str = ""
    description: str = ""
    image: str = ""
    rating: float = Field(0, ge=0, le=5)
    stock: int = Field(0, ge=0)
    enabled: bool = True


class Product(ProductCreate):
    id: str
    created_at: str
    updated_at: str


class ProductUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[Category] = None
    price: Optional[int] = Field(None, ge=0)
    discount: Optional[int] = Field(None, ge=0, le=100)
    weight: Optional[str] = None
    material: Optional[str] = None
    size: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    stock: Optional[int] = Field(None, ge=0)
    enabled: Optional[bool] = None


# ----------------------- Orders -----------------------
class OrderItem(CamelModel):
    """Snapshot of a product taken when it went into the cart."""

    product_id: str
    name: str
    price: float = Field(..., ge=0, description="Unit price after discount")
    discount: int = Field(0, ge=0, le=100)
    quantity: int = Field(..., ge=1)
    weight: str = ""
    image: str = ""


class Address(CamelModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., min_length=1)


class OrderCreate(CamelModel):
    items: List[OrderItem] = Field(..., min_length=1)
    address: Address
    subtotal: float = Field(..., ge=0)
    shipping: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    payment_method: Literal["online", "cod"] = "online"
    coupon_code: Optional[str] = None

    @field_validator("payment_method", mode="before")
    @classmethod
    def _razorpay_is_online(cls, v):
        # the storefront labels online payment after its gateway
        return "online" if v == "razorpay" else v


class StatusUpdate(CamelModel):
    status: OrderStatus
    tracking: Optional[str] = None
    courier_name: Optional[str] = None


class QuoteRequest(CamelModel):
    items: List[OrderItem] = Field(..., min_length=1)
    coupon_code: Optional[str] = None


# ----------------------- Auth -----------------------
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    name: str = ""


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


# ----------------------- Discounts -----------------------
class DiscountCreate(CamelModel):
    code: str = Field(..., min_length=1)
    type: Literal["percentage", "flat"]
    value: float = Field(..., gt=0)
    min_order: float = Field(0, ge=0)
    max_discount: float = Field(0, ge=0, description="Cap for percentage coupons, 0 for none")
    expiry_date: Optional[date] = None
    usage_limit: int = Field(0, ge=0, description="0 for unlimited")
    enabled: bool = True

    @field_validator("code")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def _percentage_in_range(self):
        if self.type == "percentage" and self.value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return self


class DiscountUpdate(CamelModel):
    type: Optional[Literal["percentage", "flat"]] = None
    value: Optional[float] = Field(None, gt=0)
    min_order: Optional[float] = Field(None, ge=0)
    max_discount: Optional[float] = Field(None, ge=0)
    expiry_date: Optional[date] = None
    usage_limit: Optional[int] = Field(None, ge=0)
    enabled: Optional[bool] = None
