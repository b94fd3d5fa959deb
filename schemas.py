"""
Database Schemas for the Order & Auth API

Each top-level Pydantic model below represents a MongoDB collection.
Collection name is lowercase of the class name.
- User -> "user"
- Order -> "order"

Request bodies live here too so every handler validates against the same
definitions.
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from database import utcnow

OrderStatus = Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled"]
ORDER_STATUSES = get_args(OrderStatus)

Role = Literal["admin", "user"]
ROLES = get_args(Role)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# Orders

class FreeText(BaseModel):
    """Free-text fields: numbers sent by clients are stored as their string form."""

    model_config = ConfigDict(coerce_numbers_to_str=True)


class BillingDetails(FreeText):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    def is_empty(self) -> bool:
        return not any((self.name, self.phone, self.address))


class OrderedProduct(FreeText):
    image: Optional[str] = None
    name: Optional[str] = None
    price: Optional[str] = Field(None, description="Price as displayed, kept as text")
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: Union[int, float] = 1


class ShippingInfo(FreeText):
    type: Optional[str] = None
    cost: Optional[str] = None


class OrderSummary(FreeText):
    subtotal: Optional[str] = None
    total: Optional[str] = None
    paymentMethod: Optional[str] = None


class Order(BaseModel):
    billingDetails: BillingDetails
    orderedProducts: List[OrderedProduct] = Field(..., min_length=1)
    shippingInfo: Optional[ShippingInfo] = None
    summary: Optional[OrderSummary] = None
    status: OrderStatus = Field("Pending", description="Any status may follow any other")
    orderDate: datetime = Field(default_factory=utcnow, description="Set once at creation")

    @field_validator("orderDate")
    @classmethod
    def normalize_order_date(cls, v):
        return _naive_utc(v)


class OrderCreate(BaseModel):
    """Body of POST /api/orders. Required parts are checked by the handler."""

    billingDetails: Optional[BillingDetails] = None
    orderedProducts: List[OrderedProduct] = Field(default_factory=list)
    shippingInfo: Optional[ShippingInfo] = None
    summary: Optional[OrderSummary] = None
    status: OrderStatus = "Pending"
    orderDate: Optional[datetime] = None

    @field_validator("orderDate")
    @classmethod
    def normalize_order_date(cls, v):
        return _naive_utc(v)


class OrderUpdate(BaseModel):
    """Body of PUT /api/orders/{id}. orderDate cannot be changed."""

    billingDetails: Optional[BillingDetails] = None
    orderedProducts: Optional[List[OrderedProduct]] = None
    shippingInfo: Optional[ShippingInfo] = None
    summary: Optional[OrderSummary] = None
    status: Optional[OrderStatus] = None


class StatusUpdate(BaseModel):
    newStatus: Optional[str] = None


# Users

class User(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Unique email address, lowercased")
    password_hash: str = Field(..., description="bcrypt hash, never serialized to clients")
    role: Role = Field("user", description="Role: admin or user")
    created_at: datetime = Field(default_factory=utcnow)


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class LoginRequest(BaseModel):
    # Plain str so a malformed address fails like any other bad credential
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()
