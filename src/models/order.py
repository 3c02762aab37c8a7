# src/models/order.py
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field, model_validator
from .base import TimeStampedModel

class OrderStatus(str, Enum):
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"

# Payment reference recorded when an admin completes an order by hand
MANUAL_PAYMENT_ID = "manual_verification"

_PRICE_CHARS = re.compile(r"[^\d.]")

def parse_display_price(value: str) -> Decimal:
    """'₹1,299' -> Decimal('1299')"""
    try:
        return Decimal(_PRICE_CHARS.sub("", value or "") or "0")
    except InvalidOperation:
        raise ValueError(f"Invalid price: {value!r}")

class CartItem(BaseModel):
    """Individual line of a checkout cart"""
    product_id: str
    name: str
    price: str  # display string, e.g. "₹650"
    quantity: int = Field(default=1, ge=1)
    image: Optional[str] = None

    @property
    def unit_price(self) -> Decimal:
        return parse_display_price(self.price)

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

class ShippingAddress(BaseModel):
    """Address snapshot copied into the order at checkout"""
    name: str
    phone: str
    pincode: str
    house: str
    area: str

class Order(TimeStampedModel):
    """A buyer's checkout attempt"""
    order_id: UUID
    user_id: int
    address: ShippingAddress
    cart: List[CartItem]
    amount: Decimal
    status: OrderStatus = OrderStatus.CREATED
    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _payment_id_iff_paid(self):
        if (self.razorpay_payment_id is not None) != (self.status == OrderStatus.PAID):
            raise ValueError("razorpay_payment_id must be set exactly when the order is paid")
        return self
