# src/models/user.py
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field
from .base import TimeStampedModel
from .order import ShippingAddress
from .product import BankAccount

class User(TimeStampedModel):
    """Telegram user, buyer and seller alike"""
    user_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    payment_account: Optional[BankAccount] = None

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.username or str(self.user_id)

class AddressInput(BaseModel):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    pincode: str = Field(min_length=1)
    house: str = Field(min_length=1)
    area: str = Field(min_length=1)

    model_config = ConfigDict(str_strip_whitespace=True)

class Address(AddressInput):
    """Saved delivery address; at most one per user is the default"""
    address_id: UUID
    user_id: int
    is_default: bool = False

    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)

    def snapshot(self) -> ShippingAddress:
        return ShippingAddress(
            name=self.name,
            phone=self.phone,
            pincode=self.pincode,
            house=self.house,
            area=self.area
        )
