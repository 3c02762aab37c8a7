# src/models/product.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, model_validator
from .base import TimeStampedModel

class ProductStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    LISTED = "listed"
    SOLD = "sold"

# Statuses that carry a public listing snapshot
LISTING_STATUSES = frozenset({ProductStatus.LISTED, ProductStatus.SOLD})

class Category(str, Enum):
    TOPS = "Tops"
    BOTTOMS = "Bottoms"
    DRESSES = "Dresses"
    OUTERWEAR = "Outerwear"
    FOOTWEAR = "Footwear"
    ACCESSORIES = "Accessories"
    BAGS = "Bags"
    JEWELRY = "Jewelry"
    ACTIVEWEAR = "Activewear"
    FORMAL = "Formal"
    CASUAL = "Casual"
    OTHER = "Other"

class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    KIDS = "kids"
    UNISEX = "unisex"

class AgeBand(str, Enum):
    """How long the seller has owned the item, in years"""
    UNDER_ONE = "<1"
    ONE_TO_TWO = "1-2"
    TWO_TO_THREE = "2-3"
    OVER_THREE = ">3"

class Quality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

class PricingType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"

class SellerAttributes(BaseModel):
    """What the seller declares about the item at submission"""
    article: str = Field(min_length=1)
    brand: str = Field(min_length=1)
    category: Category
    gender: Optional[Gender] = None
    size: Optional[str] = None
    age: Optional[AgeBand] = None
    wear_count: Optional[int] = Field(default=None, ge=0)
    damage: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)

class ImageAnalysis(BaseModel):
    caption: str
    quality: Quality
    category: str
    brand_detected: Optional[str] = None
    colors_detected: Optional[List[str]] = None
    condition_score: int = Field(ge=1, le=10)
    features: List[str] = []

class PriceSuggestion(BaseModel):
    suggested_price: Decimal = Field(gt=0)
    reasoning: str = Field(min_length=1)
    market_comparison: str
    confidence_score: float = Field(ge=0, le=1)
    factors: List[str]

class UserReport(BaseModel):
    """Plain-language summary shown to the seller"""
    condition: str
    suggested_price: Decimal
    explanation: str
    market_comparison: Optional[str] = None

class ProductAnalysis(BaseModel):
    """Pricing pipeline output, frozen once stored with the product"""
    image_analysis: ImageAnalysis
    price_suggestion: PriceSuggestion
    final_recommendation: str
    user_report: Optional[UserReport] = None

    model_config = ConfigDict(frozen=True)

class AdminReview(BaseModel):
    final_price: Optional[Decimal] = None
    mrp: Optional[Decimal] = None
    discount_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    pricing_type: PricingType = PricingType.FIXED
    admin_notes: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None

class PickupDetails(BaseModel):
    address: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    preferred_date: str = Field(min_length=1)
    preferred_time: str = Field(min_length=1)

    model_config = ConfigDict(str_strip_whitespace=True)

class BankAccount(BaseModel):
    account_number: str = Field(min_length=1)
    ifsc_code: str = Field(min_length=1)
    account_holder: str = Field(min_length=1)

    model_config = ConfigDict(str_strip_whitespace=True)

class PaymentDetails(BaseModel):
    """Where the seller gets paid once the item sells"""
    upi_id: Optional[str] = None
    bank_account: Optional[BankAccount] = None

    @model_validator(mode="after")
    def _require_one_method(self):
        if not self.upi_id and self.bank_account is None:
            raise ValueError("either upi_id or bank_account is required")
        return self

class ListedProduct(BaseModel):
    """Public, buyer-visible representation of an approved product"""
    title: str
    description: str
    price: Decimal
    mrp: Optional[Decimal] = None
    discount_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    category: str
    tags: List[str] = []
    listed_at: datetime
    main_category: str

class Product(TimeStampedModel):
    """Seller's item under consideration for sale"""
    product_id: UUID
    seller_id: int
    article: str
    brand: str
    category: Category
    gender: Optional[Gender] = None
    size: Optional[str] = None
    age: Optional[AgeBand] = None
    wear_count: Optional[int] = None
    damage: Optional[str] = None
    images: List[str] = Field(min_length=1)
    ai_analysis: ProductAnalysis
    status: ProductStatus = ProductStatus.PENDING
    admin_review: Optional[AdminReview] = None
    pickup_details: Optional[PickupDetails] = None
    payment_details: Optional[PaymentDetails] = None
    listed_product: Optional[ListedProduct] = None

    @model_validator(mode="after")
    def _listing_matches_status(self):
        has_listing = self.listed_product is not None
        if has_listing != (self.status in LISTING_STATUSES):
            raise ValueError(
                f"listed_product must exist exactly when status is listed or sold (status={self.status.value})"
            )
        return self

    @property
    def title(self) -> str:
        return f"{self.brand} {self.article}"

    @property
    def price(self) -> Optional[Decimal]:
        """Current selling price, if the product is on the market"""
        return self.listed_product.price if self.listed_product else None
