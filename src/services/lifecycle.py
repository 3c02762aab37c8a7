# src/services/lifecycle.py
"""Product status transitions.

    pending --accept_offer--> approved --admin_review--> listed --mark_sold--> sold
    pending --reject_offer--> rejected
    approved --admin_review--> rejected
    listed --edit_price--> listed

Every transition takes the current snapshot and returns a new one, or raises
ValidationError / Forbidden / InvalidState without touching its input.
Persisting the result (guarded by the status that was read) is the caller's job.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence
from uuid import UUID
from pydantic import BaseModel
from ..exceptions import Forbidden, InvalidState, ValidationError
from ..models.base import utcnow
from ..models.product import (
    AdminReview, PaymentDetails, PickupDetails, PricingType, Product,
    ProductAnalysis, ProductStatus, SellerAttributes
)
from .listing import build_listed_product, discount_percentage

class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

class ReviewDecision(BaseModel):
    """Admin input to the review step"""
    action: ReviewAction
    final_price: Optional[Decimal] = None
    mrp: Optional[Decimal] = None
    discount_percentage: Optional[int] = None
    pricing_type: PricingType = PricingType.FIXED
    admin_notes: Optional[str] = None

def _evolve(product: Product, **changes) -> Product:
    # Re-validate so the listing/status invariant is checked on every transition
    return Product.model_validate({**product.model_dump(), **changes})

def _require_status(product: Product, expected: ProductStatus, action: str):
    if product.status != expected:
        raise InvalidState(
            f"Cannot {action}: product is {product.status.value}, expected {expected.value}",
            product.status.value
        )

def _require_owner(product: Product, seller_id: int):
    if product.seller_id != seller_id:
        raise Forbidden("Only the seller can act on this submission")

def _require_positive(value: Optional[Decimal], message: str) -> Decimal:
    if value is None or value <= 0:
        raise ValidationError(message)
    return value

def submit(seller_id: int, declared: SellerAttributes, images: Sequence[str],
           analysis: ProductAnalysis, product_id: Optional[UUID] = None,
           now: Optional[datetime] = None) -> Product:
    """New submission, waiting for the seller to accept the offer"""
    if not images:
        raise ValidationError("At least one image is required")
    return Product(
        product_id=product_id or uuid.uuid4(),
        seller_id=seller_id,
        images=list(images),
        ai_analysis=analysis,
        status=ProductStatus.PENDING,
        created_at=now or utcnow(),
        **declared.model_dump()
    )

def accept_offer(product: Product, seller_id: int, pickup: Optional[PickupDetails],
                 payment: Optional[PaymentDetails], now: Optional[datetime] = None) -> Product:
    """pending -> approved, with pickup logistics and payout details attached"""
    _require_owner(product, seller_id)
    _require_status(product, ProductStatus.PENDING, "accept offer")
    if pickup is None or payment is None:
        raise ValidationError("Pickup and payment details are required")
    return _evolve(
        product,
        status=ProductStatus.APPROVED,
        pickup_details=pickup,
        payment_details=payment,
        updated_at=now or utcnow()
    )

def reject_offer(product: Product, seller_id: int, reason: Optional[str] = None,
                 now: Optional[datetime] = None) -> Product:
    """pending -> rejected by the seller"""
    _require_owner(product, seller_id)
    _require_status(product, ProductStatus.PENDING, "reject offer")
    changes = {"status": ProductStatus.REJECTED, "updated_at": now or utcnow()}
    if reason and reason.strip():
        review = product.admin_review or AdminReview()
        changes["admin_review"] = review.model_copy(
            update={"admin_notes": f"Rejected by seller: {reason.strip()}"}
        )
    return _evolve(product, **changes)

def admin_review(product: Product, reviewer_id: int, decision: ReviewDecision,
                 now: Optional[datetime] = None) -> Product:
    """approved -> listed | rejected"""
    _require_status(product, ProductStatus.APPROVED, "review")
    now = now or utcnow()

    if decision.action == ReviewAction.REJECT:
        return _evolve(
            product,
            status=ProductStatus.REJECTED,
            admin_review=AdminReview(
                admin_notes=decision.admin_notes,
                reviewed_by=reviewer_id,
                reviewed_at=now
            ),
            updated_at=now
        )

    price = _require_positive(decision.final_price, "Final price is required for approval")
    mrp = decision.mrp
    if mrp is not None:
        _require_positive(mrp, "MRP must be greater than zero")
        discount = discount_percentage(mrp, price)
    else:
        discount = decision.discount_percentage
    if discount is not None and not 0 <= discount <= 100:
        raise ValidationError("Discount percentage must be between 0 and 100")

    review = AdminReview(
        final_price=price,
        mrp=mrp,
        discount_percentage=discount,
        pricing_type=decision.pricing_type,
        admin_notes=decision.admin_notes,
        reviewed_by=reviewer_id,
        reviewed_at=now
    )
    return _evolve(
        product,
        status=ProductStatus.LISTED,
        admin_review=review,
        listed_product=build_listed_product(product, price, mrp, discount, now),
        updated_at=now
    )

def edit_price(product: Product, price: Optional[Decimal], mrp: Optional[Decimal] = None,
               now: Optional[datetime] = None) -> Product:
    """listed -> listed; admin_review and listed_product prices move together"""
    _require_status(product, ProductStatus.LISTED, "edit price")
    price = _require_positive(price, "Valid price is required")
    if mrp is not None:
        _require_positive(mrp, "MRP must be greater than zero")
    discount = discount_percentage(mrp, price)
    pricing = {"mrp": mrp, "discount_percentage": discount}

    review = product.admin_review or AdminReview()
    return _evolve(
        product,
        admin_review=review.model_copy(update={"final_price": price, **pricing}),
        listed_product=product.listed_product.model_copy(update={"price": price, **pricing}),
        updated_at=now or utcnow()
    )

def mark_sold(product: Product, now: Optional[datetime] = None) -> Product:
    """listed -> sold. Already sold products come back unchanged."""
    if product.status == ProductStatus.SOLD:
        return product
    _require_status(product, ProductStatus.LISTED, "mark sold")
    return _evolve(product, status=ProductStatus.SOLD, updated_at=now or utcnow())
