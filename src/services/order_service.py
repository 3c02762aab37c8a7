# src/services/order_service.py
"""Checkout and settlement.

A confirmed payment always leaves the order paid. Marking its products sold
comes second and is never rolled back into the payment: products that cannot
be marked are reported in a ``partial`` result for an operator to reconcile.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID
from ..config import Config
from ..database.repositories import OrderRepository, ProductRepository, UserRepository
from ..exceptions import (
    AddressNotFound, Forbidden, InvalidState, OrderNotFound, ProductNotFound,
    SignatureInvalid, ValidationError
)
from ..models.base import utcnow
from ..models.order import MANUAL_PAYMENT_ID, CartItem, Order, OrderStatus
from ..models.product import ProductStatus
from ..utils.formatters import format_price
from ..utils.security import verify_payment_signature
from .authorization import AuthorizationPolicy, Caller
from .payment_service import RazorpayGateway
from .product_service import ProductService

logger = logging.getLogger(__name__)

# Largest accepted difference between the client's total and ours
AMOUNT_TOLERANCE = Decimal(1)

PARTIAL_SETTLEMENT = "PARTIAL_SETTLEMENT"

class SettlementStatus(str, Enum):
    SETTLED = "settled"
    PARTIAL = "partial"

@dataclass
class SettlementResult:
    status: SettlementStatus
    order: Order
    updated: List[str] = field(default_factory=list)
    already_sold: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return self.status == SettlementStatus.PARTIAL

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": True,
            "status": self.status.value,
            "order_id": str(self.order.order_id),
            "razorpay_order_id": self.order.razorpay_order_id,
            "updated": self.updated,
            "already_sold": self.already_sold,
            "skipped": self.skipped,
            "failed": self.failed,
        }
        if self.is_partial:
            result["reason"] = PARTIAL_SETTLEMENT
        return result

def split_product_refs(cart: Sequence[CartItem]) -> Tuple[List[UUID], List[str]]:
    """Persisted product ids (UUIDs) and static catalogue ids, in cart order"""
    persisted, static = [], []
    for item in cart:
        try:
            product_id = UUID(item.product_id)
        except ValueError:
            if item.product_id not in static:
                static.append(item.product_id)
            continue
        if product_id not in persisted:
            persisted.append(product_id)
    return persisted, static

class OrderService:
    def __init__(self, db, gateway: Optional[RazorpayGateway] = None,
                 product_service: Optional[ProductService] = None,
                 orders: Optional[OrderRepository] = None,
                 users: Optional[UserRepository] = None,
                 policy: Optional[AuthorizationPolicy] = None,
                 secret: Optional[str] = None,
                 convenience_charge: Optional[Decimal] = None):
        self.db = db
        self.product_service = product_service or ProductService(db)
        self.products: ProductRepository = self.product_service.products
        self.orders = orders or OrderRepository(db)
        self.users = users or UserRepository(db)
        self.gateway = gateway or RazorpayGateway()
        self.policy = policy or AuthorizationPolicy(Config.ADMIN_IDS)
        self.secret = secret if secret is not None else Config.RAZORPAY_KEY_SECRET
        self.convenience_charge = (
            convenience_charge if convenience_charge is not None else Config.CONVENIENCE_CHARGE
        )

    async def _price_cart(self, cart: Sequence[CartItem]) -> Tuple[List[CartItem], Decimal]:
        """Cart with server-side prices for persisted items, and its subtotal"""
        priced, subtotal = [], Decimal(0)
        seen = set()
        for item in cart:
            try:
                product_id = UUID(item.product_id)
            except ValueError:
                product_id = None

            if product_id is None:
                if item.unit_price <= 0:
                    raise ValidationError(f"Invalid price for {item.name}", {"product_id": item.product_id})
                priced.append(item)
                subtotal += item.total_price
                continue

            if product_id in seen:
                raise ValidationError(
                    "The same item appears twice in the cart",
                    {"product_id": str(product_id)}
                )
            seen.add(product_id)

            product = await self.products.get(product_id)
            if product is None:
                raise ProductNotFound(product_id)
            if product.status != ProductStatus.LISTED:
                raise InvalidState(f"{product.title} is no longer available", product.status.value)
            if item.quantity != 1:
                raise ValidationError(f"Only one {product.title} is available")

            item = item.model_copy(update={
                "name": product.title,
                "price": f"₹{format_price(product.price)}",
                "image": item.image or product.images[0]
            })
            priced.append(item)
            subtotal += product.price
        return priced, subtotal

    async def create_order_session(self, user_id: int, cart: Sequence[CartItem],
                                   address_id: Optional[UUID] = None,
                                   client_amount: Optional[Decimal] = None) -> Order:
        """Price the cart, open a gateway order and store the order as created"""
        if not cart:
            raise ValidationError("Cart is empty")

        priced, subtotal = await self._price_cart(cart)
        amount = subtotal + self.convenience_charge
        if client_amount is not None and abs(Decimal(client_amount) - amount) > AMOUNT_TOLERANCE:
            raise ValidationError(
                "Order amount does not match the cart total",
                {"expected": str(amount), "received": str(client_amount)}
            )

        if address_id is not None:
            address = await self.users.get_address(user_id, address_id)
            if address is None:
                raise AddressNotFound(address_id)
        else:
            address = await self.users.get_default_address(user_id)
            if address is None:
                raise ValidationError("No delivery address selected")

        order_id = uuid.uuid4()
        gateway_order = await self.gateway.create_order(
            amount, Config.CURRENCY, receipt=f"rcpt_{order_id.hex[:16]}"
        )

        now = utcnow()
        order = Order(
            order_id=order_id,
            user_id=user_id,
            address=address.snapshot(),
            cart=priced,
            amount=amount,
            status=OrderStatus.CREATED,
            razorpay_order_id=gateway_order.id,
            estimated_delivery_date=now + timedelta(days=Config.DELIVERY_DAYS),
            created_at=now
        )
        stored = await self.orders.insert(order)
        logger.info(
            f"Order {stored.order_id} created for user {user_id}: "
            f"₹{amount} ({gateway_order.id})"
        )
        return stored

    async def verify_payment(self, order_ref: str, payment_ref: str,
                             signature: str) -> SettlementResult:
        """Settle a gateway confirmation. Safe to repeat for the same payment."""
        if not verify_payment_signature(order_ref, payment_ref, signature, self.secret):
            logger.warning(f"Rejected payment confirmation for {order_ref}: bad signature")
            raise SignatureInvalid(order_ref)

        order = await self.orders.get_by_gateway_ref(order_ref)
        if order is None:
            raise OrderNotFound(order_ref)

        paid = await self.orders.mark_paid(order_ref, payment_ref)
        if paid is None:
            raise OrderNotFound(order_ref)
        if order.razorpay_payment_id == MANUAL_PAYMENT_ID:
            logger.info(f"Order {paid.order_id} was completed manually; recording gateway payment {payment_ref}")
        elif order.status == OrderStatus.PAID:
            logger.info(f"Order {paid.order_id} was already paid; re-settling products")

        return await self._settle_products(paid)

    async def _settle_products(self, order: Order) -> SettlementResult:
        persisted, static = split_product_refs(order.cart)
        sold = await self.product_service.mark_sold(persisted)

        result = SettlementResult(
            status=SettlementStatus.PARTIAL if sold.failed else SettlementStatus.SETTLED,
            order=order,
            updated=sold.updated,
            already_sold=sold.already_sold,
            skipped=static,
            failed=sold.failed
        )
        if result.is_partial:
            logger.error(
                f"Partial settlement of order {order.order_id}: "
                f"could not mark {', '.join(sold.failed)} as sold"
            )
        else:
            logger.info(
                f"Order {order.order_id} settled: {len(sold.updated)} sold, "
                f"{len(sold.already_sold)} already sold, {len(static)} skipped"
            )
        return result

    async def mark_payment_failed(self, order_ref: str) -> Order:
        """created -> failed; any other status is left as it is"""
        order = await self.orders.get_by_gateway_ref(order_ref)
        if order is None:
            raise OrderNotFound(order_ref)

        failed = await self.orders.mark_failed(order_ref)
        if failed is None:
            return await self.orders.get_by_gateway_ref(order_ref) or order

        logger.info(f"Payment failed for order {failed.order_id}")
        return failed

    async def complete_order_manually(self, caller: Caller, order_id: UUID) -> SettlementResult:
        """Admin override: created|failed -> paid without a gateway confirmation"""
        self.policy.require_admin(caller)
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if order.status == OrderStatus.PAID:
            raise InvalidState(f"Order {order_id} is already paid", OrderStatus.PAID.value)

        completed = await self.orders.complete_manually(order_id)
        if completed is None:
            current = await self.orders.get(order_id)
            status = current.status.value if current else None
            raise InvalidState(f"Order {order_id} is now {status}", status)

        logger.info(f"Admin {caller.user_id} completed order {order_id} manually")
        return await self._settle_products(completed)

    async def get_order(self, caller: Caller, order_id: UUID) -> Order:
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if order.user_id != caller.user_id and not self.policy.is_admin(caller):
            raise Forbidden("Only the buyer or an admin can view this order")
        return order

    async def get_order_by_gateway_ref(self, order_ref: str) -> Order:
        order = await self.orders.get_by_gateway_ref(order_ref)
        if order is None:
            raise OrderNotFound(order_ref)
        return order

    async def get_user_orders(self, user_id: int, limit: int = 10) -> List[Order]:
        return await self.orders.list_by_user(user_id, limit)
