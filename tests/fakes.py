"""In-memory stand-ins for the repositories and external services.

The repositories follow the SQL in src/database/repositories.py: status
changes only apply when the stored status matches, and a miss returns None.
"""
import asyncio
import itertools
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from src.exceptions import UpstreamUnavailable
from src.models.base import utcnow
from src.models.order import MANUAL_PAYMENT_ID, Order, OrderStatus
from src.models.product import BankAccount, Product, ProductStatus
from src.models.user import Address, User
from src.services.file_service import FileService
from src.services.payment_service import GatewayOrder, to_paise
from src.services.signals import Classification, MarketReference


def _evolve(model, **changes):
    return type(model).model_validate({**model.model_dump(), **changes})


class FakeProductRepository:
    def __init__(self, products: Iterable[Product] = ()):
        self.rows: Dict[UUID, Product] = {p.product_id: p for p in products}
        self.fail_on: set = set()

    async def insert(self, product: Product) -> Product:
        self.rows[product.product_id] = product
        return product

    async def get(self, product_id: UUID) -> Optional[Product]:
        # let concurrent callers interleave between read and write
        await asyncio.sleep(0)
        return self.rows.get(product_id)

    async def save_transition(self, product: Product, expected: ProductStatus) -> Optional[Product]:
        if product.product_id in self.fail_on:
            raise RuntimeError("database unavailable")
        current = self.rows.get(product.product_id)
        if current is None or current.status != expected:
            return None
        self.rows[product.product_id] = product
        return product

    async def list_by_status(self, statuses, newest_first_by: str = "created_at") -> List[Product]:
        wanted = set(statuses)
        matches = [p for p in self.rows.values() if p.status in wanted]
        return sorted(
            matches,
            key=lambda p: getattr(p, newest_first_by) or p.created_at,
            reverse=True
        )

    async def list_by_seller(self, seller_id: int) -> List[Product]:
        matches = [p for p in self.rows.values() if p.seller_id == seller_id]
        return sorted(matches, key=lambda p: p.created_at, reverse=True)


class FakeOrderRepository:
    def __init__(self):
        self.rows: Dict[UUID, Order] = {}

    def _by_ref(self, razorpay_order_id: str) -> Optional[Order]:
        return next((o for o in self.rows.values() if o.razorpay_order_id == razorpay_order_id), None)

    async def insert(self, order: Order) -> Order:
        if self._by_ref(order.razorpay_order_id) is not None:
            raise ValueError(f"duplicate gateway order {order.razorpay_order_id}")
        self.rows[order.order_id] = order
        return order

    async def get(self, order_id: UUID) -> Optional[Order]:
        return self.rows.get(order_id)

    async def get_by_gateway_ref(self, razorpay_order_id: str) -> Optional[Order]:
        return self._by_ref(razorpay_order_id)

    async def mark_paid(self, razorpay_order_id: str, payment_id: str) -> Optional[Order]:
        order = self._by_ref(razorpay_order_id)
        if order is None:
            return None
        kept = order.razorpay_payment_id
        paid = _evolve(
            order,
            status=OrderStatus.PAID,
            razorpay_payment_id=kept if kept and kept != MANUAL_PAYMENT_ID else payment_id,
            updated_at=utcnow()
        )
        self.rows[order.order_id] = paid
        return paid

    async def mark_failed(self, razorpay_order_id: str) -> Optional[Order]:
        order = self._by_ref(razorpay_order_id)
        if order is None or order.status != OrderStatus.CREATED:
            return None
        failed = _evolve(order, status=OrderStatus.FAILED, updated_at=utcnow())
        self.rows[order.order_id] = failed
        return failed

    async def complete_manually(self, order_id: UUID) -> Optional[Order]:
        order = self.rows.get(order_id)
        if order is None or order.status not in (OrderStatus.CREATED, OrderStatus.FAILED):
            return None
        paid = _evolve(
            order,
            status=OrderStatus.PAID,
            razorpay_payment_id=MANUAL_PAYMENT_ID,
            updated_at=utcnow()
        )
        self.rows[order_id] = paid
        return paid

    async def list_by_user(self, user_id: int, limit: int = 10) -> List[Order]:
        orders = [o for o in self.rows.values() if o.user_id == user_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)[:limit]


class FakeUserRepository:
    def __init__(self):
        self.users: Dict[int, User] = {}
        self.addresses: Dict[UUID, Address] = {}

    async def upsert(self, user: User) -> User:
        current = self.users.get(user.user_id)
        if current is not None:
            user = current.model_copy(update={
                "username": user.username,
                "first_name": user.first_name,
                "last_name": user.last_name,
                "updated_at": utcnow()
            })
        self.users[user.user_id] = user
        return user

    async def get(self, user_id: int) -> Optional[User]:
        return self.users.get(user_id)

    async def set_payment_account(self, user_id: int,
                                  account: Optional[BankAccount]) -> Optional[User]:
        user = self.users.get(user_id)
        if user is None:
            return None
        user = user.model_copy(update={"payment_account": account})
        self.users[user_id] = user
        return user

    def _owned(self, user_id: int) -> List[Address]:
        return [a for a in self.addresses.values() if a.user_id == user_id]

    def _clear_default(self, user_id: int):
        for address in self._owned(user_id):
            if address.is_default:
                self.addresses[address.address_id] = address.model_copy(update={"is_default": False})

    async def list_addresses(self, user_id: int) -> List[Address]:
        return sorted(self._owned(user_id), key=lambda a: not a.is_default)

    async def get_address(self, user_id: int, address_id: UUID) -> Optional[Address]:
        address = self.addresses.get(address_id)
        return address if address is not None and address.user_id == user_id else None

    async def get_default_address(self, user_id: int) -> Optional[Address]:
        return next((a for a in self._owned(user_id) if a.is_default), None)

    async def insert_address(self, address: Address) -> Address:
        is_default = address.is_default or not self._owned(address.user_id)
        if is_default:
            self._clear_default(address.user_id)
        address = address.model_copy(update={"is_default": is_default})
        self.addresses[address.address_id] = address
        return address

    async def update_address(self, address: Address) -> Optional[Address]:
        if await self.get_address(address.user_id, address.address_id) is None:
            return None
        self.addresses[address.address_id] = address
        return address

    async def delete_address(self, user_id: int, address_id: UUID) -> bool:
        if await self.get_address(user_id, address_id) is None:
            return False
        del self.addresses[address_id]
        return True

    async def set_default_address(self, user_id: int, address_id: UUID) -> Optional[Address]:
        address = await self.get_address(user_id, address_id)
        if address is None:
            return None
        self._clear_default(user_id)
        address = address.model_copy(update={"is_default": True})
        self.addresses[address_id] = address
        return address


class FakeGateway:
    """Razorpay stand-in that hands out sequential order ids"""

    def __init__(self, available: bool = True):
        self.available = available
        self.created: List[GatewayOrder] = []
        self._ids = itertools.count(1)

    async def create_order(self, amount: Decimal, currency: str, receipt: str) -> GatewayOrder:
        if not self.available:
            raise UpstreamUnavailable("Razorpay", "timed out")
        order = GatewayOrder(id=f"order_test{next(self._ids):04d}", amount=to_paise(amount), currency=currency)
        self.created.append(order)
        return order


class FakeFileService(FileService):
    """Writes under a temporary directory and accepts any non-empty bytes"""

    def validate_image(self, content: bytes) -> str:
        if not content:
            return super().validate_image(content)
        return "image/jpeg"


async def _hang():
    await asyncio.sleep(3600)


class StubClassifier:
    def __init__(self, result: Optional[Classification] = None, hang: bool = False):
        self.result = result
        self.hang = hang
        self.calls = 0

    async def classify(self, image: bytes) -> Classification:
        self.calls += 1
        if self.hang:
            await _hang()
        if self.result is None:
            raise UpstreamUnavailable("Image classifier", "not configured")
        return self.result


class StubVision:
    def __init__(self, brand: Optional[str] = None, colors: Optional[List[str]] = None):
        self.brand = brand
        self.colors = colors or []

    async def detect_brand(self, image: bytes) -> Optional[str]:
        return self.brand

    async def detect_colors(self, image: bytes) -> List[str]:
        return self.colors


class StubMarket:
    def __init__(self, reference: Optional[MarketReference] = None, hang: bool = False):
        self.reference = reference
        self.hang = hang
        self.queries = []

    async def lookup(self, brand: str, category: str) -> Optional[MarketReference]:
        self.queries.append((brand, category))
        if self.hang:
            await _hang()
        return self.reference


class StubReasoner:
    def __init__(self, reply: Optional[str] = None, hang: bool = False):
        self.reply = reply
        self.hang = hang
        self.prompts = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.hang:
            await _hang()
        if self.reply is None:
            raise UpstreamUnavailable("Price reasoning", "not configured")
        return self.reply
