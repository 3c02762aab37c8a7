from decimal import Decimal

import pytest

from src.exceptions import (
    Forbidden, InvalidState, OrderNotFound, SignatureInvalid, UpstreamUnavailable, ValidationError
)
from src.models.order import MANUAL_PAYMENT_ID, CartItem, OrderStatus
from src.models.product import ProductStatus
from src.services.order_service import PARTIAL_SETTLEMENT, SettlementStatus, split_product_refs
from src.utils.security import payment_signature
from tests.conftest import BUYER_ID, SECRET, make_product

STATIC_ITEM = CartItem(product_id="static-tee-01", name="ReTag gift card", price="₹300")


def cart_item(product, price="₹1"):
    return CartItem(product_id=str(product.product_id), name="stale name", price=price)


def sign(order, payment_id="pay_001"):
    return payment_signature(order.razorpay_order_id, payment_id, SECRET)


@pytest.fixture
async def listed(product_repo):
    return await product_repo.insert(make_product(ProductStatus.LISTED, price=Decimal("650")))


@pytest.fixture
async def order(order_service, listed, buyer_address):
    return await order_service.create_order_session(BUYER_ID, [cart_item(listed), STATIC_ITEM])


def test_split_product_refs_dedupes_and_separates():
    item = CartItem(product_id="5f0c6a8e-3c44-4a9e-9d53-0c1e8f2d7b11", name="a", price="₹1")
    persisted, static = split_product_refs([item, STATIC_ITEM, item, STATIC_ITEM])
    assert [str(p) for p in persisted] == [item.product_id]
    assert static == ["static-tee-01"]


async def test_order_session_prices_cart_on_the_server(order, gateway, listed):
    assert order.status == OrderStatus.CREATED
    assert order.amount == Decimal("979")  # 650 + 300 + 29
    assert order.cart[0].name == "Nike T-shirt"
    assert order.cart[0].price == "₹650"
    assert order.address.name == "Asha"
    assert order.estimated_delivery_date > order.created_at
    assert gateway.created[0].amount == 97900
    assert order.razorpay_order_id == gateway.created[0].id


async def test_client_total_within_a_rupee_is_accepted(order_service, listed, buyer_address):
    order = await order_service.create_order_session(
        BUYER_ID, [cart_item(listed)], client_amount=Decimal("679.50")
    )
    assert order.amount == Decimal("679")


async def test_client_total_mismatch_is_rejected(order_service, gateway, order_repo, listed, buyer_address):
    with pytest.raises(ValidationError) as exc:
        await order_service.create_order_session(BUYER_ID, [cart_item(listed)], client_amount=Decimal("600"))

    assert exc.value.details == {"expected": "679", "received": "600"}
    assert gateway.created == []
    assert order_repo.rows == {}


async def test_empty_cart_is_rejected(order_service, buyer_address):
    with pytest.raises(ValidationError):
        await order_service.create_order_session(BUYER_ID, [])


async def test_unavailable_product_cannot_be_ordered(order_service, product_repo, buyer_address):
    pending = await product_repo.insert(make_product())
    with pytest.raises(InvalidState):
        await order_service.create_order_session(BUYER_ID, [cart_item(pending)])


async def test_persisted_item_quantity_is_one(order_service, listed, buyer_address):
    item = cart_item(listed).model_copy(update={"quantity": 2})
    with pytest.raises(ValidationError):
        await order_service.create_order_session(BUYER_ID, [item])


async def test_repeated_item_is_rejected(order_service, gateway, order_repo, listed, buyer_address):
    with pytest.raises(ValidationError) as exc:
        await order_service.create_order_session(BUYER_ID, [cart_item(listed), cart_item(listed)])

    assert exc.value.details == {"product_id": str(listed.product_id)}
    assert gateway.created == []
    assert order_repo.rows == {}


async def test_order_needs_an_address(order_service, listed):
    with pytest.raises(ValidationError):
        await order_service.create_order_session(BUYER_ID, [cart_item(listed)])


async def test_gateway_failure_stores_no_order(order_service, gateway, order_repo, listed, buyer_address):
    gateway.available = False
    with pytest.raises(UpstreamUnavailable):
        await order_service.create_order_session(BUYER_ID, [cart_item(listed)])
    assert order_repo.rows == {}


async def test_verified_payment_settles_mixed_cart(order_service, order_repo, product_repo, order, listed):
    result = await order_service.verify_payment(order.razorpay_order_id, "pay_001", sign(order))

    assert result.status == SettlementStatus.SETTLED
    assert result.updated == [str(listed.product_id)]
    assert result.skipped == ["static-tee-01"]
    assert result.failed == []
    assert order_repo.rows[order.order_id].status == OrderStatus.PAID
    assert order_repo.rows[order.order_id].razorpay_payment_id == "pay_001"
    assert product_repo.rows[listed.product_id].status == ProductStatus.SOLD

    body = result.to_dict()
    assert body["success"] is True
    assert body["status"] == "settled"
    assert "reason" not in body


async def test_bad_signature_changes_nothing(order_service, order_repo, product_repo, order, listed):
    with pytest.raises(SignatureInvalid):
        await order_service.verify_payment(order.razorpay_order_id, "pay_001", "0" * 64)

    assert order_repo.rows[order.order_id].status == OrderStatus.CREATED
    assert product_repo.rows[listed.product_id].status == ProductStatus.LISTED


async def test_signature_for_another_payment_is_rejected(order_service, order):
    with pytest.raises(SignatureInvalid):
        await order_service.verify_payment(order.razorpay_order_id, "pay_002", sign(order, "pay_001"))


async def test_unknown_order_is_not_found(order_service):
    signature = payment_signature("order_missing", "pay_001", SECRET)
    with pytest.raises(OrderNotFound):
        await order_service.verify_payment("order_missing", "pay_001", signature)


async def test_duplicate_confirmation_is_idempotent(order_service, order_repo, order, listed):
    await order_service.verify_payment(order.razorpay_order_id, "pay_001", sign(order))
    again = await order_service.verify_payment(order.razorpay_order_id, "pay_001", sign(order))

    assert again.status == SettlementStatus.SETTLED
    assert again.updated == []
    assert again.already_sold == [str(listed.product_id)]
    assert order_repo.rows[order.order_id].razorpay_payment_id == "pay_001"


async def test_partial_settlement_keeps_the_payment(order_service, order_repo, product_repo, order, listed):
    product_repo.fail_on.add(listed.product_id)

    result = await order_service.verify_payment(order.razorpay_order_id, "pay_001", sign(order))

    assert result.is_partial
    assert result.failed == [str(listed.product_id)]
    assert order_repo.rows[order.order_id].status == OrderStatus.PAID
    assert result.to_dict()["reason"] == PARTIAL_SETTLEMENT


async def test_failed_payment_can_still_be_confirmed(order_service, order_repo, order):
    failed = await order_service.mark_payment_failed(order.razorpay_order_id)
    assert failed.status == OrderStatus.FAILED

    result = await order_service.verify_payment(order.razorpay_order_id, "pay_001", sign(order))
    assert result.order.status == OrderStatus.PAID


async def test_failure_report_does_not_undo_payment(order_service, order):
    await order_service.verify_payment(order.razorpay_order_id, "pay_001", sign(order))
    after = await order_service.mark_payment_failed(order.razorpay_order_id)
    assert after.status == OrderStatus.PAID


async def test_manual_completion(order_service, order_repo, product_repo, order, listed, admin):
    result = await order_service.complete_order_manually(admin, order.order_id)

    assert result.order.razorpay_payment_id == MANUAL_PAYMENT_ID
    assert result.updated == [str(listed.product_id)]
    assert product_repo.rows[listed.product_id].status == ProductStatus.SOLD

    with pytest.raises(InvalidState):
        await order_service.complete_order_manually(admin, order.order_id)


async def test_gateway_payment_replaces_manual_reference(order_service, order_repo, order, listed, admin):
    await order_service.complete_order_manually(admin, order.order_id)

    result = await order_service.verify_payment(order.razorpay_order_id, "pay_001", sign(order))

    assert order_repo.rows[order.order_id].razorpay_payment_id == "pay_001"
    assert result.already_sold == [str(listed.product_id)]


async def test_manual_completion_requires_admin(order_service, order, buyer):
    with pytest.raises(Forbidden):
        await order_service.complete_order_manually(buyer, order.order_id)


async def test_orders_are_visible_to_buyer_and_admin(order_service, order, buyer, seller, admin):
    assert (await order_service.get_order(buyer, order.order_id)).order_id == order.order_id
    assert (await order_service.get_order(admin, order.order_id)).order_id == order.order_id
    with pytest.raises(Forbidden):
        await order_service.get_order(seller, order.order_id)
    assert [o.order_id for o in await order_service.get_user_orders(BUYER_ID)] == [order.order_id]
