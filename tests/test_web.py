import logging
import uuid
from decimal import Decimal

import httpx
import pytest

from src.exceptions import (
    Forbidden, InvalidState, MarketplaceError, ProductNotFound, SignatureInvalid,
    UpstreamUnavailable, ValidationError
)
from src.models.order import CartItem
from src.models.product import ProductStatus
from src.services.notification_service import NotificationService
from src.utils.security import payment_signature
from src.web.app import WebState, create_app
from src.web.errors import status_code_for
from tests.conftest import BUYER_ID, SECRET, make_product


@pytest.fixture
async def listed(product_repo):
    return await product_repo.insert(make_product(ProductStatus.LISTED, price=Decimal("650")))


@pytest.fixture
async def order(order_service, listed, buyer_address):
    cart = [CartItem(product_id=str(listed.product_id), name="tee", price="₹650")]
    return await order_service.create_order_session(BUYER_ID, cart)


@pytest.fixture
async def client(order_service, product_service, product_repo):
    app = create_app(WebState(
        order_service=order_service,
        product_service=product_service,
        notifications=NotificationService(None, product_repo, admin_ids=[]),
        razorpay_key_id="rzp_test_key"
    ))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.parametrize("error,status", [
    (ValidationError("bad"), 400),
    (SignatureInvalid("order_1"), 400),
    (Forbidden(), 403),
    (ProductNotFound("x"), 404),
    (InvalidState("sold", "sold"), 409),
    (UpstreamUnavailable("Razorpay"), 502),
    (MarketplaceError("boom"), 500),
])
def test_status_codes(error, status):
    assert status_code_for(error) == status


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_listings_only_show_listed_products(client, product_repo, listed):
    await product_repo.insert(make_product())

    response = await client.get("/listings")
    listings = response.json()["listings"]

    assert [item["product_id"] for item in listings] == [str(listed.product_id)]
    assert listings[0]["price"] == "650"
    assert listings[0]["main_category"] == "Men"


async def test_missing_listing_envelope(client):
    product_id = uuid.uuid4()
    response = await client.get(f"/listings/{product_id}")

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "PRODUCT_NOT_FOUND",
        "message": f"Product {product_id} not found",
        "details": {"product_id": str(product_id)},
    }


async def test_checkout_page_embeds_gateway_order(client, order):
    response = await client.get(f"/checkout/{order.razorpay_order_id}")

    assert response.status_code == 200
    assert "checkout.razorpay.com/v1/checkout.js" in response.text
    assert order.razorpay_order_id in response.text
    assert "rzp_test_key" in response.text
    assert "₹679" in response.text


async def test_checkout_page_for_unknown_order(client):
    response = await client.get("/checkout/order_missing")
    assert response.status_code == 404
    assert response.json()["error"] == "ORDER_NOT_FOUND"


async def test_verify_payment_settles_order(client, order, listed, product_repo):
    response = await client.post("/payments/verify", json={
        "razorpay_order_id": order.razorpay_order_id,
        "razorpay_payment_id": "pay_001",
        "razorpay_signature": payment_signature(order.razorpay_order_id, "pay_001", SECRET),
    })

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["status"] == "settled"
    assert body["updated"] == [str(listed.product_id)]
    assert product_repo.rows[listed.product_id].status == ProductStatus.SOLD

    page = await client.get(f"/checkout/{order.razorpay_order_id}")
    assert "Already paid" in page.text


async def test_verify_payment_with_bad_signature(client, order):
    response = await client.post("/payments/verify", json={
        "order_id": order.razorpay_order_id,
        "payment_id": "pay_001",
        "signature": "forged",
    })

    assert response.status_code == 400
    assert response.json()["error"] == "SIGNATURE_INVALID"


async def test_verify_payment_requires_all_fields(client, order):
    response = await client.post("/payments/verify", json={"order_id": order.razorpay_order_id})
    assert response.status_code == 422


async def test_payment_failure_is_recorded(client, order, order_repo):
    response = await client.post("/payments/failed", json={"order_id": order.razorpay_order_id})

    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert order_repo.rows[order.order_id].status.value == "failed"


async def test_payment_failure_report_is_logged(client, order, caplog):
    caplog.set_level(logging.INFO, logger="src.web.app")

    await client.post("/payments/failed", json={"order_id": order.razorpay_order_id})

    assert f"Payment failure for {order.razorpay_order_id} reported by" in caplog.text
