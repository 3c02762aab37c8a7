from decimal import Decimal

import pytest

from src.models.product import (
    BankAccount, Category, Gender, PaymentDetails, PickupDetails, ProductAnalysis, ProductStatus,
    SellerAttributes
)
from src.models.user import AddressInput, User
from src.services import lifecycle
from src.services.authorization import AuthorizationPolicy, Caller
from src.services.lifecycle import ReviewAction, ReviewDecision
from src.services.order_service import OrderService
from src.services.pricing import (
    PricingPipeline, build_image_analysis, build_user_report, fallback_price_suggestion,
    final_recommendation
)
from src.services.product_service import ProductService
from src.services.user_service import UserService
from tests.fakes import (
    FakeFileService, FakeGateway, FakeOrderRepository, FakeProductRepository,
    FakeUserRepository, StubClassifier, StubMarket, StubReasoner, StubVision
)

ADMIN_ID = 1
SELLER_ID = 100
BUYER_ID = 200
SECRET = "test_secret"


def make_declared(**overrides) -> SellerAttributes:
    fields = dict(article="T-shirt", brand="Nike", category=Category.TOPS, gender=Gender.MALE, size="M")
    fields.update(overrides)
    return SellerAttributes(**fields)


def make_analysis(brand: str = "Nike") -> ProductAnalysis:
    image_analysis = build_image_analysis(None, "Tops")
    suggestion = fallback_price_suggestion(brand, None)
    return ProductAnalysis(
        image_analysis=image_analysis,
        price_suggestion=suggestion,
        final_recommendation=final_recommendation(suggestion),
        user_report=build_user_report(image_analysis, suggestion, brand, None)
    )


PICKUP = PickupDetails(address="12 MG Road", phone="9999999999", preferred_date="2024-06-01",
                       preferred_time="10am-1pm")
PAYOUT = PaymentDetails(upi_id="seller@upi")


def make_product(status: ProductStatus = ProductStatus.PENDING, seller_id: int = SELLER_ID,
                 price: Decimal = Decimal("650"), mrp=None, **declared):
    """A product walked through the real transitions up to ``status``"""
    product = lifecycle.submit(seller_id, make_declared(**declared), ["uploads/products/a.jpg"], make_analysis())
    if status == ProductStatus.PENDING:
        return product
    if status == ProductStatus.REJECTED:
        return lifecycle.reject_offer(product, seller_id)

    product = lifecycle.accept_offer(product, seller_id, PICKUP, PAYOUT)
    if status == ProductStatus.APPROVED:
        return product

    product = lifecycle.admin_review(
        product, ADMIN_ID, ReviewDecision(action=ReviewAction.APPROVE, final_price=price, mrp=mrp)
    )
    if status == ProductStatus.LISTED:
        return product
    return lifecycle.mark_sold(product)


@pytest.fixture
def admin():
    return Caller(ADMIN_ID, "admin")


@pytest.fixture
def seller():
    return Caller(SELLER_ID, "seller")


@pytest.fixture
def buyer():
    return Caller(BUYER_ID, "buyer")


@pytest.fixture
def policy():
    return AuthorizationPolicy([ADMIN_ID])


@pytest.fixture
def product_repo():
    return FakeProductRepository()


@pytest.fixture
def order_repo():
    return FakeOrderRepository()


@pytest.fixture
def user_repo():
    return FakeUserRepository()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def pipeline():
    return PricingPipeline(
        classifier=StubClassifier(),
        vision=StubVision(),
        market=StubMarket(),
        reasoner=StubReasoner(),
        timeout=0.1
    )


@pytest.fixture
def files(tmp_path):
    return FakeFileService(tmp_path)


@pytest.fixture
def product_service(pipeline, files, policy, product_repo, user_repo):
    return ProductService(
        db=None,
        pipeline=pipeline,
        files=files,
        policy=policy,
        products=product_repo,
        users=user_repo
    )


@pytest.fixture
def order_service(gateway, product_service, order_repo, user_repo, policy):
    return OrderService(
        db=None,
        gateway=gateway,
        product_service=product_service,
        orders=order_repo,
        users=user_repo,
        policy=policy,
        secret=SECRET,
        convenience_charge=Decimal(29)
    )


@pytest.fixture
def user_service(user_repo):
    return UserService(db=None, users=user_repo)


@pytest.fixture
async def buyer_address(user_repo, user_service):
    """Registered buyer with one (default) delivery address"""
    await user_repo.upsert(User(user_id=BUYER_ID, first_name="Asha"))
    return await user_service.add_address(BUYER_ID, AddressInput(
        name="Asha", phone="9876543210", pincode="560001", house="Flat 4B", area="Indiranagar"
    ))


@pytest.fixture
def bank_account():
    return BankAccount(account_number="001234567890", ifsc_code="HDFC0001234", account_holder="Ravi")
