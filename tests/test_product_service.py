import asyncio
import uuid
from decimal import Decimal
from pathlib import Path

import pytest

from src.exceptions import Forbidden, InvalidState, ProductNotFound, ValidationError
from src.models.product import PickupDetails, ProductStatus
from src.models.user import User
from src.services.lifecycle import ReviewAction, ReviewDecision
from tests.conftest import PICKUP, SELLER_ID, make_declared, make_product

PHOTO = b"\xff\xd8\xff\xe0photo-bytes"


async def test_submit_stores_pending_product_with_saved_images(product_service, product_repo, seller):
    product = await product_service.submit(seller, make_declared(), [PHOTO, PHOTO + b"2"])

    assert product.status == ProductStatus.PENDING
    assert product.seller_id == SELLER_ID
    assert product.ai_analysis.price_suggestion.suggested_price == Decimal(800)
    assert len(product.images) == 2
    assert all(Path(path).exists() for path in product.images)
    assert product_repo.rows[product.product_id] == product


async def test_submit_without_images_stores_nothing(product_service, product_repo, seller):
    with pytest.raises(ValidationError):
        await product_service.submit(seller, make_declared(), [])
    assert product_repo.rows == {}


async def test_submit_removes_images_when_insert_fails(product_service, product_repo, files, seller):
    async def broken_insert(product):
        raise RuntimeError("insert failed")
    product_repo.insert = broken_insert

    with pytest.raises(RuntimeError):
        await product_service.submit(seller, make_declared(), [PHOTO])
    assert list((files.upload_path / "products").iterdir()) == []


async def test_failed_resubmission_keeps_earlier_images(product_service, product_repo, seller):
    first = await product_service.submit(seller, make_declared(), [PHOTO])

    async def broken_insert(product):
        raise RuntimeError("insert failed")
    product_repo.insert = broken_insert

    with pytest.raises(RuntimeError):
        await product_service.submit(seller, make_declared(), [PHOTO])
    assert Path(first.images[0]).exists()


async def test_accept_offer_falls_back_to_saved_bank_account(
        product_service, product_repo, user_repo, seller, bank_account):
    pending = await product_repo.insert(make_product())
    await user_repo.upsert(User(user_id=SELLER_ID))
    await user_repo.set_payment_account(SELLER_ID, bank_account)

    product = await product_service.accept_offer(seller, pending.product_id, PICKUP)

    assert product.status == ProductStatus.APPROVED
    assert product.payment_details.bank_account == bank_account


async def test_accept_offer_without_payout_is_refused(product_service, product_repo, seller):
    pending = await product_repo.insert(make_product())
    with pytest.raises(ValidationError):
        await product_service.accept_offer(seller, pending.product_id, PICKUP)
    assert product_repo.rows[pending.product_id].status == ProductStatus.PENDING


async def test_review_requires_admin(product_service, product_repo, seller):
    approved = await product_repo.insert(make_product(ProductStatus.APPROVED))
    decision = ReviewDecision(action=ReviewAction.APPROVE, final_price=Decimal("650"))
    with pytest.raises(Forbidden):
        await product_service.admin_review(seller, approved.product_id, decision)


async def test_concurrent_reviews_have_exactly_one_winner(product_service, product_repo, admin):
    approved = await product_repo.insert(make_product(ProductStatus.APPROVED))
    approve = ReviewDecision(action=ReviewAction.APPROVE, final_price=Decimal("650"))
    reject = ReviewDecision(action=ReviewAction.REJECT, admin_notes="duplicate")

    results = await asyncio.gather(
        product_service.admin_review(admin, approved.product_id, approve),
        product_service.admin_review(admin, approved.product_id, reject),
        return_exceptions=True
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, InvalidState)]
    assert len(winners) == 1 and len(losers) == 1
    assert product_repo.rows[approved.product_id].status == winners[0].status
    assert losers[0].current_status == winners[0].status.value


async def test_edit_price_of_sold_product_is_invalid(product_service, product_repo, admin):
    sold = await product_repo.insert(make_product(ProductStatus.SOLD))
    with pytest.raises(InvalidState):
        await product_service.edit_price(admin, sold.product_id, Decimal("400"))


async def test_mark_sold_reports_each_product(product_service, product_repo):
    listed = await product_repo.insert(make_product(ProductStatus.LISTED))
    sold = await product_repo.insert(make_product(ProductStatus.SOLD))
    pending = await product_repo.insert(make_product())
    missing = uuid.uuid4()

    result = await product_service.mark_sold([listed.product_id, sold.product_id,
                                              pending.product_id, missing])

    assert result.updated == [str(listed.product_id)]
    assert result.already_sold == [str(sold.product_id)]
    assert result.failed == [str(pending.product_id), str(missing)]
    assert product_repo.rows[listed.product_id].status == ProductStatus.SOLD


async def test_mark_sold_is_idempotent(product_service, product_repo):
    listed = await product_repo.insert(make_product(ProductStatus.LISTED))

    first = await product_service.mark_sold([listed.product_id])
    second = await product_service.mark_sold([listed.product_id])

    assert first.updated == [str(listed.product_id)]
    assert second.updated == []
    assert second.already_sold == [str(listed.product_id)]


async def test_mark_sold_collects_storage_errors(product_service, product_repo):
    listed = await product_repo.insert(make_product(ProductStatus.LISTED))
    product_repo.fail_on.add(listed.product_id)

    result = await product_service.mark_sold([listed.product_id])
    assert result.failed == [str(listed.product_id)]


async def test_get_listing_hides_unlisted_products(product_service, product_repo):
    listed = await product_repo.insert(make_product(ProductStatus.LISTED))
    pending = await product_repo.insert(make_product())

    assert (await product_service.get_listing(listed.product_id)).product_id == listed.product_id
    with pytest.raises(ProductNotFound):
        await product_service.get_listing(pending.product_id)


async def test_get_submission_is_for_owner_or_admin(product_service, product_repo, seller, buyer, admin):
    pending = await product_repo.insert(make_product())

    assert (await product_service.get_submission(seller, pending.product_id)) == pending
    assert (await product_service.get_submission(admin, pending.product_id)) == pending
    with pytest.raises(Forbidden):
        await product_service.get_submission(buyer, pending.product_id)


async def test_review_queue_holds_pending_and_approved(product_service, product_repo, admin):
    pending = await product_repo.insert(make_product())
    approved = await product_repo.insert(make_product(ProductStatus.APPROVED))
    await product_repo.insert(make_product(ProductStatus.LISTED))

    queue = await product_service.list_review_queue(admin)
    assert {p.product_id for p in queue} == {pending.product_id, approved.product_id}


def test_pickup_details_must_not_be_blank():
    with pytest.raises(ValueError):
        PickupDetails(address=" ", phone="1", preferred_date="today", preferred_time="now")


async def test_sold_items_are_newest_first_and_no_longer_listed(product_service, product_repo, admin):
    older = await product_repo.insert(make_product(ProductStatus.LISTED))
    newer = await product_repo.insert(make_product(ProductStatus.LISTED))
    still_listed = await product_repo.insert(make_product(ProductStatus.LISTED))

    await product_service.mark_sold([older.product_id])
    await asyncio.sleep(0.01)
    await product_service.mark_sold([newer.product_id])

    sold = await product_service.list_sold(admin)
    listed = await product_service.list_listed()

    assert [p.product_id for p in sold] == [newer.product_id, older.product_id]
    assert [p.product_id for p in listed] == [still_listed.product_id]
    assert not {p.product_id for p in sold} & {p.product_id for p in listed}


async def test_sold_items_are_admin_only(product_service, seller):
    with pytest.raises(Forbidden):
        await product_service.list_sold(seller)
