# src/services/product_service.py
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence
from uuid import UUID
from ..config import Config
from ..database.repositories import ProductRepository, UserRepository
from ..exceptions import Forbidden, InvalidState, ProductNotFound, ValidationError
from ..models.product import (
    PaymentDetails, PickupDetails, Product, ProductStatus, SellerAttributes
)
from . import lifecycle
from .authorization import AuthorizationPolicy, Caller
from .file_service import FileService
from .lifecycle import ReviewDecision
from .pricing import PricingPipeline

logger = logging.getLogger(__name__)

@dataclass
class MarkSoldResult:
    updated: List[str] = field(default_factory=list)
    already_sold: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

class ProductService:
    def __init__(self, db, pipeline: Optional[PricingPipeline] = None,
                 files: Optional[FileService] = None,
                 policy: Optional[AuthorizationPolicy] = None,
                 products: Optional[ProductRepository] = None,
                 users: Optional[UserRepository] = None):
        self.db = db
        self.products = products or ProductRepository(db)
        self.users = users or UserRepository(db)
        self.pipeline = pipeline or PricingPipeline()
        self.files = files or FileService()
        self.policy = policy or AuthorizationPolicy(Config.ADMIN_IDS)

    async def _load(self, product_id: UUID) -> Product:
        product = await self.products.get(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    async def _commit(self, before: Product, after: Product) -> Product:
        """Persist ``after`` only if ``before.status`` is still the stored status"""
        stored = await self.products.save_transition(after, before.status)
        if stored is None:
            current = await self.products.get(before.product_id)
            if current is None:
                raise ProductNotFound(before.product_id)
            raise InvalidState(
                f"Product {before.product_id} is now {current.status.value}",
                current.status.value
            )
        return stored

    async def submit(self, caller: Caller, declared: SellerAttributes,
                     images: Sequence[bytes]) -> Product:
        """Price a new submission and store it as pending"""
        if not images:
            raise ValidationError("At least one image is required")
        for content in images:
            self.files.validate_image(content)

        # Nothing is stored until the analysis is complete
        analysis = await self.pipeline.analyze(images, declared)

        paths = await self.files.save_images(images)
        try:
            product = lifecycle.submit(caller.user_id, declared, paths, analysis)
            stored = await self.products.insert(product)
        except Exception:
            self.files.delete_files(paths)
            raise

        logger.info(
            f"Submission {stored.product_id} from {caller.user_id}: "
            f"{stored.title} offered at ₹{analysis.price_suggestion.suggested_price}"
        )
        return stored

    async def accept_offer(self, caller: Caller, product_id: UUID,
                           pickup: Optional[PickupDetails],
                           payment: Optional[PaymentDetails] = None) -> Product:
        product = await self._load(product_id)
        if payment is None:
            user = await self.users.get(caller.user_id)
            if user and user.payment_account:
                payment = PaymentDetails(bank_account=user.payment_account)

        updated = lifecycle.accept_offer(product, caller.user_id, pickup, payment)
        stored = await self._commit(product, updated)
        logger.info(f"Seller {caller.user_id} accepted the offer for {product_id}")
        return stored

    async def reject_offer(self, caller: Caller, product_id: UUID,
                           reason: Optional[str] = None) -> Product:
        product = await self._load(product_id)
        updated = lifecycle.reject_offer(product, caller.user_id, reason)
        stored = await self._commit(product, updated)
        logger.info(f"Seller {caller.user_id} rejected the offer for {product_id}")
        return stored

    async def admin_review(self, caller: Caller, product_id: UUID,
                           decision: ReviewDecision) -> Product:
        self.policy.require_admin(caller)
        product = await self._load(product_id)
        updated = lifecycle.admin_review(product, caller.user_id, decision)
        stored = await self._commit(product, updated)
        logger.info(f"Admin {caller.user_id} {decision.action.value}d {product_id}")
        return stored

    async def edit_price(self, caller: Caller, product_id: UUID, price: Optional[Decimal],
                         mrp: Optional[Decimal] = None) -> Product:
        self.policy.require_admin(caller)
        product = await self._load(product_id)
        updated = lifecycle.edit_price(product, price, mrp)
        stored = await self._commit(product, updated)
        logger.info(f"Admin {caller.user_id} repriced {product_id} to ₹{price}")
        return stored

    async def mark_sold(self, product_ids: Iterable[UUID]) -> MarkSoldResult:
        """listed -> sold for each id; already sold ones are reported, not failed.

        Never raises: settlement has already taken the money, so every
        per-product problem is collected into ``failed`` instead.
        """
        result = MarkSoldResult()
        for product_id in product_ids:
            key = str(product_id)
            try:
                product = await self.products.get(product_id)
                if product is None:
                    logger.error(f"Cannot mark {key} sold: product not found")
                    result.failed.append(key)
                    continue
                if product.status == ProductStatus.SOLD:
                    result.already_sold.append(key)
                    continue

                updated = lifecycle.mark_sold(product)
                stored = await self.products.save_transition(updated, ProductStatus.LISTED)
                if stored is not None:
                    result.updated.append(key)
                    continue

                current = await self.products.get(product_id)
                if current is not None and current.status == ProductStatus.SOLD:
                    result.already_sold.append(key)
                else:
                    result.failed.append(key)
            except InvalidState as e:
                logger.error(f"Cannot mark {key} sold: {e}")
                result.failed.append(key)
            except Exception as e:
                logger.error(f"Error marking {key} sold: {e}", exc_info=True)
                result.failed.append(key)
        return result

    async def list_listed(self) -> List[Product]:
        return await self.products.list_by_status([ProductStatus.LISTED])

    async def list_review_queue(self, caller: Caller) -> List[Product]:
        self.policy.require_admin(caller)
        return await self.products.list_by_status([ProductStatus.PENDING, ProductStatus.APPROVED])

    async def list_sold(self, caller: Caller) -> List[Product]:
        self.policy.require_admin(caller)
        return await self.products.list_by_status([ProductStatus.SOLD], newest_first_by="updated_at")

    async def seller_submissions(self, seller_id: int) -> List[Product]:
        return await self.products.list_by_seller(seller_id)

    async def get_submission(self, caller: Caller, product_id: UUID) -> Product:
        product = await self._load(product_id)
        if product.seller_id != caller.user_id and not self.policy.is_admin(caller):
            raise Forbidden("Only the seller or an admin can view this submission")
        return product

    async def get_listing(self, product_id: UUID) -> Product:
        """A product buyers can see; anything not listed is reported as missing"""
        product = await self._load(product_id)
        if product.status != ProductStatus.LISTED:
            raise ProductNotFound(product_id)
        return product
