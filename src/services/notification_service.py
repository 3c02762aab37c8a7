# src/services/notification_service.py
import logging
from typing import Iterable, Optional
from uuid import UUID
from telegram import Bot
from telegram.error import TelegramError
from ..config import Config
from ..database.repositories import ProductRepository
from ..models.product import Product
from ..utils.messages import Messages
from .order_service import SettlementResult

logger = logging.getLogger(__name__)

class NotificationService:
    """Fire-and-forget bot messages; a failed send is logged and never raised"""

    def __init__(self, bot: Optional[Bot], products: ProductRepository,
                 admin_ids: Optional[Iterable[int]] = None):
        self.bot = bot
        self.products = products
        self.admin_ids = list(admin_ids if admin_ids is not None else Config.ADMIN_IDS)
        self.messages = Messages()

    async def send(self, chat_id: int, text: str, **kwargs) -> bool:
        if self.bot is None:
            logger.debug(f"No bot attached, dropping message to {chat_id}")
            return False
        try:
            await self.bot.send_message(chat_id=chat_id, text=text, **kwargs)
            return True
        except TelegramError as e:
            logger.warning(f"Could not notify {chat_id}: {e}")
            return False

    async def notify_admins(self, text: str):
        for admin_id in self.admin_ids:
            await self.send(admin_id, text)

    async def review_decided(self, product: Product):
        await self.send(product.seller_id, self.messages.review_decision(product))

    async def offer_accepted(self, product: Product):
        await self.notify_admins(f"📝 New item awaiting review: {product.title} ({product.product_id})")

    async def payment_settled(self, result: SettlementResult):
        order = result.order
        await self.send(order.user_id, self.messages.payment_received(order))

        for product_id in result.updated:
            product = await self.products.get(UUID(product_id))
            if product is not None:
                await self.send(product.seller_id, self.messages.item_sold(product.title))

        if result.is_partial:
            await self.notify_admins(
                f"⚠️ Order {order.order_id} is paid but these items could not be marked sold:\n"
                + "\n".join(result.failed)
            )
