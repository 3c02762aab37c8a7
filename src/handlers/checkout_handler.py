# src/handlers/checkout_handler.py
from decimal import Decimal
from uuid import UUID
from telegram import Update
from telegram.ext import CallbackQueryHandler, ContextTypes
from .base_handler import BaseHandler
from .user_handlers import UserHandler
from ..config import Config
from ..exceptions import MarketplaceError
from ..services.order_service import OrderService
from ..services.user_service import UserService
from ..utils.formatters import format_rupees

class CheckoutHandler(BaseHandler):
    """Cart -> address -> gateway order -> payment link"""
    def __init__(self, db, notifications=None, order_service=None):
        super().__init__(db, notifications)
        self.order_service = order_service or OrderService(db)
        self.user_service = UserService(db)

    async def start_checkout(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        items = UserHandler.get_cart(context)
        if not items:
            await query.edit_message_text("🛒 Your cart is empty.", reply_markup=self.keyboards.cart_menu(False))
            return

        addresses = await self.user_service.list_addresses(update.effective_user.id)
        if not addresses:
            await query.edit_message_text(
                "📍 Add a delivery address first.",
                reply_markup=self.keyboards.checkout_addresses([])
            )
            return

        await query.edit_message_text(
            "📍 Where should we deliver?",
            reply_markup=self.keyboards.checkout_addresses(addresses)
        )

    async def select_address(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        address_id = UUID(self.callback_arg(update, "checkout_address_"))
        try:
            address = await self.user_service.get_address(update.effective_user.id, address_id)
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return

        items = UserHandler.get_cart(context)
        total = sum((item.total_price for item in items), Decimal(0)) + Config.CONVENIENCE_CHARGE
        context.user_data['checkout_address'] = str(address.address_id)
        context.user_data['checkout_total'] = str(total)

        await query.edit_message_text(
            self.messages.format_cart(items, Config.CONVENIENCE_CHARGE)
            + "\n\n🚚 Deliver to:\n" + self.messages.format_address(address),
            reply_markup=self.keyboards.checkout_confirm()
        )

    async def confirm(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        address_id = context.user_data.get('checkout_address')
        if not address_id:
            await query.edit_message_text(
                "Please choose a delivery address first.",
                reply_markup=self.keyboards.cart_menu(True)
            )
            return

        items = UserHandler.get_cart(context)
        try:
            order = await self.order_service.create_order_session(
                update.effective_user.id,
                items,
                address_id=UUID(address_id),
                client_amount=Decimal(context.user_data['checkout_total'])
            )
        except MarketplaceError as e:
            await self.reply_error(update, e, reply_markup=self.keyboards.cart_menu(bool(items)))
            return

        for key in ('cart', 'checkout_address', 'checkout_total'):
            context.user_data.pop(key, None)

        await query.edit_message_text(
            f"🧾 Order placed for {format_rupees(order.amount)}.\n"
            "Tap below to pay. We will message you as soon as the payment is confirmed.",
            reply_markup=self.keyboards.payment_link(
                f"{Config.PUBLIC_BASE_URL}/checkout/{order.razorpay_order_id}"
            )
        )

    def get_handlers(self) -> list:
        return [
            CallbackQueryHandler(self.start_checkout, pattern='^checkout$'),
            CallbackQueryHandler(self.select_address, pattern='^checkout_address_'),
            CallbackQueryHandler(self.confirm, pattern='^checkout_confirm$'),
        ]
