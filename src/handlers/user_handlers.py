# src/handlers/user_handlers.py
from typing import List
from uuid import UUID
from telegram import Update
from telegram.ext import CallbackQueryHandler, CommandHandler, ContextTypes
from .base_handler import BaseHandler
from ..config import Config
from ..constants import LIST_PAGE_SIZE
from ..exceptions import MarketplaceError
from ..models.order import CartItem
from ..services.order_service import OrderService
from ..services.product_service import ProductService
from ..services.user_service import UserService
from ..utils.formatters import format_rupees

HELP_TEXT = (
    "👋 ReTag lets you sell pre-loved clothes and buy them from others.\n\n"
    "/sell - price and submit an item\n"
    "/browse - see what is for sale\n"
    "/cart - your cart and checkout\n"
    "/orders - your orders\n"
    "/mysales - the items you submitted\n"
    "/addresses - delivery addresses\n"
    "/payout - bank account for your payouts\n"
    "/cancel - stop the current step"
)

class UserHandler(BaseHandler):
    """Browsing, cart and history for every user"""
    def __init__(self, db, notifications=None, product_service=None, order_service=None):
        super().__init__(db, notifications)
        self.user_service = UserService(db)
        self.product_service = product_service or ProductService(db)
        self.order_service = order_service or OrderService(db, product_service=self.product_service)

    @staticmethod
    def get_cart(context: ContextTypes.DEFAULT_TYPE) -> List[CartItem]:
        return [CartItem(**item) for item in context.user_data.get("cart", {}).values()]

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user

        await self.user_service.register_user(
            user_id=user.id,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name
        )

        await update.message.reply_text(
            f"Hi {user.first_name}! 👋\n\n"
            "Welcome to ReTag, the marketplace for pre-loved clothing.\n"
            "Use the menu below to get started.",
            reply_markup=self.keyboards.main_menu()
        )

    async def help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(HELP_TEXT)

    async def show_main_menu(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.callback_query.answer()
        await self.reply(update, "🏠 Main menu", reply_markup=self.keyboards.main_menu())

    async def browse(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if query:
            await query.answer()

        products = await self.product_service.list_listed()
        if not products:
            await self.reply(update, "Nothing is listed right now. Check back soon!",
                             reply_markup=self.keyboards.main_menu())
            return

        await self.reply(
            update,
            f"🛍 Latest listings ({min(len(products), LIST_PAGE_SIZE)} of {len(products)}):",
            reply_markup=self.keyboards.listings_menu(products[:LIST_PAGE_SIZE])
        )

    async def show_listing(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        try:
            product = await self.product_service.get_listing(UUID(self.callback_arg(update, "listing_")))
        except MarketplaceError as e:
            await self.reply_error(update, e, reply_markup=self.keyboards.main_menu())
            return

        await self.reply(
            update,
            self.messages.format_listing(product),
            reply_markup=self.keyboards.listing_menu(product)
        )

    async def add_to_cart(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query

        try:
            product = await self.product_service.get_listing(UUID(self.callback_arg(update, "cart_add_")))
        except MarketplaceError as e:
            await query.answer(f"❌ {e.message}", show_alert=True)
            return

        cart = context.user_data.setdefault("cart", {})
        key = str(product.product_id)
        if key in cart:
            await query.answer("Already in your cart")
            return

        cart[key] = CartItem(
            product_id=key,
            name=product.title,
            price=format_rupees(product.price),
            image=product.images[0]
        ).model_dump()
        await query.answer(f"🛒 Added {product.title}")

    async def view_cart(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if query:
            await query.answer()

        items = self.get_cart(context)
        await self.reply(
            update,
            self.messages.format_cart(items, Config.CONVENIENCE_CHARGE),
            reply_markup=self.keyboards.cart_menu(bool(items))
        )

    async def clear_cart(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.callback_query.answer()
        context.user_data.pop("cart", None)
        await self.reply(update, "🗑 Your cart is empty now.", reply_markup=self.keyboards.cart_menu(False))

    async def show_orders(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if query:
            await query.answer()

        orders = await self.order_service.get_user_orders(update.effective_user.id)
        if not orders:
            message = "You have not placed any orders yet."
        else:
            message = "📦 Your orders:\n\n" + "\n".join(self.messages.format_order(o) for o in orders)

        await self.reply(update, message, reply_markup=self.keyboards.main_menu())

    async def show_sales(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if query:
            await query.answer()

        products = await self.product_service.seller_submissions(update.effective_user.id)
        if not products:
            message = "You have not submitted anything yet. Use /sell to start."
        else:
            message = "🏷 Your items:\n\n" + "\n".join(
                self.messages.format_submission_line(p) for p in products
            )

        await self.reply(update, message, reply_markup=self.keyboards.main_menu())

    def get_handlers(self) -> list:
        return [
            CommandHandler("start", self.start),
            CommandHandler("help", self.help),
            CommandHandler("browse", self.browse),
            CommandHandler("cart", self.view_cart),
            CommandHandler("orders", self.show_orders),
            CommandHandler("mysales", self.show_sales),
            CallbackQueryHandler(self.show_main_menu, pattern="^main_menu$"),
            CallbackQueryHandler(self.browse, pattern="^browse$"),
            CallbackQueryHandler(self.show_listing, pattern="^listing_"),
            CallbackQueryHandler(self.add_to_cart, pattern="^cart_add_"),
            CallbackQueryHandler(self.view_cart, pattern="^cart_view$"),
            CallbackQueryHandler(self.clear_cart, pattern="^cart_clear$"),
            CallbackQueryHandler(self.show_orders, pattern="^my_orders$"),
            CallbackQueryHandler(self.show_sales, pattern="^my_sales$"),
        ]
