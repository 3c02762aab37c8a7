# src/bot.py
import asyncio
import logging
from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes
from .config import Config
from .database.database import Database
from .database.repositories import ProductRepository
from .handlers import (
    UserHandler,
    AccountHandler,
    SellHandler,
    CheckoutHandler,
    AdminHandler
)
from .handlers.base_handler import BaseHandler
from .services.notification_service import NotificationService
from .services.order_service import OrderService
from .services.product_service import ProductService
from .web.app import WebServer, WebState, create_app

logger = logging.getLogger(__name__)

class ReTagBot:
    def __init__(self):
        """Wire the database, services, Telegram handlers and web app together"""
        self.db = Database()
        self.application = Application.builder().token(Config.TELEGRAM_TOKEN).build()
        self.notifications = NotificationService(self.application.bot, ProductRepository(self.db))

        self.product_service = ProductService(self.db)
        self.order_service = OrderService(self.db, product_service=self.product_service)

        self.web = WebServer(create_app(WebState(
            order_service=self.order_service,
            product_service=self.product_service,
            notifications=self.notifications,
            razorpay_key_id=Config.RAZORPAY_KEY_ID,
            currency=Config.CURRENCY
        )))
        self._stop_event = asyncio.Event()
        self.setup_handlers()

    def setup_handlers(self):
        """Register the Telegram handlers"""
        services = {
            "product_service": self.product_service,
            "order_service": self.order_service,
        }
        handlers = [
            # Conversations first so their text steps win over plain commands
            SellHandler(self.db, self.notifications, product_service=self.product_service),
            AccountHandler(self.db, self.notifications),
            AdminHandler(self.db, self.notifications, **services),
            CheckoutHandler(self.db, self.notifications, order_service=self.order_service),
            UserHandler(self.db, self.notifications, **services),
        ]
        for handler in handlers:
            self.application.add_handlers(handler.get_handlers())

        # /cancel outside a conversation
        self.application.add_handler(CommandHandler("cancel", BaseHandler.cancel_conversation))
        self.application.add_error_handler(self.error_handler)

    @staticmethod
    async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
        logger.error("Error while handling an update", exc_info=context.error)
        if isinstance(update, Update) and update.effective_message:
            await update.effective_message.reply_text("⚠️ Something went wrong. Please try again.")

    async def start(self):
        """Run polling and the web app in the current event loop until stopped"""
        await self.db.connect()
        try:
            async with self.application:
                await self.web.start()
                await self.application.start()
                await self.application.updater.start_polling(allowed_updates=Update.ALL_TYPES)
                logger.info("Bot is running")
                try:
                    await self._stop_event.wait()
                finally:
                    await self.application.updater.stop()
                    await self.application.stop()
                    await self.web.stop()
        finally:
            await self.db.close()

    def stop(self):
        self._stop_event.set()
