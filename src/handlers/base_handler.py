# src/handlers/base_handler.py
import logging
from typing import Optional
from telegram import Update
from telegram.ext import ContextTypes, ConversationHandler
from ..config import Config
from ..exceptions import MarketplaceError
from ..services.authorization import AuthorizationPolicy, Caller
from ..services.notification_service import NotificationService
from ..utils.keyboards import Keyboards
from ..utils.messages import Messages

# user_data keys owned by a single conversation
CONVERSATION_KEYS = ("sell", "offer", "address", "payout", "review", "edit")

class BaseHandler:
    """Shared helpers for the Telegram handlers"""
    def __init__(self, db, notifications: Optional[NotificationService] = None):
        self.db = db
        self.keyboards = Keyboards()
        self.messages = Messages()
        self.policy = AuthorizationPolicy(Config.ADMIN_IDS)
        self.notifications = notifications
        self.logger = logging.getLogger(self.__class__.__module__)

    @staticmethod
    def caller(update: Update) -> Caller:
        user = update.effective_user
        return Caller(user_id=user.id, username=user.username)

    async def is_admin(self, user_id: int) -> bool:
        return self.policy.is_admin(Caller(user_id))

    async def reply(self, update: Update, text: str, reply_markup=None):
        """Edit the message behind a button press, or answer a typed message"""
        query = update.callback_query
        if query:
            await query.edit_message_text(text, reply_markup=reply_markup)
        else:
            await update.effective_message.reply_text(text, reply_markup=reply_markup)

    async def reply_error(self, update: Update, error: MarketplaceError, reply_markup=None):
        self.logger.info(f"Refused for {update.effective_user.id}: [{error.code}] {error.message}")
        await self.reply(update, f"❌ {error.message}", reply_markup=reply_markup)

    @staticmethod
    def callback_arg(update: Update, prefix: str) -> str:
        """'review_approve_<id>' with prefix 'review_approve_' -> '<id>'"""
        return update.callback_query.data[len(prefix):]

    @staticmethod
    def is_skip(text: Optional[str]) -> bool:
        return (text or "").strip().lower() in ("/skip", "skip", "-")

    @staticmethod
    async def cancel_conversation(update: Update, context: ContextTypes.DEFAULT_TYPE):
        for key in CONVERSATION_KEYS:
            context.user_data.pop(key, None)
        if update.callback_query:
            await update.callback_query.answer()
            await update.callback_query.edit_message_text("❌ Cancelled.")
        else:
            await update.message.reply_text("❌ Cancelled.")
        return ConversationHandler.END
