# src/handlers/account_handlers.py
from uuid import UUID
from pydantic import ValidationError as PydanticValidationError
from telegram import Update
from telegram.ext import (
    ContextTypes, ConversationHandler, CommandHandler,
    MessageHandler, CallbackQueryHandler, filters
)
from .base_handler import BaseHandler
from ..constants import (
    ADDRESS_NAME, ADDRESS_PHONE, ADDRESS_PINCODE, ADDRESS_HOUSE, ADDRESS_AREA,
    PAYOUT_ACCOUNT_NUMBER, PAYOUT_IFSC, PAYOUT_HOLDER
)
from ..exceptions import MarketplaceError
from ..models.product import BankAccount
from ..models.user import AddressInput
from ..services.user_service import UserService

TEXT = filters.TEXT & ~filters.COMMAND

class AccountHandler(BaseHandler):
    """Delivery addresses and the seller payout account"""
    def __init__(self, db, notifications=None):
        super().__init__(db, notifications)
        self.user_service = UserService(db)

    async def show_addresses(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if query:
            await query.answer()

        addresses = await self.user_service.list_addresses(update.effective_user.id)
        if addresses:
            text = "🏠 Your addresses:\n\n" + "\n\n".join(
                self.messages.format_address(a) for a in addresses
            )
        else:
            text = "You have no saved addresses yet."

        await self.reply(update, text, reply_markup=self.keyboards.addresses_menu(addresses))

    async def make_default(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        address_id = UUID(self.callback_arg(update, "address_default_"))
        try:
            await self.user_service.set_default_address(update.effective_user.id, address_id)
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return
        await self.show_addresses(update, context)

    async def delete_address(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        address_id = UUID(self.callback_arg(update, "address_delete_"))
        try:
            await self.user_service.delete_address(update.effective_user.id, address_id)
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return
        await self.show_addresses(update, context)

    # ---- add address ------------------------------------------------------

    async def start_add_address(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if query:
            await query.answer()

        user = update.effective_user
        # Addresses hang off the user row
        await self.user_service.register_user(user.id, user.username, user.first_name, user.last_name)

        context.user_data['address'] = {}
        await self.reply(
            update,
            "👤 Who should receive the delivery? Send the full name.",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return ADDRESS_NAME

    async def handle_name(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['address']['name'] = update.message.text
        await update.message.reply_text("📞 Contact phone number:")
        return ADDRESS_PHONE

    async def handle_phone(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['address']['phone'] = update.message.text
        await update.message.reply_text("📮 Pincode:")
        return ADDRESS_PINCODE

    async def handle_pincode(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        pincode = update.message.text.strip()
        if not (pincode.isdigit() and len(pincode) == 6):
            await update.message.reply_text("❌ A pincode has 6 digits. Try again:")
            return ADDRESS_PINCODE
        context.user_data['address']['pincode'] = pincode
        await update.message.reply_text("🏠 House / flat number and building:")
        return ADDRESS_HOUSE

    async def handle_house(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['address']['house'] = update.message.text
        await update.message.reply_text("📍 Area, street and city:")
        return ADDRESS_AREA

    async def handle_area(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        draft = context.user_data.pop('address')
        draft['area'] = update.message.text
        try:
            data = AddressInput(**draft)
            address = await self.user_service.add_address(update.effective_user.id, data)
        except PydanticValidationError:
            await update.message.reply_text("❌ Some fields were empty. Please start again.")
            return ConversationHandler.END
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return ConversationHandler.END

        await update.message.reply_text(
            "✅ Address saved:\n\n" + self.messages.format_address(address),
            reply_markup=self.keyboards.main_menu()
        )
        return ConversationHandler.END

    # ---- payout account ---------------------------------------------------

    async def start_payout(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        await self.user_service.register_user(user.id, user.username, user.first_name, user.last_name)

        account = await self.user_service.get_payment_account(user.id)
        current = ""
        if account is not None:
            current = f"Current account ends in {account.account_number[-4:]}.\n\n"

        context.user_data['payout'] = {}
        await update.message.reply_text(
            f"🏦 {current}Send the bank account number for your payouts:",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return PAYOUT_ACCOUNT_NUMBER

    async def handle_account_number(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        number = update.message.text.strip().replace(" ", "")
        if not number.isdigit():
            await update.message.reply_text("❌ The account number should contain digits only:")
            return PAYOUT_ACCOUNT_NUMBER
        context.user_data['payout']['account_number'] = number
        await update.message.reply_text("🔢 IFSC code:")
        return PAYOUT_IFSC

    async def handle_ifsc(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['payout']['ifsc_code'] = update.message.text.strip().upper()
        await update.message.reply_text("👤 Account holder name:")
        return PAYOUT_HOLDER

    async def handle_holder(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        draft = context.user_data.pop('payout')
        draft['account_holder'] = update.message.text
        try:
            account = BankAccount(**draft)
            await self.user_service.set_payment_account(update.effective_user.id, account)
        except PydanticValidationError:
            await update.message.reply_text("❌ Some fields were empty. Please /payout again.")
            return ConversationHandler.END
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return ConversationHandler.END

        await update.message.reply_text("✅ Payout account saved.")
        return ConversationHandler.END

    def get_handlers(self) -> list:
        fallbacks = [
            CommandHandler('cancel', self.cancel_conversation),
            CallbackQueryHandler(self.cancel_conversation, pattern='^cancel$')
        ]

        address_conversation = ConversationHandler(
            entry_points=[
                CommandHandler('addaddress', self.start_add_address),
                CallbackQueryHandler(self.start_add_address, pattern='^address_add$')
            ],
            states={
                ADDRESS_NAME: [MessageHandler(TEXT, self.handle_name)],
                ADDRESS_PHONE: [MessageHandler(TEXT, self.handle_phone)],
                ADDRESS_PINCODE: [MessageHandler(TEXT, self.handle_pincode)],
                ADDRESS_HOUSE: [MessageHandler(TEXT, self.handle_house)],
                ADDRESS_AREA: [MessageHandler(TEXT, self.handle_area)],
            },
            fallbacks=fallbacks
        )

        payout_conversation = ConversationHandler(
            entry_points=[CommandHandler('payout', self.start_payout)],
            states={
                PAYOUT_ACCOUNT_NUMBER: [MessageHandler(TEXT, self.handle_account_number)],
                PAYOUT_IFSC: [MessageHandler(TEXT, self.handle_ifsc)],
                PAYOUT_HOLDER: [MessageHandler(TEXT, self.handle_holder)],
            },
            fallbacks=fallbacks
        )

        return [
            address_conversation,
            payout_conversation,
            CommandHandler('addresses', self.show_addresses),
            CallbackQueryHandler(self.show_addresses, pattern='^addresses$'),
            CallbackQueryHandler(self.make_default, pattern='^address_default_'),
            CallbackQueryHandler(self.delete_address, pattern='^address_delete_'),
        ]
