# src/handlers/sell_handlers.py
from uuid import UUID
from pydantic import ValidationError as PydanticValidationError
from telegram import Update
from telegram.ext import (
    ContextTypes, ConversationHandler, CommandHandler,
    MessageHandler, CallbackQueryHandler, filters
)
from .base_handler import BaseHandler
from ..constants import (
    MAX_PHOTOS,
    SELL_PHOTOS, SELL_ARTICLE, SELL_BRAND, SELL_CATEGORY, SELL_GENDER,
    SELL_SIZE, SELL_AGE, SELL_WEAR_COUNT, SELL_DAMAGE,
    OFFER_PICKUP_ADDRESS, OFFER_PICKUP_PHONE, OFFER_PICKUP_DATE, OFFER_PICKUP_TIME,
    OFFER_PAYOUT, OFFER_UPI, OFFER_DECLINE_REASON
)
from ..exceptions import MarketplaceError
from ..models.product import (
    AgeBand, Category, Gender, PaymentDetails, PickupDetails, SellerAttributes
)
from ..services.product_service import ProductService
from ..services.user_service import UserService

TEXT = filters.TEXT & ~filters.COMMAND

class SellHandler(BaseHandler):
    """Item submission and the seller's answer to our offer"""
    def __init__(self, db, notifications=None, product_service=None):
        super().__init__(db, notifications)
        self.product_service = product_service or ProductService(db)
        self.user_service = UserService(db)

    # ---- submission -------------------------------------------------------

    async def start_sell(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if query:
            await query.answer()

        context.user_data['sell'] = {'images': []}
        await self.reply(
            update,
            f"📸 Send up to {MAX_PHOTOS} photos of the item.\n"
            "A clear photo of the front and of the brand label works best.",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return SELL_PHOTOS

    async def handle_photo(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        images = context.user_data['sell']['images']
        if len(images) >= MAX_PHOTOS:
            await update.message.reply_text(
                f"You already sent {MAX_PHOTOS} photos.",
                reply_markup=self.keyboards.photos_done()
            )
            return SELL_PHOTOS

        photo_file = await update.message.photo[-1].get_file()
        images.append(bytes(await photo_file.download_as_bytearray()))

        await update.message.reply_text(
            f"✅ Photo {len(images)}/{MAX_PHOTOS} received. Send another or press Done.",
            reply_markup=self.keyboards.photos_done()
        )
        return SELL_PHOTOS

    async def photos_done(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        if not context.user_data['sell']['images']:
            await query.edit_message_text(
                "Please send at least one photo first.",
                reply_markup=self.keyboards.cancel_keyboard()
            )
            return SELL_PHOTOS

        await query.edit_message_text(
            "👕 What is the item? (e.g. T-shirt, Jeans, Hoodie)",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return SELL_ARTICLE

    async def handle_article(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['sell']['article'] = update.message.text.strip()
        await update.message.reply_text(
            "🔤 Which brand is it?",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return SELL_BRAND

    async def handle_brand(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['sell']['brand'] = update.message.text.strip()
        await update.message.reply_text("🗂 Pick a category:", reply_markup=self.keyboards.categories())
        return SELL_CATEGORY

    async def handle_category(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        context.user_data['sell']['category'] = Category(self.callback_arg(update, "sell_category_"))
        await query.edit_message_text("🚻 Who is it for?", reply_markup=self.keyboards.genders())
        return SELL_GENDER

    async def handle_gender(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        value = self.callback_arg(update, "sell_gender_")
        if value != "skip":
            context.user_data['sell']['gender'] = Gender(value)
        await query.edit_message_text(
            "📏 What size is it? (send /skip if unsure)",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return SELL_SIZE

    async def handle_size(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self.is_skip(update.message.text):
            context.user_data['sell']['size'] = update.message.text.strip()
        await update.message.reply_text(
            "📅 How long have you had it?",
            reply_markup=self.keyboards.age_bands()
        )
        return SELL_AGE

    async def handle_age(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        value = self.callback_arg(update, "sell_age_")
        if value != "skip":
            context.user_data['sell']['age'] = AgeBand(value)
        await query.edit_message_text(
            "👕 Roughly how many times has it been worn? (number, or /skip)",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return SELL_WEAR_COUNT

    async def handle_wear_count(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        text = update.message.text
        if not self.is_skip(text):
            try:
                wear_count = int(text.strip())
                if wear_count < 0:
                    raise ValueError()
            except ValueError:
                await update.message.reply_text("❌ Please send a whole number, or /skip.")
                return SELL_WEAR_COUNT
            context.user_data['sell']['wear_count'] = wear_count

        await update.message.reply_text(
            "🩹 Any damage, stains or alterations? Describe them, or /skip if none.",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return SELL_DAMAGE

    async def handle_damage(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self.is_skip(update.message.text):
            context.user_data['sell']['damage'] = update.message.text.strip()

        draft = context.user_data.pop('sell')
        images = draft.pop('images')
        try:
            declared = SellerAttributes(**draft)
        except PydanticValidationError as e:
            self.logger.info(f"Rejected submission draft from {update.effective_user.id}: {e}")
            await update.message.reply_text("❌ Some details were not valid. Please /sell again.")
            return ConversationHandler.END

        status_message = await update.message.reply_text("⏳ Analysing your item, this can take a minute...")
        try:
            product = await self.product_service.submit(self.caller(update), declared, images)
        except MarketplaceError as e:
            self.logger.info(f"Submission from {update.effective_user.id} refused: {e}")
            await status_message.edit_text(f"❌ {e.message}")
            return ConversationHandler.END

        await status_message.edit_text(
            self.messages.format_offer(product),
            reply_markup=self.keyboards.offer_menu(product.product_id)
        )
        return ConversationHandler.END

    # ---- offer ------------------------------------------------------------

    async def start_accept(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        context.user_data['offer'] = {'product_id': self.callback_arg(update, "offer_accept_")}
        await query.message.reply_text(
            "🚚 Great! Where should we pick the item up? Send the full address.",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return OFFER_PICKUP_ADDRESS

    async def handle_pickup_address(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['offer']['address'] = update.message.text
        await update.message.reply_text("📞 A phone number for the pickup:")
        return OFFER_PICKUP_PHONE

    async def handle_pickup_phone(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['offer']['phone'] = update.message.text
        await update.message.reply_text("📅 Preferred pickup date (e.g. 2024-06-01):")
        return OFFER_PICKUP_DATE

    async def handle_pickup_date(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['offer']['preferred_date'] = update.message.text
        await update.message.reply_text("🕒 Preferred time slot (e.g. 10am-1pm):")
        return OFFER_PICKUP_TIME

    async def handle_pickup_time(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['offer']['preferred_time'] = update.message.text
        saved = await self.user_service.get_payment_account(update.effective_user.id)
        await update.message.reply_text(
            "🏦 How would you like to be paid once the item sells?",
            reply_markup=self.keyboards.payout_choice(saved is not None)
        )
        return OFFER_PAYOUT

    async def handle_payout_choice(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        if query.data == "payout_upi":
            await query.edit_message_text(
                "📲 Send your UPI ID:",
                reply_markup=self.keyboards.cancel_keyboard()
            )
            return OFFER_UPI

        # Saved bank account is filled in by the service
        return await self._accept(update, context, payment=None)

    async def handle_upi(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        return await self._accept(update, context, PaymentDetails(upi_id=update.message.text.strip()))

    async def _accept(self, update: Update, context: ContextTypes.DEFAULT_TYPE, payment):
        draft = context.user_data.pop('offer')
        product_id = UUID(draft.pop('product_id'))
        try:
            pickup = PickupDetails(**draft)
        except PydanticValidationError:
            await self.reply(update, "❌ Pickup details were incomplete. Press Accept again to retry.")
            return ConversationHandler.END

        try:
            product = await self.product_service.accept_offer(self.caller(update), product_id, pickup, payment)
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return ConversationHandler.END

        await self.reply(
            update,
            "✅ Offer accepted! Our team will review the item and let you know once it is live."
        )
        if self.notifications:
            await self.notifications.offer_accepted(product)
        return ConversationHandler.END

    async def start_decline(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        context.user_data['offer'] = {'product_id': self.callback_arg(update, "offer_decline_")}
        await query.message.reply_text(
            "😔 Sorry the offer did not work for you. Tell us why, or /skip.",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return OFFER_DECLINE_REASON

    async def handle_decline_reason(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        text = update.message.text
        reason = None if self.is_skip(text) else text
        product_id = UUID(context.user_data.pop('offer')['product_id'])

        try:
            await self.product_service.reject_offer(self.caller(update), product_id, reason)
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return ConversationHandler.END

        await update.message.reply_text(
            "Thanks for letting us know. You can submit another item any time with /sell.",
            reply_markup=self.keyboards.main_menu()
        )
        return ConversationHandler.END

    def get_handlers(self) -> list:
        fallbacks = [
            CommandHandler('cancel', self.cancel_conversation),
            CallbackQueryHandler(self.cancel_conversation, pattern='^cancel$')
        ]

        sell_conversation = ConversationHandler(
            entry_points=[
                CommandHandler('sell', self.start_sell),
                CallbackQueryHandler(self.start_sell, pattern='^sell_start$')
            ],
            states={
                SELL_PHOTOS: [
                    MessageHandler(filters.PHOTO, self.handle_photo),
                    CallbackQueryHandler(self.photos_done, pattern='^sell_photos_done$')
                ],
                SELL_ARTICLE: [MessageHandler(TEXT, self.handle_article)],
                SELL_BRAND: [MessageHandler(TEXT, self.handle_brand)],
                SELL_CATEGORY: [CallbackQueryHandler(self.handle_category, pattern='^sell_category_')],
                SELL_GENDER: [CallbackQueryHandler(self.handle_gender, pattern='^sell_gender_')],
                SELL_SIZE: [
                    MessageHandler(TEXT, self.handle_size),
                    CommandHandler('skip', self.handle_size)
                ],
                SELL_AGE: [CallbackQueryHandler(self.handle_age, pattern='^sell_age_')],
                SELL_WEAR_COUNT: [
                    MessageHandler(TEXT, self.handle_wear_count),
                    CommandHandler('skip', self.handle_wear_count)
                ],
                SELL_DAMAGE: [
                    MessageHandler(TEXT, self.handle_damage),
                    CommandHandler('skip', self.handle_damage)
                ],
            },
            fallbacks=fallbacks
        )

        offer_conversation = ConversationHandler(
            entry_points=[
                CallbackQueryHandler(self.start_accept, pattern='^offer_accept_'),
                CallbackQueryHandler(self.start_decline, pattern='^offer_decline_')
            ],
            states={
                OFFER_PICKUP_ADDRESS: [MessageHandler(TEXT, self.handle_pickup_address)],
                OFFER_PICKUP_PHONE: [MessageHandler(TEXT, self.handle_pickup_phone)],
                OFFER_PICKUP_DATE: [MessageHandler(TEXT, self.handle_pickup_date)],
                OFFER_PICKUP_TIME: [MessageHandler(TEXT, self.handle_pickup_time)],
                OFFER_PAYOUT: [CallbackQueryHandler(self.handle_payout_choice, pattern='^payout_(saved|upi)$')],
                OFFER_UPI: [MessageHandler(TEXT, self.handle_upi)],
                OFFER_DECLINE_REASON: [
                    MessageHandler(TEXT, self.handle_decline_reason),
                    CommandHandler('skip', self.handle_decline_reason)
                ],
            },
            fallbacks=fallbacks
        )

        return [sell_conversation, offer_conversation]
