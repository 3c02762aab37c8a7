# src/handlers/admin_handlers.py
import io
from uuid import UUID
from telegram import Update
from telegram.ext import (
    ContextTypes, ConversationHandler, CommandHandler,
    MessageHandler, CallbackQueryHandler, filters
)
from .base_handler import BaseHandler
from ..constants import (
    LIST_PAGE_SIZE,
    REVIEW_PRICE, REVIEW_MRP, REVIEW_NOTES, REJECT_NOTES, EDIT_PRICE, EDIT_MRP
)
from ..exceptions import MarketplaceError
from ..services.lifecycle import ReviewAction, ReviewDecision
from ..services.order_service import OrderService
from ..services.product_service import ProductService
from ..services.report_service import ReportService
from ..utils.formatters import format_rupees, parse_amount

TEXT = filters.TEXT & ~filters.COMMAND

class AdminHandler(BaseHandler):
    """Review queue, repricing, reports and manual order completion"""
    def __init__(self, db, notifications=None, product_service=None, order_service=None):
        super().__init__(db, notifications)
        self.product_service = product_service or ProductService(db)
        self.order_service = order_service or OrderService(db, product_service=self.product_service)
        self.report_service = ReportService(db, self.product_service)

    async def _deny(self, update: Update) -> bool:
        if await self.is_admin(update.effective_user.id):
            return False
        if update.callback_query:
            await update.callback_query.answer()
        await self.reply(update, "⛔️ You do not have access to this section.")
        return True

    async def show_admin_menu(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if await self._deny(update):
            return
        if update.callback_query:
            await update.callback_query.answer()
        await self.reply(update, "👨‍💼 Admin panel", reply_markup=self.keyboards.admin_menu())

    async def show_queue(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        try:
            products = await self.product_service.list_review_queue(self.caller(update))
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return

        if not products:
            await query.edit_message_text("📭 Nothing waiting for review.", reply_markup=self.keyboards.back_to_admin())
            return

        await query.edit_message_text(
            f"📝 Waiting for review ({len(products)}):",
            reply_markup=self.keyboards.review_queue(products[:LIST_PAGE_SIZE])
        )

    async def show_review(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        try:
            product = await self.product_service.get_submission(
                self.caller(update), UUID(self.callback_arg(update, "review_"))
            )
        except MarketplaceError as e:
            await self.reply_error(update, e, reply_markup=self.keyboards.back_to_admin())
            return

        await query.edit_message_text(
            self.messages.format_review(product),
            reply_markup=self.keyboards.review_menu(product)
        )

    # ---- approve / reject -------------------------------------------------

    async def start_approve(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if await self._deny(update):
            return ConversationHandler.END
        query = update.callback_query
        await query.answer()

        context.user_data['review'] = {'product_id': self.callback_arg(update, "review_approve_")}
        await query.edit_message_text(
            "💰 Final selling price (₹):",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return REVIEW_PRICE

    async def handle_review_price(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        try:
            context.user_data['review']['final_price'] = parse_amount(update.message.text)
        except ValueError as e:
            await update.message.reply_text(f"❌ {e}. Try again:")
            return REVIEW_PRICE

        await update.message.reply_text("🏷 Original MRP (₹), or /skip:")
        return REVIEW_MRP

    async def handle_review_mrp(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        text = update.message.text
        if not self.is_skip(text):
            try:
                context.user_data['review']['mrp'] = parse_amount(text)
            except ValueError as e:
                await update.message.reply_text(f"❌ {e}. Try again, or /skip:")
                return REVIEW_MRP

        await update.message.reply_text("🗒 Notes for this listing, or /skip:")
        return REVIEW_NOTES

    async def handle_review_notes(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        text = update.message.text
        draft = context.user_data.pop('review')
        product_id = UUID(draft.pop('product_id'))
        decision = ReviewDecision(
            action=ReviewAction.APPROVE,
            admin_notes=None if self.is_skip(text) else text,
            **draft
        )
        return await self._decide(update, product_id, decision)

    async def start_reject(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if await self._deny(update):
            return ConversationHandler.END
        query = update.callback_query
        await query.answer()

        context.user_data['review'] = {'product_id': self.callback_arg(update, "review_reject_")}
        await query.edit_message_text(
            "🗒 Why is this item rejected? (sent to the seller, or /skip)",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return REJECT_NOTES

    async def handle_reject_notes(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        text = update.message.text
        product_id = UUID(context.user_data.pop('review')['product_id'])
        decision = ReviewDecision(
            action=ReviewAction.REJECT,
            admin_notes=None if self.is_skip(text) else text
        )
        return await self._decide(update, product_id, decision)

    async def _decide(self, update: Update, product_id: UUID, decision: ReviewDecision):
        try:
            product = await self.product_service.admin_review(self.caller(update), product_id, decision)
        except MarketplaceError as e:
            await self.reply_error(update, e, reply_markup=self.keyboards.back_to_admin())
            return ConversationHandler.END

        if product.listed_product is not None:
            text = f"✅ {product.title} is listed at {format_rupees(product.price)}."
        else:
            text = f"❌ {product.title} was rejected."
        await update.message.reply_text(text, reply_markup=self.keyboards.back_to_admin())

        if self.notifications:
            await self.notifications.review_decided(product)
        return ConversationHandler.END

    # ---- listed items -----------------------------------------------------

    async def show_listed(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if await self._deny(update):
            return
        query = update.callback_query
        await query.answer()

        products = await self.product_service.list_listed()
        if not products:
            await query.edit_message_text("Nothing is listed.", reply_markup=self.keyboards.back_to_admin())
            return

        await query.edit_message_text(
            "🛍 Listed items. Tap one to change its price:",
            reply_markup=self.keyboards.admin_listed(products[:LIST_PAGE_SIZE])
        )

    async def start_edit_price(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if await self._deny(update):
            return ConversationHandler.END
        query = update.callback_query
        await query.answer()

        context.user_data['edit'] = {'product_id': self.callback_arg(update, "edit_price_")}
        await query.edit_message_text(
            "💰 New selling price (₹):",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return EDIT_PRICE

    async def handle_edit_price(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        try:
            context.user_data['edit']['price'] = parse_amount(update.message.text)
        except ValueError as e:
            await update.message.reply_text(f"❌ {e}. Try again:")
            return EDIT_PRICE

        await update.message.reply_text("🏷 MRP (₹), or /skip to clear it:")
        return EDIT_MRP

    async def handle_edit_mrp(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        text = update.message.text
        mrp = None
        if not self.is_skip(text):
            try:
                mrp = parse_amount(text)
            except ValueError as e:
                await update.message.reply_text(f"❌ {e}. Try again, or /skip:")
                return EDIT_MRP

        draft = context.user_data.pop('edit')
        try:
            product = await self.product_service.edit_price(
                self.caller(update), UUID(draft['product_id']), draft['price'], mrp
            )
        except MarketplaceError as e:
            await self.reply_error(update, e, reply_markup=self.keyboards.back_to_admin())
            return ConversationHandler.END

        await update.message.reply_text(
            f"✅ {product.title} now sells for {format_rupees(product.price)}.",
            reply_markup=self.keyboards.back_to_admin()
        )
        return ConversationHandler.END

    # ---- sales ------------------------------------------------------------

    async def show_sold(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        try:
            sold = await self.product_service.list_sold(self.caller(update))
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return

        if not sold:
            text = "No items sold yet."
        else:
            text = "✅ Recently sold:\n\n" + "\n".join(
                f"• {p.title}: {format_rupees(p.price)}" for p in sold[:LIST_PAGE_SIZE]
            )
        await query.edit_message_text(text, reply_markup=self.keyboards.back_to_admin())

    async def send_report(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        caller = self.caller(update)
        try:
            summary = await self.report_service.get_sold_summary(caller)
            report = await self.report_service.generate_excel_report(caller)
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return

        categories = "\n".join(
            f"  • {name}: {count}" for name, count in summary['by_category'].items()
        ) or "  -"
        await query.edit_message_text(
            "📈 Sales report\n\n"
            f"Items sold: {summary['total_sold']}\n"
            f"Revenue: {format_rupees(summary['total_revenue'])}\n"
            f"By category:\n{categories}",
            reply_markup=self.keyboards.back_to_admin()
        )
        await context.bot.send_document(
            chat_id=update.effective_chat.id,
            document=io.BytesIO(report),
            filename="sales_report.xlsx"
        )

    async def complete_order(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/complete <order_id>: mark an order paid after checking the payment by hand"""
        if await self._deny(update):
            return
        if not context.args:
            await update.message.reply_text("Usage: /complete <order_id>")
            return

        try:
            order_id = UUID(context.args[0])
        except ValueError:
            await update.message.reply_text("❌ That is not a valid order id.")
            return

        try:
            result = await self.order_service.complete_order_manually(self.caller(update), order_id)
        except MarketplaceError as e:
            await self.reply_error(update, e)
            return

        text = f"✅ Order {order_id} marked paid. {len(result.updated)} item(s) sold."
        if result.is_partial:
            text += "\n⚠️ Could not mark sold:\n" + "\n".join(result.failed)
        await update.message.reply_text(text)

        if self.notifications:
            await self.notifications.payment_settled(result)

    def get_handlers(self) -> list:
        fallbacks = [
            CommandHandler('cancel', self.cancel_conversation),
            CallbackQueryHandler(self.cancel_conversation, pattern='^cancel$')
        ]

        review_conversation = ConversationHandler(
            entry_points=[
                CallbackQueryHandler(self.start_approve, pattern='^review_approve_'),
                CallbackQueryHandler(self.start_reject, pattern='^review_reject_')
            ],
            states={
                REVIEW_PRICE: [MessageHandler(TEXT, self.handle_review_price)],
                REVIEW_MRP: [
                    MessageHandler(TEXT, self.handle_review_mrp),
                    CommandHandler('skip', self.handle_review_mrp)
                ],
                REVIEW_NOTES: [
                    MessageHandler(TEXT, self.handle_review_notes),
                    CommandHandler('skip', self.handle_review_notes)
                ],
                REJECT_NOTES: [
                    MessageHandler(TEXT, self.handle_reject_notes),
                    CommandHandler('skip', self.handle_reject_notes)
                ],
            },
            fallbacks=fallbacks
        )

        edit_conversation = ConversationHandler(
            entry_points=[CallbackQueryHandler(self.start_edit_price, pattern='^edit_price_')],
            states={
                EDIT_PRICE: [MessageHandler(TEXT, self.handle_edit_price)],
                EDIT_MRP: [
                    MessageHandler(TEXT, self.handle_edit_mrp),
                    CommandHandler('skip', self.handle_edit_mrp)
                ],
            },
            fallbacks=fallbacks
        )

        return [
            review_conversation,
            edit_conversation,
            CommandHandler('admin', self.show_admin_menu),
            CommandHandler('complete', self.complete_order),
            CallbackQueryHandler(self.show_admin_menu, pattern='^admin_menu$'),
            CallbackQueryHandler(self.show_queue, pattern='^admin_queue$'),
            CallbackQueryHandler(self.show_review, pattern='^review_[0-9a-f-]{36}$'),
            CallbackQueryHandler(self.show_listed, pattern='^admin_listed$'),
            CallbackQueryHandler(self.show_sold, pattern='^admin_sold$'),
            CallbackQueryHandler(self.send_report, pattern='^admin_report$'),
        ]
