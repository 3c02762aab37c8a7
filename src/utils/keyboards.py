# src/utils/keyboards.py
from typing import List
from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from ..models.product import AgeBand, Category, Gender, Product
from ..models.user import Address
from .formatters import format_rupees

class Keyboards:
    @staticmethod
    def main_menu() -> InlineKeyboardMarkup:
        keyboard = [
            [InlineKeyboardButton("🛍 Browse listings", callback_data="browse")],
            [InlineKeyboardButton("🛒 My cart", callback_data="cart_view")],
            [InlineKeyboardButton("👕 Sell an item", callback_data="sell_start")],
            [InlineKeyboardButton("📦 My orders", callback_data="my_orders"),
             InlineKeyboardButton("🏷 My sales", callback_data="my_sales")],
            [InlineKeyboardButton("🏠 Addresses", callback_data="addresses")]
        ]
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def admin_menu() -> InlineKeyboardMarkup:
        keyboard = [
            [InlineKeyboardButton("📝 Review queue", callback_data="admin_queue")],
            [InlineKeyboardButton("🛍 Listed items", callback_data="admin_listed"),
             InlineKeyboardButton("✅ Sold items", callback_data="admin_sold")],
            [InlineKeyboardButton("📈 Sales report", callback_data="admin_report")],
            [InlineKeyboardButton("🏠 Main menu", callback_data="main_menu")]
        ]
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def cancel_keyboard() -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup([[InlineKeyboardButton("❌ Cancel", callback_data="cancel")]])

    @staticmethod
    def listings_menu(products: List[Product]) -> InlineKeyboardMarkup:
        keyboard = [
            [InlineKeyboardButton(
                f"{product.title} ({format_rupees(product.price)})",
                callback_data=f"listing_{product.product_id}"
            )]
            for product in products
        ]
        keyboard.append([InlineKeyboardButton("🏠 Main menu", callback_data="main_menu")])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def listing_menu(product: Product) -> InlineKeyboardMarkup:
        keyboard = [
            [InlineKeyboardButton("🛒 Add to cart", callback_data=f"cart_add_{product.product_id}")],
            [InlineKeyboardButton("⬅️ Back", callback_data="browse"),
             InlineKeyboardButton("🏠 Main menu", callback_data="main_menu")]
        ]
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def cart_menu(has_items: bool) -> InlineKeyboardMarkup:
        keyboard = []
        if has_items:
            keyboard.append([InlineKeyboardButton("💳 Checkout", callback_data="checkout")])
            keyboard.append([InlineKeyboardButton("🗑 Empty cart", callback_data="cart_clear")])
        keyboard.append([InlineKeyboardButton("🛍 Browse listings", callback_data="browse")])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def checkout_addresses(addresses: List[Address]) -> InlineKeyboardMarkup:
        keyboard = [
            [InlineKeyboardButton(
                f"{'⭐️ ' if address.is_default else ''}{address.name}, {address.pincode}",
                callback_data=f"checkout_address_{address.address_id}"
            )]
            for address in addresses
        ]
        keyboard.append([InlineKeyboardButton("➕ New address", callback_data="address_add")])
        keyboard.append([InlineKeyboardButton("❌ Cancel", callback_data="cart_view")])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def checkout_confirm() -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup([
            [InlineKeyboardButton("✅ Place order", callback_data="checkout_confirm")],
            [InlineKeyboardButton("❌ Cancel", callback_data="cart_view")]
        ])

    @staticmethod
    def payment_link(url: str) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup([[InlineKeyboardButton("💳 Pay now", url=url)]])

    @staticmethod
    def addresses_menu(addresses: List[Address]) -> InlineKeyboardMarkup:
        keyboard = []
        for address in addresses:
            row = []
            if not address.is_default:
                row.append(InlineKeyboardButton(
                    f"⭐️ Default: {address.name}",
                    callback_data=f"address_default_{address.address_id}"
                ))
            row.append(InlineKeyboardButton(
                f"🗑 {address.name}",
                callback_data=f"address_delete_{address.address_id}"
            ))
            keyboard.append(row)
        keyboard.append([InlineKeyboardButton("➕ Add address", callback_data="address_add")])
        keyboard.append([InlineKeyboardButton("🏠 Main menu", callback_data="main_menu")])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def enum_choices(prefix: str, values, columns: int = 3,
                     skip: bool = False) -> InlineKeyboardMarkup:
        buttons = [
            InlineKeyboardButton(value.value, callback_data=f"{prefix}_{value.value}")
            for value in values
        ]
        keyboard = [buttons[i:i + columns] for i in range(0, len(buttons), columns)]
        if skip:
            keyboard.append([InlineKeyboardButton("⏭ Skip", callback_data=f"{prefix}_skip")])
        keyboard.append([InlineKeyboardButton("❌ Cancel", callback_data="cancel")])
        return InlineKeyboardMarkup(keyboard)

    @classmethod
    def categories(cls) -> InlineKeyboardMarkup:
        return cls.enum_choices("sell_category", Category)

    @classmethod
    def genders(cls) -> InlineKeyboardMarkup:
        return cls.enum_choices("sell_gender", Gender, columns=2, skip=True)

    @classmethod
    def age_bands(cls) -> InlineKeyboardMarkup:
        return cls.enum_choices("sell_age", AgeBand, columns=4, skip=True)

    @staticmethod
    def photos_done() -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup([
            [InlineKeyboardButton("✅ Done", callback_data="sell_photos_done")],
            [InlineKeyboardButton("❌ Cancel", callback_data="cancel")]
        ])

    @staticmethod
    def offer_menu(product_id) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup([
            [InlineKeyboardButton("✅ Accept offer", callback_data=f"offer_accept_{product_id}"),
             InlineKeyboardButton("❌ Decline", callback_data=f"offer_decline_{product_id}")]
        ])

    @staticmethod
    def payout_choice(has_saved_account: bool) -> InlineKeyboardMarkup:
        keyboard = []
        if has_saved_account:
            keyboard.append([InlineKeyboardButton("🏦 Saved bank account", callback_data="payout_saved")])
        keyboard.append([InlineKeyboardButton("📲 UPI ID", callback_data="payout_upi")])
        keyboard.append([InlineKeyboardButton("❌ Cancel", callback_data="cancel")])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def review_queue(products: List[Product]) -> InlineKeyboardMarkup:
        keyboard = [
            [InlineKeyboardButton(
                f"[{product.status.value}] {product.title}",
                callback_data=f"review_{product.product_id}"
            )]
            for product in products
        ]
        keyboard.append([InlineKeyboardButton("🔙 Admin menu", callback_data="admin_menu")])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def review_menu(product: Product) -> InlineKeyboardMarkup:
        keyboard = [
            [InlineKeyboardButton("✅ Approve", callback_data=f"review_approve_{product.product_id}"),
             InlineKeyboardButton("❌ Reject", callback_data=f"review_reject_{product.product_id}")],
            [InlineKeyboardButton("🔙 Review queue", callback_data="admin_queue")]
        ]
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def admin_listed(products: List[Product]) -> InlineKeyboardMarkup:
        keyboard = [
            [InlineKeyboardButton(
                f"✏️ {product.title} ({format_rupees(product.price)})",
                callback_data=f"edit_price_{product.product_id}"
            )]
            for product in products
        ]
        keyboard.append([InlineKeyboardButton("🔙 Admin menu", callback_data="admin_menu")])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def back_to_admin() -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup([[InlineKeyboardButton("🔙 Admin menu", callback_data="admin_menu")]])
