# src/utils/messages.py
from decimal import Decimal
from typing import List
from ..models.order import CartItem, Order, OrderStatus
from ..models.product import Product
from ..models.user import Address
from .formatters import format_date, format_datetime, format_rupees

class Messages:
    @staticmethod
    def format_listing(product: Product) -> str:
        """Buyer-facing view of a listed product"""
        listing = product.listed_product
        price_line = f"💰 Price: {format_rupees(listing.price)}"
        if listing.mrp is not None and listing.discount_percentage:
            price_line += f" (MRP {format_rupees(listing.mrp)}, {listing.discount_percentage}% off)"
        lines = [
            f"🏷 {listing.title}",
            f"🗂 {listing.main_category} / {listing.category}",
            f"📏 Size: {product.size or '-'}",
            price_line,
            "",
            listing.description,
        ]
        if listing.tags:
            lines.append("")
            lines.append(" ".join(f"#{tag.replace(' ', '_')}" for tag in listing.tags))
        return "\n".join(lines)

    @staticmethod
    def format_offer(product: Product) -> str:
        """Seller-facing summary of the pricing analysis"""
        report = product.ai_analysis.user_report
        suggestion = product.ai_analysis.price_suggestion
        lines = [
            f"🏷 {product.title}",
            f"💰 Our offer: {format_rupees(suggestion.suggested_price)}",
        ]
        if report is not None:
            lines.append(f"🔍 Condition: {report.condition}")
            lines.append("")
            lines.append(report.explanation)
            if report.market_comparison:
                lines.append(report.market_comparison)
        return "\n".join(lines)

    @staticmethod
    def format_review(product: Product) -> str:
        """Admin-facing view of a submission and its analysis"""
        analysis = product.ai_analysis
        image = analysis.image_analysis
        suggestion = analysis.price_suggestion
        lines = [
            f"🆔 {product.product_id}",
            f"🏷 {product.title} ({product.category.value})",
            f"📊 Status: {product.status.value}",
            f"👤 Seller: {product.seller_id}",
            f"🚻 {product.gender.value if product.gender else '-'} | "
            f"📏 {product.size or '-'} | 📅 {product.age.value if product.age else '-'} | "
            f"👕 worn {product.wear_count if product.wear_count is not None else '-'}x",
            f"🩹 Damage: {product.damage or 'None reported'}",
            "",
            f"🖼 {image.caption} ({image.quality.value}, {image.condition_score}/10)",
        ]
        if image.brand_detected:
            lines.append(f"🔤 Brand on label: {image.brand_detected}")
        if image.colors_detected:
            lines.append(f"🎨 Colours: {', '.join(image.colors_detected)}")
        lines.extend([
            "",
            f"💡 Suggested: {format_rupees(suggestion.suggested_price)} "
            f"(confidence {suggestion.confidence_score:.0%})",
            suggestion.reasoning,
            "",
            analysis.final_recommendation,
        ])
        if product.pickup_details:
            pickup = product.pickup_details
            lines.extend([
                "",
                f"🚚 Pickup: {pickup.address}, {pickup.preferred_date} {pickup.preferred_time} "
                f"({pickup.phone})"
            ])
        if product.payment_details:
            payment = product.payment_details
            payout = payment.upi_id or f"A/C {payment.bank_account.account_number[-4:].rjust(8, '•')}"
            lines.append(f"🏦 Payout: {payout}")
        return "\n".join(lines)

    @staticmethod
    def format_submission_line(product: Product) -> str:
        price = product.price or product.ai_analysis.price_suggestion.suggested_price
        return f"• {product.title}: {product.status.value} ({format_rupees(price)})"

    @staticmethod
    def format_cart(items: List[CartItem], convenience_charge: Decimal) -> str:
        if not items:
            return "🛒 Your cart is empty."
        subtotal = sum((item.total_price for item in items), Decimal(0))
        lines = ["🛒 Your cart:", ""]
        lines.extend(f"• {item.name}: {item.price}" for item in items)
        lines.extend([
            "",
            f"Subtotal: {format_rupees(subtotal)}",
            f"Convenience charge: {format_rupees(convenience_charge)}",
            f"Total: {format_rupees(subtotal + convenience_charge)}",
        ])
        return "\n".join(lines)

    @staticmethod
    def format_address(address: Address) -> str:
        marker = "⭐️ " if address.is_default else ""
        return (
            f"{marker}{address.name} ({address.phone})\n"
            f"{address.house}, {address.area} - {address.pincode}"
        )

    @staticmethod
    def format_order(order: Order) -> str:
        status_emoji = {
            OrderStatus.CREATED: "⏳",
            OrderStatus.PAID: "✅",
            OrderStatus.FAILED: "❌",
        }
        items_text = "\n".join(f"- {item.quantity}x {item.name}: {item.price}" for item in order.cart)
        text = (
            f"🛍 Order {order.order_id}\n"
            f"------------------\n"
            f"{items_text}\n"
            f"------------------\n"
            f"💰 Total: {format_rupees(order.amount)}\n"
            f"📊 Status: {status_emoji[order.status]} {order.status.value}\n"
            f"🕒 Placed: {format_datetime(order.created_at)}\n"
        )
        if order.estimated_delivery_date and order.status == OrderStatus.PAID:
            text += f"🚚 Expected by: {format_date(order.estimated_delivery_date)}\n"
        return text

    @staticmethod
    def payment_received(order: Order) -> str:
        text = (
            "✅ Payment received, thank you!\n\n"
            f"Order: {order.order_id}\n"
            f"Amount: {format_rupees(order.amount)}"
        )
        if order.estimated_delivery_date:
            text += f"\nExpected delivery: {format_date(order.estimated_delivery_date)}"
        return text

    @staticmethod
    def review_decision(product: Product) -> str:
        if product.listed_product is not None:
            return (
                f"🎉 Your {product.title} is now live at "
                f"{format_rupees(product.listed_product.price)}."
            )
        notes = product.admin_review.admin_notes if product.admin_review else None
        text = f"😔 Your {product.title} was not accepted for listing."
        if notes:
            text += f"\nReason: {notes}"
        return text

    @staticmethod
    def item_sold(product_title: str) -> str:
        return f"🎉 Your {product_title} has been sold!"
