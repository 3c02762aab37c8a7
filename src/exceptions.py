"""
Error taxonomy for the marketplace services.

Services raise these; the Telegram handlers turn them into chat replies and
the web app renders ``to_dict()`` as the response body.

    try:
        await product_service.admin_review(caller, product_id, decision)
    except InvalidState as e:
        logger.info(f"Review refused: {e}")
"""

from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""

    def __init__(
        self,
        message: str,
        code: str = "MARKETPLACE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "success": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return self.message


class ValidationError(MarketplaceError):
    """Malformed or missing input. Nothing was changed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


# ============================================================
# Not found
# ============================================================

class NotFound(MarketplaceError):
    def __init__(self, message: str, code: str = "NOT_FOUND", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, details)


class ProductNotFound(NotFound):
    def __init__(self, product_id: Any):
        super().__init__(
            f"Product {product_id} not found",
            "PRODUCT_NOT_FOUND",
            {"product_id": str(product_id)},
        )


class OrderNotFound(NotFound):
    def __init__(self, order_ref: Any):
        super().__init__(
            f"Order {order_ref} not found",
            "ORDER_NOT_FOUND",
            {"order_ref": str(order_ref)},
        )


class AddressNotFound(NotFound):
    def __init__(self, address_id: Any):
        super().__init__(
            f"Address {address_id} not found",
            "ADDRESS_NOT_FOUND",
            {"address_id": str(address_id)},
        )


class UserNotFound(NotFound):
    def __init__(self, user_id: Any):
        super().__init__(
            f"User {user_id} not found",
            "USER_NOT_FOUND",
            {"user_id": str(user_id)},
        )


# ============================================================
# Authorization and state
# ============================================================

class Forbidden(MarketplaceError):
    """Caller lacks the admin role or does not own the record."""

    def __init__(self, message: str = "You are not allowed to do this"):
        super().__init__(message, "FORBIDDEN")


class InvalidState(MarketplaceError):
    """Operation is not legal for the record's current status."""

    def __init__(self, message: str, current_status: Optional[str] = None):
        details = {"current_status": current_status} if current_status else None
        super().__init__(message, "INVALID_STATE", details)
        self.current_status = current_status


# ============================================================
# External services
# ============================================================

class UpstreamUnavailable(MarketplaceError):
    """An external service failed, timed out or is not configured."""

    def __init__(self, service: str, reason: str = "unavailable"):
        super().__init__(
            f"{service} {reason}",
            "UPSTREAM_UNAVAILABLE",
            {"service": service, "reason": reason},
        )
        self.service = service


class SignatureInvalid(MarketplaceError):
    """Payment confirmation did not carry a valid gateway signature."""

    def __init__(self, order_ref: str):
        super().__init__(
            "Payment verification failed - signature mismatch",
            "SIGNATURE_INVALID",
            {"order_ref": order_ref},
        )
