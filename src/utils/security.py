# src/utils/security.py
import hashlib
import hmac
from typing import Optional
from ..config import Config

def payment_signature(order_ref: str, payment_ref: str, secret: Optional[str] = None) -> str:
    """HMAC-SHA256 the gateway sends for ``order_ref|payment_ref``"""
    secret = secret if secret is not None else Config.RAZORPAY_KEY_SECRET
    message = f"{order_ref}|{payment_ref}"

    return hmac.new(
        secret.encode(),
        message.encode(),
        hashlib.sha256
    ).hexdigest()

def verify_payment_signature(order_ref: str, payment_ref: str, signature: str,
                             secret: Optional[str] = None) -> bool:
    """Constant-time check of a payment confirmation signature"""
    secret = secret if secret is not None else Config.RAZORPAY_KEY_SECRET
    if not secret or not signature:
        return False

    expected = payment_signature(order_ref, payment_ref, secret)
    return hmac.compare_digest(signature.encode(), expected.encode())
