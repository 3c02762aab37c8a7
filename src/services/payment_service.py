# src/services/payment_service.py
import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
import aiohttp
from ..config import Config
from ..exceptions import UpstreamUnavailable
from .listing import round_half_up

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class GatewayOrder:
    """Order session created at the payment gateway"""
    id: str
    amount: int  # paise
    currency: str

def to_paise(amount: Decimal) -> int:
    return round_half_up(amount * 100)

class RazorpayGateway:
    """Razorpay Orders API over REST"""

    NAME = "Razorpay"
    BASE_URL = "https://api.razorpay.com/v1"

    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.key_id = key_id if key_id is not None else Config.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else Config.RAZORPAY_KEY_SECRET
        self.timeout = timeout if timeout is not None else Config.GATEWAY_TIMEOUT

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def create_order(self, amount: Decimal, currency: str, receipt: str) -> GatewayOrder:
        if not self.configured:
            raise UpstreamUnavailable(self.NAME, "not configured")

        body = {
            "amount": to_paise(amount),
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1
        }
        try:
            async with aiohttp.ClientSession(
                auth=aiohttp.BasicAuth(self.key_id, self.key_secret),
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as session:
                async with session.post(f"{self.BASE_URL}/orders", json=body) as response:
                    if response.status >= 300:
                        text = await response.text()
                        logger.error(f"Razorpay order creation failed ({response.status}): {text}")
                        raise UpstreamUnavailable(self.NAME, f"returned HTTP {response.status}")
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise UpstreamUnavailable(self.NAME, f"request failed: {e}")
        except asyncio.TimeoutError:
            raise UpstreamUnavailable(self.NAME, "timed out")

        try:
            return GatewayOrder(id=data["id"], amount=int(data["amount"]), currency=data["currency"])
        except (KeyError, TypeError, ValueError):
            raise UpstreamUnavailable(self.NAME, "returned an unexpected payload")
