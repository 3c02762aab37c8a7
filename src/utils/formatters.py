# src/utils/formatters.py
from datetime import datetime
import pytz
from decimal import Decimal, InvalidOperation
from typing import Optional
from ..config import Config

def format_price(amount: Decimal) -> str:
    """1299 -> '1,299'"""
    return f"{amount:,.0f}"

def format_rupees(amount: Optional[Decimal]) -> str:
    return f"₹{format_price(amount)}" if amount is not None else "-"

def format_datetime(dt: datetime) -> str:
    """Local time in the configured timezone"""
    local_tz = pytz.timezone(Config.TIMEZONE)
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(local_tz).strftime("%Y-%m-%d %H:%M")

def format_date(dt: datetime) -> str:
    return format_datetime(dt).split(" ")[0]

def parse_amount(text: str) -> Decimal:
    """User-typed rupee amount ('₹1,299', '650') -> Decimal; ValueError if not positive"""
    cleaned = (text or "").replace("₹", "").replace(",", "").strip()
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError("Please enter a number")
    if not amount.is_finite() or amount <= 0:
        raise ValueError("Amount must be greater than zero")
    return amount
