# src/handlers/__init__.py
"""Telegram handlers"""
from .user_handlers import UserHandler
from .account_handlers import AccountHandler
from .sell_handlers import SellHandler
from .checkout_handler import CheckoutHandler
from .admin_handlers import AdminHandler

__all__ = [
    'UserHandler',
    'AccountHandler',
    'SellHandler',
    'CheckoutHandler',
    'AdminHandler',
]
