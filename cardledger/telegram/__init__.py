"""Telegram integration helpers."""

from .aiogram_router import build_router
from .keyboards import purchase_keyboard, store_keyboard

__all__ = [
    "build_router",
    "purchase_keyboard",
    "store_keyboard",
]
