"""Keyboard helpers for the store bot."""

from __future__ import annotations

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from ..domain.store import StoreListing

BUY_PREFIX = "cardledger:buy:"
STORE_CALLBACK = "cardledger:store"
PROFILE_CALLBACK = "cardledger:profile"

_CURRENCY_ICONS = {"coins": "🪙", "diamonds": "💎"}


def buy_callback_data(pack_id: str, currency: str | None = None) -> str:
    return f"{BUY_PREFIX}{pack_id}:{currency}" if currency else f"{BUY_PREFIX}{pack_id}"


def parse_buy_callback(data: str) -> tuple[str, str | None]:
    payload = data[len(BUY_PREFIX):]
    pack_id, _, currency = payload.partition(":")
    return pack_id, currency or None


def store_keyboard(listing: StoreListing) -> InlineKeyboardMarkup:
    rows: list[list[InlineKeyboardButton]] = []
    for entry in listing.packs:
        if not entry.purchasable:
            continue
        multiple = len(entry.prices) > 1
        rows.append(
            [
                InlineKeyboardButton(
                    text=f"{entry.pack.name} {_CURRENCY_ICONS[option.currency.value]} {option.price}",
                    callback_data=buy_callback_data(
                        entry.pack.pack_id, option.currency.value if multiple else None
                    ),
                )
                for option in entry.prices
            ]
        )
    rows.append([InlineKeyboardButton(text="👤 Perfil", callback_data=PROFILE_CALLBACK)])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def purchase_keyboard(pack_id: str, currency: str | None = None) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(
                    text="🔁 Comprar outro", callback_data=buy_callback_data(pack_id, currency)
                )
            ],
            [InlineKeyboardButton(text="🛒 Loja", callback_data=STORE_CALLBACK)],
        ]
    )
