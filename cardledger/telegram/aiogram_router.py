"""Factory helpers to wire cardledger services into aiogram."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from aiogram import F, Router
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message

from ..app import LedgerApp
from ..domain.cards import CardCatalog, CardType
from ..domain.draw import RevealedCard
from ..domain.exceptions import (
    CardLedgerError,
    CardNotFoundInInventoryError,
    CompensationFailedError,
    DrawError,
    InsufficientFundsError,
    InvalidQuantityError,
    InvalidStarterTribeError,
    PriceUnavailableError,
    PurchaseLimitExceededError,
    StarterAlreadyGrantedError,
    StorageTimeoutError,
    UnknownPackError,
)
from ..domain.ledger import DailyLoginResult, InventoryItem, ProgressionOverview
from ..domain.rewards import DAILY_LOGIN_COINS, DAILY_LOGIN_XP
from ..domain.starter import StarterResult, StarterStatus
from ..domain.store import PurchaseResult, SaleItem, SaleResult, StoreListing
from .api_utils import safe_callback_answer, safe_message_answer
from .keyboards import (
    BUY_PREFIX,
    PROFILE_CALLBACK,
    STORE_CALLBACK,
    parse_buy_callback,
    purchase_keyboard,
    store_keyboard,
)

logger = logging.getLogger(__name__)

_CURRENCY_LABELS = {"coins": "moedas", "diamonds": "diamantes"}
_WINDOW_LABELS = {"daily": "hoje", "weekly": "nesta semana"}


def build_router(app: LedgerApp) -> Router:
    ensure_catalog_ready(app)

    router = Router()
    store = app.store
    ledger = app.ledger

    @router.message(Command("start", "help"))
    async def handle_help(message: Message) -> None:
        await safe_message_answer(message, render_help_message())

    @router.message(Command("packs"))
    async def handle_packs(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        listing = await store.list_packs_for_user(str(user.id))
        await safe_message_answer(
            message, format_store_listing(listing), reply_markup=store_keyboard(listing)
        )

    @router.callback_query(F.data == STORE_CALLBACK)
    async def handle_store_callback(callback: CallbackQuery) -> None:
        await safe_callback_answer(callback)
        listing = await store.list_packs_for_user(str(callback.from_user.id))
        await safe_message_answer(
            callback.message, format_store_listing(listing), reply_markup=store_keyboard(listing)
        )

    @router.message(Command("buy"))
    async def handle_buy(message: Message, command: CommandObject) -> None:
        user = message.from_user
        if not user:
            return
        parts = (command.args or "").split()
        if not parts:
            await safe_message_answer(message, "Uso: /buy <pacote> [coins|diamonds]")
            return
        pack_id = parts[0]
        currency = parts[1].lower() if len(parts) > 1 else None
        text, kwargs = await _purchase(str(user.id), pack_id, currency)
        await safe_message_answer(message, text, **kwargs)

    @router.callback_query(F.data.startswith(BUY_PREFIX))
    async def handle_buy_callback(callback: CallbackQuery) -> None:
        if not callback.data:
            return
        pack_id, currency = parse_buy_callback(callback.data)
        await safe_callback_answer(callback)
        text, kwargs = await _purchase(str(callback.from_user.id), pack_id, currency)
        await safe_message_answer(callback.message, text, **kwargs)

    @router.message(Command("sell"))
    async def handle_sell(message: Message, command: CommandObject) -> None:
        user = message.from_user
        if not user:
            return
        try:
            items = parse_sell_args(command.args)
        except ValueError as exc:
            await safe_message_answer(message, f"{exc}\nUso: /sell <tipo>:<id>[:quantidade] ...")
            return
        try:
            result = await store.sell_cards(str(user.id), items)
        except CardLedgerError as exc:
            await safe_message_answer(message, format_store_error(exc))
            return
        await safe_message_answer(message, format_sale_message(result))

    @router.message(Command("daily"))
    async def handle_daily(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        result = await ledger.register_daily_login_reward(str(user.id))
        await safe_message_answer(message, format_daily_login_message(result))

    @router.message(Command("starter"))
    async def handle_starter(message: Message, command: CommandObject) -> None:
        user = message.from_user
        if not user:
            return
        tribe = (command.args or "").strip()
        if not tribe:
            status = await app.starter.status(str(user.id))
            await safe_message_answer(message, format_starter_status(status))
            return
        try:
            result = await app.starter.choose_tribe(str(user.id), tribe)
        except CardLedgerError as exc:
            await safe_message_answer(message, format_store_error(exc))
            return
        await safe_message_answer(message, format_starter_message(result))

    @router.message(Command("profile"))
    async def handle_profile(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        overview = await ledger.overview(str(user.id))
        await safe_message_answer(
            message, format_profile_message(overview, user.username or str(user.id))
        )

    @router.callback_query(F.data == PROFILE_CALLBACK)
    async def handle_profile_callback(callback: CallbackQuery) -> None:
        await safe_callback_answer(callback)
        user = callback.from_user
        overview = await ledger.overview(str(user.id))
        await safe_message_answer(
            callback.message, format_profile_message(overview, user.username or str(user.id))
        )

    @router.message(Command("collection"))
    async def handle_collection(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        items = await ledger.inventory(str(user.id))
        await safe_message_answer(message, format_collection_message(items, app.catalog.cards))

    async def _purchase(user_id: str, pack_id: str, currency: str | None) -> tuple[str, dict]:
        try:
            result = await store.purchase_pack(user_id, pack_id, currency)
        except CardLedgerError as exc:
            logger.info("Purchase of %s by user %s rejected: %s", pack_id, user_id, exc)
            return format_store_error(exc), {}
        return format_purchase_message(result), {
            "reply_markup": purchase_keyboard(result.pack_id, currency)
        }

    return router


def ensure_catalog_ready(app: LedgerApp) -> None:
    packs = list(app.catalog.packs.iter_packs())
    if not packs:
        raise RuntimeError(
            "Nenhum pacote registrado. Use app.catalog.pack(...) ou load_catalog_from_json."
        )
    if not list(app.catalog.cards.iter_cards()):
        raise RuntimeError(
            "Catálogo de cartas vazio. Use app.catalog.card(...) ou load_catalog_from_json."
        )


def render_help_message() -> str:
    return "\n".join(
        [
            "Olá! Bem-vindo à loja de pacotes.",
            "",
            "Comandos:",
            "• /packs: ver pacotes, preços e limites",
            "• /buy <pacote> [coins|diamonds]: comprar um pacote",
            "• /sell <tipo>:<id>[:quantidade]: vender cartas da coleção",
            "• /daily: resgatar a recompensa diária",
            "• /starter [tribo]: escolher a tribo inicial e receber os pacotes iniciais",
            "• /profile: nível, XP, carteira e atividade recente",
            "• /collection: ver sua coleção",
        ]
    )


def parse_sell_args(args: str | None) -> list[SaleItem]:
    tokens = (args or "").split()
    if not tokens:
        raise ValueError("Informe ao menos uma carta para vender.")
    items: list[SaleItem] = []
    for token in tokens:
        parts = token.split(":")
        if len(parts) not in (2, 3) or not parts[1]:
            raise ValueError(f"Carta inválida: {token}")
        try:
            card_type = CardType(parts[0].lower())
        except ValueError as exc:
            raise ValueError(f"Tipo de carta inválido: {parts[0]}") from exc
        quantity = 1
        if len(parts) == 3:
            if not parts[2].isdigit() or int(parts[2]) < 1:
                raise ValueError(f"Quantidade inválida: {parts[2]}")
            quantity = int(parts[2])
        items.append(SaleItem(card_type, parts[1], quantity))
    return items


def format_store_listing(listing: StoreListing) -> str:
    lines = ["🛒 Loja de pacotes", format_wallet_line(listing.wallet.coins, listing.wallet.diamonds), ""]
    for entry in listing.packs:
        pack = entry.pack
        prices = " ou ".join(
            f"{option.price} {_CURRENCY_LABELS[option.currency.value]}" for option in entry.prices
        )
        lines.append(f"• {pack.name} ({pack.pack_id}): {pack.cards_count} cartas, {prices}")
        if pack.guaranteed_min_rarity and pack.guaranteed_count:
            lines.append(
                f"  Garantia: {pack.guaranteed_count}x {pack.guaranteed_min_rarity.value} ou melhor"
            )
        for limit in entry.limits:
            lines.append(
                f"  Limite {_WINDOW_LABELS[limit.window.value]}: "
                f"{limit.remaining_purchases}/{limit.max_purchases}"
            )
        if not entry.purchasable:
            lines.append("  ⛔ Limite atingido")
    return "\n".join(lines)


def format_purchase_message(result: PurchaseResult) -> str:
    lines = [f"🎁 Pacote {result.pack_id} aberto!"]
    lines.extend(format_revealed_card(card) for card in result.cards)
    lines.append("")
    lines.append(
        f"📈 Nível {result.progression.level} "
        f"({result.progression.xp_current_level}/{result.progression.xp_next_level} XP)"
    )
    lines.append(format_wallet_line(result.wallet.coins, result.wallet.diamonds))
    return "\n".join(lines)


def format_revealed_card(card: RevealedCard) -> str:
    name = card.display_name or card.card_id
    marker = " (repetida)" if card.is_duplicate_in_collection else " 🆕"
    return f"• {name} [{card.rarity.value}]{marker}: venda: {card.sell_value}"


def format_sale_message(result: SaleResult) -> str:
    return "\n".join(
        [
            f"💰 {result.sold_count} carta(s) vendida(s) por {result.coins_earned} moedas.",
            format_wallet_line(result.wallet.coins, result.wallet.diamonds),
        ]
    )


def format_daily_login_message(result: DailyLoginResult) -> str:
    if not result.granted:
        return "Você já resgatou a recompensa de hoje. Volte amanhã!"
    return "\n".join(
        [
            f"🎉 Recompensa diária: +{DAILY_LOGIN_XP} XP e +{DAILY_LOGIN_COINS} moedas.",
            f"📈 Nível {result.progression.level}",
            format_wallet_line(result.wallet.coins, result.wallet.diamonds),
        ]
    )


def format_starter_status(status: StarterStatus) -> str:
    if not status.requires_choice:
        return f"Tribo inicial escolhida: {status.selected_tribe}."
    options = ", ".join(status.allowed_tribes)
    return f"Escolha sua tribo inicial com /starter <tribo>. Opções: {options}."


def format_starter_message(result: StarterResult) -> str:
    lines = [f"🎁 Pacotes iniciais da tribo {result.tribe}:"]
    for pack in result.packs:
        lines.append(f"• {pack.pack_id}: {len(pack.cards)} carta(s)")
    lines.append(f"📈 Nível {result.progression.level}")
    lines.append(format_wallet_line(result.wallet.coins, result.wallet.diamonds))
    return "\n".join(lines)


def format_profile_message(overview: ProgressionOverview, display_name: str) -> str:
    progression = overview.progression
    lines = [
        f"👤 Perfil de {display_name}",
        f"📈 Nível {progression.level} "
        f"({progression.xp_current_level}/{progression.xp_next_level} XP, total {progression.xp_total})",
        format_wallet_line(overview.wallet.coins, overview.wallet.diamonds),
        f"🗃️ Cartas: {sum(item.quantity for item in overview.inventory)}",
    ]
    if overview.recent_events:
        lines.append("")
        lines.append("🧾 Atividade recente:")
        for event in overview.recent_events:
            deltas = _format_deltas(event.xp_delta, event.coins_delta, event.diamonds_delta)
            lines.append(f"  {event.created_at:%d/%m %H:%M} {event.source}{deltas}")
    return "\n".join(lines)


def format_collection_message(items: Sequence[InventoryItem], cards: CardCatalog) -> str:
    if not items:
        return "Coleção vazia. Compre pacotes com /packs."
    lines = ["📚 Coleção:"]
    for item in items:
        lines.append(
            f"• {_card_name(cards, item)} [{item.rarity.value}] "
            f"{item.card_type.value}:{item.card_id}: {item.quantity}x"
        )
    return "\n".join(lines)


def format_store_error(exc: CardLedgerError) -> str:
    if isinstance(exc, UnknownPackError):
        return "Pacote não encontrado. Use /packs para ver os disponíveis."
    if isinstance(exc, PriceUnavailableError):
        return "Este pacote não possui preço na moeda selecionada."
    if isinstance(exc, PurchaseLimitExceededError):
        windows = ", ".join(_WINDOW_LABELS.get(window, window) for window in exc.windows)
        return f"Limite de compra deste pacote atingido ({windows})."
    if isinstance(exc, InsufficientFundsError):
        label = _CURRENCY_LABELS.get(exc.currency, exc.currency)
        return f"Saldo insuficiente de {label}: você tem {exc.balance}, precisa de {exc.required}."
    if isinstance(exc, CompensationFailedError):
        return (
            "Falha ao conceder as cartas e o estorno não pôde ser registrado. "
            f"Informe o suporte com o código {exc.purchase_event_id}."
        )
    if exc.charged and exc.refunded:
        return "Falha ao conceder as cartas do pacote. A cobrança foi estornada."
    if isinstance(exc, DrawError):
        return "Este pacote está sem cartas elegíveis no momento."
    if isinstance(exc, CardNotFoundInInventoryError):
        return f"Carta {exc.card_type}:{exc.card_id} não encontrada na sua coleção."
    if isinstance(exc, InvalidQuantityError):
        return "Quantidade inválida para venda."
    if isinstance(exc, InvalidStarterTribeError):
        return f"Tribo inválida. Opções: {', '.join(exc.allowed)}."
    if isinstance(exc, StarterAlreadyGrantedError):
        return "Os pacotes iniciais já não estão disponíveis para você."
    if isinstance(exc, StorageTimeoutError):
        return "O serviço está ocupado. Tente novamente em instantes."
    return "Não foi possível concluir a operação."


def format_wallet_line(coins: int, diamonds: int) -> str:
    return f"🪙 {coins} moedas · 💎 {diamonds} diamantes"


def _format_deltas(xp: int, coins: int, diamonds: int) -> str:
    parts: Iterable[str] = (
        f"{value:+d} {label}"
        for value, label in ((xp, "XP"), (coins, "moedas"), (diamonds, "diamantes"))
        if value
    )
    text = ", ".join(parts)
    return f" ({text})" if text else ""


def _card_name(cards: CardCatalog, item: InventoryItem) -> str:
    try:
        return cards.get_card(item.card_type, item.card_id).name
    except KeyError:
        return item.card_id
