"""Store operations: listing, purchasing and selling cards."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AbstractSet, Iterable

from ..storage.base import LedgerEventRecord, LedgerSession
from .cards import CardKey, CardType, CatalogProvider
from .draw import RarityDrawEngine, RevealedCard
from .economy import Currency, WalletBalance, currency_deltas
from .events import CARDS_SOLD, PACK_PURCHASED, PACK_REFUNDED
from .exceptions import (
    ChargedAndRefundedError,
    CompensationFailedError,
    InvalidQuantityError,
    PriceUnavailableError,
    PurchaseLimitExceededError,
    UnknownPackError,
)
from .ledger import (
    CardAward,
    EventSource,
    LedgerResult,
    LedgerService,
    ProgressionChange,
    UserLedger,
    apply_change,
    load_state,
)
from .limits import PackLimit, PurchaseLimiter, is_purchasable
from .packs import PackCatalog, PackDefinition, PriceOption
from .progression import ProgressionState

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class PackWithLimits:
    pack: PackDefinition
    prices: tuple[PriceOption, ...]
    limits: tuple[PackLimit, ...]
    purchasable: bool


@dataclass(slots=True, frozen=True)
class StoreListing:
    packs: tuple[PackWithLimits, ...]
    wallet: WalletBalance


@dataclass(slots=True, frozen=True)
class PurchaseResult:
    pack_id: str
    cards: tuple[RevealedCard, ...]
    progression: ProgressionState
    wallet: WalletBalance
    currency: Currency
    price: int
    purchase_event_id: str


@dataclass(slots=True, frozen=True)
class SaleItem:
    card_type: CardType
    card_id: str
    quantity: int = 1


@dataclass(slots=True, frozen=True)
class SaleResult:
    sold_count: int
    coins_earned: int
    progression: ProgressionState
    wallet: WalletBalance


def aggregate_awards(cards: Iterable[RevealedCard]) -> list[CardAward]:
    """Collapse revealed cards into one award per card, keeping draw order."""
    quantities: dict[CardKey, int] = {}
    first_seen: dict[CardKey, RevealedCard] = {}
    for card in cards:
        quantities[card.key] = quantities.get(card.key, 0) + 1
        first_seen.setdefault(card.key, card)
    return [
        CardAward(card.card_type, card.card_id, card.rarity, quantities[key])
        for key, card in first_seen.items()
    ]


class StoreService:
    """Sell packs against the ledger.

    A purchase debits first, then draws and awards. If anything fails after
    the debit, a refund event with the inverse deltas is written before the
    error reaches the caller.
    """

    def __init__(
        self,
        ledger: LedgerService,
        packs: PackCatalog,
        catalog: CatalogProvider,
        *,
        engine: RarityDrawEngine | None = None,
        limiter: PurchaseLimiter | None = None,
    ) -> None:
        self._ledger = ledger
        self._packs = packs
        self._catalog = catalog
        self._engine = engine or RarityDrawEngine()
        self._limiter = limiter or PurchaseLimiter()

    async def list_packs_for_user(self, user_id: str) -> StoreListing:
        packs = list(self._packs.iter_packs())
        async with self._ledger.exclusive(user_id) as ledger:
            now = ledger.now()

            async def read(session: LedgerSession) -> tuple[dict[str, list[PackLimit]], WalletBalance]:
                limits = await self._limiter.evaluate(session, user_id, packs, now)
                _, wallet = await load_state(session, user_id, now)
                return limits, wallet

            limits, wallet = await ledger.transact(read)
        return StoreListing(
            packs=tuple(
                PackWithLimits(
                    pack=pack,
                    prices=pack.prices(),
                    limits=tuple(limits[pack.pack_id]),
                    purchasable=is_purchasable(limits[pack.pack_id]),
                )
                for pack in packs
            ),
            wallet=wallet,
        )

    async def purchase_pack(
        self, user_id: str, pack_id: str, currency: Currency | str | None = None
    ) -> PurchaseResult:
        pack = self._packs.find(pack_id)
        if pack is None:
            raise UnknownPackError(pack_id)
        option = self._resolve_price(pack, currency)

        async with self._ledger.exclusive(user_id) as ledger:
            owned = await ledger.owned_card_keys()
            purchase = await self._debit(ledger, pack, option)
            logger.info(
                "User %s paid %s %s for pack %s", user_id, option.price, option.currency.value, pack_id
            )

            settle = asyncio.ensure_future(self._settle(ledger, pack, option, purchase, owned))
            try:
                return await asyncio.shield(settle)
            except asyncio.CancelledError:
                logger.warning(
                    "Purchase of pack %s by user %s cancelled after debit; finishing it first",
                    pack_id,
                    user_id,
                )
                while not settle.done():
                    try:
                        await asyncio.wait({settle})
                    except asyncio.CancelledError:
                        continue
                if not settle.cancelled() and settle.exception() is not None:
                    logger.warning(
                        "Cancelled purchase of pack %s by user %s ended with %r",
                        pack_id,
                        user_id,
                        settle.exception(),
                    )
                raise

    async def refund_purchase(self, user_id: str, purchase_event_id: str) -> LedgerEventRecord:
        """Write the refund for a purchase event unless it already exists."""
        async with self._ledger.exclusive(user_id) as ledger:

            async def find(session: LedgerSession) -> LedgerEventRecord | None:
                events = await session.find_events(
                    user_id, source=EventSource.SHOP_PACK_PURCHASE.value
                )
                return next((event for event in events if event.id == purchase_event_id), None)

            purchase = await ledger.transact(find)
            if purchase is None:
                raise KeyError(f"Purchase event {purchase_event_id} not found for user {user_id}")
            pack_id = str(purchase.metadata.get("pack_id", ""))
            return await self._refund(ledger, pack_id, purchase, reason="manual")

    async def sell_cards(self, user_id: str, items: Iterable[SaleItem]) -> SaleResult:
        aggregated: dict[CardKey, int] = {}
        for item in items:
            if item.quantity < 1:
                raise InvalidQuantityError(f"Quantity must be positive, got {item.quantity}")
            key = (item.card_type, item.card_id)
            aggregated[key] = aggregated.get(key, 0) + item.quantity
        if not aggregated:
            raise InvalidQuantityError("At least one card must be sold")

        async with self._ledger.exclusive(user_id) as ledger:
            result = await ledger.discard_cards(
                [(card_type, card_id, quantity) for (card_type, card_id), quantity in aggregated.items()]
            )

        logger.info(
            "User %s sold %s card(s) for %s coins", user_id, result.sold_count, result.coins_earned
        )
        await self._ledger.event_bus.publish(
            CARDS_SOLD,
            {
                "user_id": user_id,
                "sold_count": result.sold_count,
                "coins_earned": result.coins_earned,
            },
        )
        return SaleResult(
            sold_count=result.sold_count,
            coins_earned=result.coins_earned,
            progression=result.progression,
            wallet=result.wallet,
        )

    def _resolve_price(self, pack: PackDefinition, currency: Currency | str | None) -> PriceOption:
        requested: Currency | None = None
        if currency is not None:
            try:
                requested = Currency(currency)
            except ValueError as exc:
                raise PriceUnavailableError(pack.pack_id, str(currency)) from exc
        option = pack.price_for(requested)
        if option is None:
            raise PriceUnavailableError(pack.pack_id, requested.value if requested else None)
        return option

    async def _debit(
        self, ledger: UserLedger, pack: PackDefinition, option: PriceOption
    ) -> LedgerResult:
        now = ledger.now()
        coins_delta, diamonds_delta = currency_deltas(option.currency, -option.price)

        async def write(session: LedgerSession) -> LedgerResult:
            limits = await self._limiter.limits_for(session, ledger.user_id, pack, now)
            exhausted = tuple(
                limit.window.value for limit in limits if limit.remaining_purchases <= 0
            )
            if exhausted:
                raise PurchaseLimitExceededError(pack.pack_id, exhausted)
            return await apply_change(
                session,
                ledger.user_id,
                ProgressionChange(
                    source=EventSource.SHOP_PACK_PURCHASE,
                    coins_delta=coins_delta,
                    diamonds_delta=diamonds_delta,
                    reference_id=pack.reference_id,
                    metadata={
                        "rule": EventSource.SHOP_PACK_PURCHASE.value,
                        "pack_id": pack.pack_id,
                        "currency": option.currency.value,
                        "price": option.price,
                        "cards_count": pack.cards_count,
                    },
                ),
                now,
            )

        return await ledger.transact(write)

    async def _settle(
        self,
        ledger: UserLedger,
        pack: PackDefinition,
        option: PriceOption,
        purchase: LedgerResult,
        owned: AbstractSet[CardKey],
    ) -> PurchaseResult:
        try:
            pool = await self._catalog.card_pool(pack)
            cards = self._engine.draw(pack, pool, owned)
            awarded = await ledger.award_cards(
                aggregate_awards(cards), reference_id=pack.reference_id, announce=False
            )
        except Exception as exc:
            logger.warning(
                "Pack %s failed after debit for user %s: %s", pack.pack_id, ledger.user_id, exc
            )
            refund = await self._refund(
                ledger, pack.pack_id, purchase.event, reason=type(exc).__name__, cause=exc
            )
            raise ChargedAndRefundedError(pack.pack_id, exc, refund.id) from exc

        await ledger.announce_level(awarded.previous_level, awarded.progression)
        await self._ledger.event_bus.publish(
            PACK_PURCHASED,
            {
                "user_id": ledger.user_id,
                "pack_id": pack.pack_id,
                "currency": option.currency.value,
                "price": option.price,
                "cards": [f"{card.card_type.value}:{card.card_id}" for card in cards],
            },
        )
        return PurchaseResult(
            pack_id=pack.pack_id,
            cards=tuple(cards),
            progression=awarded.progression,
            wallet=awarded.wallet,
            currency=option.currency,
            price=option.price,
            purchase_event_id=purchase.event.id,
        )

    async def _refund(
        self,
        ledger: UserLedger,
        pack_id: str,
        purchase: LedgerEventRecord,
        *,
        reason: str,
        cause: BaseException | None = None,
    ) -> LedgerEventRecord:
        now = ledger.now()
        refund_reference = f"store-pack-refund:{pack_id}"

        async def write(session: LedgerSession) -> tuple[LedgerEventRecord, bool]:
            existing = await session.find_events(
                ledger.user_id,
                source=EventSource.SHOP_PURCHASE_REFUND.value,
                reference_id=refund_reference,
            )
            for event in existing:
                if event.metadata.get("purchase_event_id") == purchase.id:
                    return event, False
            result = await apply_change(
                session,
                ledger.user_id,
                ProgressionChange(
                    source=EventSource.SHOP_PURCHASE_REFUND,
                    coins_delta=-purchase.coins_delta,
                    diamonds_delta=-purchase.diamonds_delta,
                    reference_id=refund_reference,
                    metadata={
                        "rule": EventSource.SHOP_PURCHASE_REFUND.value,
                        "pack_id": pack_id,
                        "currency": purchase.metadata.get("currency"),
                        "price": purchase.metadata.get("price"),
                        "purchase_event_id": purchase.id,
                        "reason": reason,
                    },
                ),
                now,
            )
            return result.event, True

        try:
            refund, created = await ledger.transact(write)
        except Exception as exc:
            logger.critical(
                "Refund for purchase %s (pack %s, user %s) failed; the charge stands: %s",
                purchase.id,
                pack_id,
                ledger.user_id,
                exc,
            )
            raise CompensationFailedError(pack_id, cause or exc, purchase.id) from exc

        if created:
            logger.info(
                "Refunded purchase %s of pack %s for user %s", purchase.id, pack_id, ledger.user_id
            )
            await self._ledger.event_bus.publish(
                PACK_REFUNDED,
                {
                    "user_id": ledger.user_id,
                    "pack_id": pack_id,
                    "purchase_event_id": purchase.id,
                    "refund_event_id": refund.id,
                    "reason": reason,
                },
            )
        return refund
