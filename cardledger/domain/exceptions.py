"""Exceptions raised by cardledger domain services.

Every error says whether the caller was charged and whether the charge was
given back, so transports can render the right message and decide on retry.
"""

from __future__ import annotations


class CardLedgerError(RuntimeError):
    """Base class for domain exceptions."""

    charged: bool = False
    refunded: bool = False


class UnknownPackError(CardLedgerError):
    def __init__(self, pack_id: str) -> None:
        super().__init__(f"Pack {pack_id} not found")
        self.pack_id = pack_id


class PriceUnavailableError(CardLedgerError):
    """Raised when a pack is not sold in the requested currency."""

    def __init__(self, pack_id: str, currency: str | None) -> None:
        super().__init__(f"Pack {pack_id} has no price in {currency or 'any currency'}")
        self.pack_id = pack_id
        self.currency = currency


class PurchaseLimitExceededError(CardLedgerError):
    def __init__(self, pack_id: str, windows: tuple[str, ...]) -> None:
        super().__init__(
            f"Purchase limit reached for pack {pack_id} ({', '.join(windows)})"
        )
        self.pack_id = pack_id
        self.windows = windows


class InsufficientFundsError(CardLedgerError):
    def __init__(self, currency: str, balance: int, required: int) -> None:
        super().__init__(f"Insufficient {currency}: have {balance}, need {required}")
        self.currency = currency
        self.balance = balance
        self.required = required


class DrawError(CardLedgerError):
    """Raised when a pack cannot be assembled from its card pool."""


class EmptyPoolError(DrawError):
    pass


class UnsatisfiableGuaranteeError(DrawError):
    def __init__(self, pack_id: str, rarity: str, missing: int) -> None:
        super().__init__(
            f"Pack {pack_id} could not guarantee {missing} more card(s) of rarity {rarity} or better"
        )
        self.pack_id = pack_id
        self.rarity = rarity
        self.missing = missing


class ChargedAndRefundedError(CardLedgerError):
    """A purchase failed after the debit; the charge has been refunded."""

    charged = True
    refunded = True

    def __init__(self, pack_id: str, cause: BaseException, refund_event_id: str | None) -> None:
        super().__init__(
            f"Purchase of pack {pack_id} failed after charging and was refunded: {cause}"
        )
        self.pack_id = pack_id
        self.cause = cause
        self.refund_event_id = refund_event_id


class CompensationFailedError(CardLedgerError):
    """A purchase failed after the debit and the refund could not be written."""

    charged = True
    refunded = False

    def __init__(self, pack_id: str, cause: BaseException, purchase_event_id: str) -> None:
        super().__init__(
            f"Purchase of pack {pack_id} failed after charging and the refund failed: {cause}"
        )
        self.pack_id = pack_id
        self.cause = cause
        self.purchase_event_id = purchase_event_id


class CardNotFoundInInventoryError(CardLedgerError):
    def __init__(self, card_type: str, card_id: str) -> None:
        super().__init__(f"Card {card_type}:{card_id} not found in inventory")
        self.card_type = card_type
        self.card_id = card_id


class InvalidQuantityError(CardLedgerError):
    """Raised for non-positive quantities or quantities above what is owned."""


class StorageTimeoutError(CardLedgerError):
    """Raised when a storage call or user lock exceeds its time budget."""


class StarterError(CardLedgerError):
    """Raised when the starter reward cannot be granted."""


class InvalidStarterTribeError(StarterError):
    def __init__(self, tribe: str, allowed: tuple[str, ...]) -> None:
        super().__init__(f"Tribe {tribe} is not a starter option ({', '.join(allowed)})")
        self.tribe = tribe
        self.allowed = allowed


class StarterAlreadyGrantedError(StarterError):
    def __init__(self, user_id: str, tribe: str | None) -> None:
        detail = f" (tribe {tribe})" if tribe else ""
        super().__init__(f"Starter reward is no longer available for user {user_id}{detail}")
        self.user_id = user_id
        self.tribe = tribe
