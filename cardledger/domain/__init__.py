"""Domain models and services."""

from .cards import (
    Attack,
    Battlegear,
    Card,
    CardCatalog,
    CardType,
    CatalogProvider,
    Creature,
    Location,
    Mugic,
    PoolCard,
    Rarity,
)
from .clock import Clock, FixedClock, SystemClock
from .draw import RarityDrawEngine, RevealedCard
from .economy import Currency, WalletBalance
from .exceptions import (
    CardLedgerError,
    CardNotFoundInInventoryError,
    ChargedAndRefundedError,
    CompensationFailedError,
    DrawError,
    EmptyPoolError,
    InsufficientFundsError,
    InvalidQuantityError,
    InvalidStarterTribeError,
    PriceUnavailableError,
    PurchaseLimitExceededError,
    StarterAlreadyGrantedError,
    StarterError,
    StorageTimeoutError,
    UnknownPackError,
    UnsatisfiableGuaranteeError,
)
from .ledger import (
    CardAward,
    DailyLoginResult,
    EventSource,
    LedgerResult,
    LedgerService,
    ProgressionChange,
    ProgressionOverview,
)
from .limits import LimitWindow, PackLimit, PurchaseLimiter
from .packs import DEFAULT_PACKS, PackCatalog, PackDefinition, PriceOption
from .progression import ProgressionState, level_state_for, xp_required_for_level
from .starter import STARTER_TRIBES, StarterResult, StarterService, StarterStatus
from .store import PurchaseResult, SaleItem, SaleResult, StoreListing, StoreService

__all__ = [
    "Attack",
    "Battlegear",
    "Card",
    "CardAward",
    "CardCatalog",
    "CardLedgerError",
    "CardNotFoundInInventoryError",
    "CardType",
    "CatalogProvider",
    "ChargedAndRefundedError",
    "Clock",
    "CompensationFailedError",
    "Creature",
    "Currency",
    "DEFAULT_PACKS",
    "DailyLoginResult",
    "DrawError",
    "EmptyPoolError",
    "EventSource",
    "FixedClock",
    "InsufficientFundsError",
    "InvalidQuantityError",
    "InvalidStarterTribeError",
    "LedgerResult",
    "LedgerService",
    "LimitWindow",
    "Location",
    "Mugic",
    "PackCatalog",
    "PackDefinition",
    "PackLimit",
    "PoolCard",
    "PriceOption",
    "PriceUnavailableError",
    "ProgressionChange",
    "ProgressionOverview",
    "ProgressionState",
    "PurchaseLimitExceededError",
    "PurchaseLimiter",
    "PurchaseResult",
    "Rarity",
    "RarityDrawEngine",
    "RevealedCard",
    "SaleItem",
    "STARTER_TRIBES",
    "SaleResult",
    "StarterAlreadyGrantedError",
    "StarterError",
    "StarterResult",
    "StarterService",
    "StarterStatus",
    "StorageTimeoutError",
    "StoreListing",
    "StoreService",
    "SystemClock",
    "UnknownPackError",
    "UnsatisfiableGuaranteeError",
    "WalletBalance",
    "level_state_for",
    "xp_required_for_level",
]
