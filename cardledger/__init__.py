"""cardledger public API."""

from .app import LedgerApp
from .config import CardLedgerConfig
from .registry import CatalogRegistry

__all__ = [
    "LedgerApp",
    "CardLedgerConfig",
    "CatalogRegistry",
]
