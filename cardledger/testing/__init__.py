"""Testing utilities for cardledger."""

from .factory import CardFactory, PackFactory
from .fixtures import app_fixture, memory_app
from .test_client import TestClient

__all__ = [
    "CardFactory",
    "PackFactory",
    "app_fixture",
    "memory_app",
    "TestClient",
]
