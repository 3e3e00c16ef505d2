"""Data store gateway contract and in-memory implementation."""

from civicsync.gateway.memory import InMemoryDataStore, LogicalClock
from civicsync.gateway.protocol import DataStoreGateway

__all__ = ["DataStoreGateway", "InMemoryDataStore", "LogicalClock"]
