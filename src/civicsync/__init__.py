"""
civicsync - Optimistic cache and realtime reconciliation core

Keeps a client-side query cache of civic campaigns consistent while the
user mutates data optimistically and the data store pushes row changes
over a realtime channel.
"""

__version__ = "0.1.0"
__author__ = "civicsync Team"

from .cache import QueryCache
from .mutations import OptimisticMutationCoordinator, PendingMutationRegistry
from .reconciliation import RealtimeReconciliationBridge

__all__ = [
    "OptimisticMutationCoordinator",
    "PendingMutationRegistry",
    "QueryCache",
    "RealtimeReconciliationBridge",
]
