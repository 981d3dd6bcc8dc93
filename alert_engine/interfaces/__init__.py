"""
Abstract interfaces for the alert engine.

The key interface is AlertStore, the contract for the external persistence
collaborator the engine reads and writes alerts through.

Example:
    >>> from alert_engine.interfaces import AlertStore, StoreError

Modules:
    alert_store: AlertStore ABC and the StoreError hierarchy
"""

from alert_engine.interfaces.alert_store import (
    AlertStore,
    PredicateError,
    StoreConnectionError,
    StoreError,
    StoreOperationError,
    sort_alerts,
)

__all__: list[str] = [
    "AlertStore",
    "PredicateError",
    "StoreConnectionError",
    "StoreError",
    "StoreOperationError",
    "sort_alerts",
]
