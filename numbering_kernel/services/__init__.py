"""
Kernel services -- the imperative shell that owns transactions.

AllocationCoordinator is the only component that commits or rolls back.
CounterStore and ClientCodeRegistry flush inside the coordinator's unit of
work.
"""

from numbering_kernel.services.allocation_coordinator import (
    AllocationCoordinator,
    AllocationState,
    is_transient_db_error,
)
from numbering_kernel.services.client_code_registry import ClientCodeRegistry
from numbering_kernel.services.counter_store import CounterStore

__all__ = [
    "AllocationCoordinator",
    "AllocationState",
    "ClientCodeRegistry",
    "CounterStore",
    "is_transient_db_error",
]
