"""
Numbering Kernel - Sequential Identifier Allocation Engine

Mints human-readable, sortable, collision-free identifiers for client
accounts, quotations and invoices with:
- Crash-safe persisted counters (global and client/fiscal-year scoped)
- Atomic reserve-and-record allocation
- Idempotent retries keyed by business event
- Append-only issued identifiers with versioned reissue
"""

__version__ = "0.1.0"
