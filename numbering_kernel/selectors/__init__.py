"""Selectors for the numbering kernel (read side)."""

from numbering_kernel.selectors.identifier_selector import IdentifierSelector

__all__ = [
    "IdentifierSelector",
]
