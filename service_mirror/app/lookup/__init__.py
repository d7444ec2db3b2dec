"""
Bounded lookup package.

Lookups never hang on a missing item: they end with the item or with None
once their fetch budget is spent.
"""

from .resolver import BoundedLookup, ItemResolver, LookupRequest, LookupState

__all__ = [
    "BoundedLookup",
    "ItemResolver",
    "LookupRequest",
    "LookupState",
]
