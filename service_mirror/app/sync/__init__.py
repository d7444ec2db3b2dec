"""
Sync engine package.
"""

from .engine import SyncEngine

__all__ = ["SyncEngine"]
