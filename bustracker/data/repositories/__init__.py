"""
Data repositories module.
Exports the storage gateway interface.
"""

from .position_store import PositionStore

__all__ = [
    "PositionStore"
]
