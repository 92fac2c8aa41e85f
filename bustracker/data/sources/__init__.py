"""
Data sources module.
Exports the feed client and the legacy line table reader.
"""

from .position_feed import PositionFeedSource
from .legacy_lines import read_legacy_line_map

__all__ = [
    "PositionFeedSource",
    "read_legacy_line_map"
]
