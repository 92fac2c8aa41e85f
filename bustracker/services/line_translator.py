"""
Line-identifier translation.
Maps raw feed line codes to canonical display numbers through a static legacy
table and a storage-backed reference cache that is refreshed periodically.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from ..data.repositories.position_store import PositionStore
from ..data.sources.legacy_lines import read_legacy_line_map

logger = logging.getLogger(__name__)


class LineCodeTranslator:
    """
    Two-layer line code lookup.

    Both layers are plain dicts that are replaced wholesale, never mutated in
    place, so readers always see either the old or the new snapshot.
    """

    def __init__(self, refresh_interval_seconds: float = 3600.0,
                 clock: Callable[[], float] = time.monotonic):
        self.refresh_interval_seconds = refresh_interval_seconds
        self._clock = clock
        self._legacy_map: Dict[str, str] = {}
        self._reference_map: Dict[str, str] = {}
        self._last_refresh: Optional[float] = None

    @property
    def legacy_size(self) -> int:
        return len(self._legacy_map)

    @property
    def reference_size(self) -> int:
        return len(self._reference_map)

    def reference_age_seconds(self) -> Optional[float]:
        if self._last_refresh is None:
            return None
        return self._clock() - self._last_refresh

    def load_legacy_map(self, path: Union[str, Path]) -> int:
        """Load the static legacy table once. A missing or unreadable file leaves the layer empty."""
        try:
            mapping = read_legacy_line_map(path)
        except FileNotFoundError:
            logger.warning(f"Legacy mapping file not found: {path}")
            return 0
        except (OSError, UnicodeError) as e:
            logger.error(f"Error reading legacy mapping file {path}: {e}")
            return 0

        self._legacy_map = mapping
        logger.info(f"Legacy map loaded with {len(mapping)} lines")
        return len(mapping)

    def needs_refresh(self) -> bool:
        age = self.reference_age_seconds()
        return age is None or age >= self.refresh_interval_seconds

    async def refresh_reference_cache(self, store: PositionStore) -> bool:
        """
        Reload canonical lines from storage.

        Keys are both the external system id and the display number itself, so
        translating an already-canonical number is a no-op. On failure the
        previous snapshot is kept.

        Returns:
            True if the cache was replaced
        """
        try:
            lines = await store.get_all_lines()
        except Exception as e:
            logger.warning(f"Failed to refresh line reference cache, keeping previous ({len(self._reference_map)} entries): {e}")
            return False

        mapping: Dict[str, str] = {}
        for line in lines:
            mapping[line.display_number] = line.display_number
        for line in lines:
            if line.external_id:
                mapping[line.external_id] = line.display_number

        self._reference_map = mapping
        self._last_refresh = self._clock()
        logger.info(f"Line reference cache refreshed with {len(lines)} lines")
        return True

    def translate(self, raw_code: str) -> str:
        """Raw feed code -> legacy table -> reference cache, identity fallback at each stage"""
        code = raw_code
        legacy = self._legacy_map
        reference = self._reference_map
        code = legacy.get(code, code)
        return reference.get(code, code)
