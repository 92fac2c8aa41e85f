"""
Position store gateway.
The storage surface the ingestion cycle and the prediction engine depend on.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from ..models.position import LineRecord, PositionSample, StopLocation


class PositionStore(ABC):
    """Storage operations used by the core. Implementations must be safe for concurrent readers."""

    @abstractmethod
    async def append_positions(self, samples: Sequence[PositionSample]) -> int:
        """Append samples in one batch. Returns the number written."""

    @abstractmethod
    async def query_positions(self, line_substring: str, since: datetime, until: datetime) -> List[PositionSample]:
        """
        Samples whose line number contains ``line_substring`` (case-insensitive)
        and whose timestamp lies in ``[since, until]``, ordered by timestamp.
        """

    @abstractmethod
    async def delete_older_than(self, threshold: datetime) -> int:
        """Delete samples with ``timestamp < threshold``. Returns the number removed."""

    @abstractmethod
    async def get_all_lines(self) -> List[LineRecord]:
        """All canonical lines"""

    @abstractmethod
    async def find_stop(self, code: str) -> Optional[StopLocation]:
        """The stop with this code, or None"""

    @abstractmethod
    async def line_serves_stop(self, stop_code: str, line_substring: str) -> bool:
        """Whether any line whose display number contains ``line_substring`` serves the stop"""
