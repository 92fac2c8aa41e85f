"""
Static legacy line table.
Reads the ';'-delimited file mapping internal line ids to display numbers.
"""

import logging
from pathlib import Path
from typing import Dict, Union

logger = logging.getLogger(__name__)

HEADER_ROWS = 1
MIN_COLUMNS = 2


def read_legacy_line_map(path: Union[str, Path], encoding: str = "utf-8") -> Dict[str, str]:
    """
    Load ``internalId;displayNumber`` rows, skipping the header.

    Rows with fewer than two columns or an empty id are ignored. A later row
    for the same id replaces an earlier one.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    mapping: Dict[str, str] = {}
    with open(path, "r", encoding=encoding, errors="replace") as f:
        for line_no, line in enumerate(f):
            if line_no < HEADER_ROWS:
                continue
            cols = line.rstrip("\r\n").split(";")
            if len(cols) < MIN_COLUMNS:
                continue
            internal_id = cols[0].strip()
            display_number = cols[1].strip()
            if not internal_id or not display_number:
                continue
            mapping[internal_id] = display_number
    return mapping
