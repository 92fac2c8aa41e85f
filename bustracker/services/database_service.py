"""
Database service.
SQLite-backed implementation of the position store gateway, plus the static
line/stop reference tables it is checked against.
"""

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Union

import aiosqlite
import pytz

from ..data.models.position import LineRecord, PositionSample, StopLocation
from ..data.repositories.position_store import PositionStore
from ..exceptions import StoreError

logger = logging.getLogger(__name__)

SCHEMA = (
    '''
    CREATE TABLE IF NOT EXISTS bus_positions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        line_number TEXT NOT NULL,
        vehicle_number TEXT NOT NULL,
        lat REAL NOT NULL,
        lon REAL NOT NULL,
        timestamp REAL NOT NULL
    )
    ''',
    '''
    CREATE INDEX IF NOT EXISTS idx_bus_positions_ts
    ON bus_positions(timestamp)
    ''',
    '''
    CREATE INDEX IF NOT EXISTS idx_bus_positions_line_ts
    ON bus_positions(line_number, timestamp)
    ''',
    '''
    CREATE TABLE IF NOT EXISTS bus_lines (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        external_id TEXT NOT NULL UNIQUE,
        display_number TEXT NOT NULL,
        name TEXT NOT NULL DEFAULT ''
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS bus_stops (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL DEFAULT '',
        lat REAL NOT NULL,
        lon REAL NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS bus_line_stops (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        line_id INTEGER NOT NULL REFERENCES bus_lines(id) ON DELETE CASCADE,
        stop_id INTEGER NOT NULL REFERENCES bus_stops(id) ON DELETE CASCADE,
        sequence INTEGER NOT NULL DEFAULT 0,
        sub_line_name TEXT,
        UNIQUE(line_id, stop_id, sequence)
    )
    ''',
)


def _to_epoch(value: datetime) -> float:
    if value.tzinfo is None:
        raise ValueError("naive datetime passed to the position store, timestamps must be UTC-aware")
    return value.timestamp()


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=pytz.utc)


def _clean_line(line_substring: str) -> str:
    return line_substring.strip().lower()


class DatabaseService(PositionStore):
    """Handle all position and reference-data operations with SQLite"""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self):
        """Create the schema and open the shared connection"""
        if self._initialized:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(self.db_path))
        # WAL lets prediction reads proceed while the ingestion cycle writes
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
        await conn.execute("PRAGMA busy_timeout=5000")
        await conn.execute("PRAGMA foreign_keys=ON")
        for statement in SCHEMA:
            await conn.execute(statement)
        await conn.commit()

        self._conn = conn
        self._initialized = True
        logger.info(f"Database initialized at {self.db_path}")

    async def start(self):
        await self.initialize()

    async def stop(self):
        """Stop method for application lifecycle (alias for close)"""
        await self.close()

    async def close(self):
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            self._initialized = False
            logger.info("Database connection closed")

    @asynccontextmanager
    async def _connection(self):
        if self._conn is None:
            raise StoreError("DatabaseService used before initialize()")
        try:
            yield self._conn
        except sqlite3.Error as e:
            raise StoreError(f"Database operation failed: {e}") from e

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    async def append_positions(self, samples: Sequence[PositionSample]) -> int:
        if not samples:
            return 0
        values = [(
            s.line_number,
            s.vehicle_number,
            s.latitude,
            s.longitude,
            _to_epoch(s.timestamp),
        ) for s in samples]

        async with self._write_lock, self._connection() as conn:
            await conn.executemany('''
                INSERT INTO bus_positions (line_number, vehicle_number, lat, lon, timestamp)
                VALUES (?, ?, ?, ?, ?)
            ''', values)
            await conn.commit()
        logger.debug(f"Inserted {len(values)} positions")
        return len(values)

    async def query_positions(self, line_substring: str, since: datetime, until: datetime) -> List[PositionSample]:
        async with self._connection() as conn:
            cursor = await conn.execute('''
                SELECT line_number, vehicle_number, lat, lon, timestamp
                FROM bus_positions
                WHERE instr(lower(line_number), ?) > 0
                  AND timestamp >= ? AND timestamp <= ?
                ORDER BY timestamp ASC, id ASC
            ''', (_clean_line(line_substring), _to_epoch(since), _to_epoch(until)))
            rows = await cursor.fetchall()
            await cursor.close()

        return [
            PositionSample(
                timestamp=_from_epoch(ts),
                line_number=line_number,
                vehicle_number=vehicle_number,
                latitude=lat,
                longitude=lon,
            )
            for line_number, vehicle_number, lat, lon, ts in rows
        ]

    async def delete_older_than(self, threshold: datetime) -> int:
        async with self._write_lock, self._connection() as conn:
            cursor = await conn.execute(
                'DELETE FROM bus_positions WHERE timestamp < ?',
                (_to_epoch(threshold),)
            )
            deleted = cursor.rowcount
            await cursor.close()
            await conn.commit()
        return max(0, deleted)

    async def count_positions(self) -> int:
        async with self._connection() as conn:
            cursor = await conn.execute('SELECT COUNT(*) FROM bus_positions')
            (count,) = await cursor.fetchone()
            await cursor.close()
        return count

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    async def get_all_lines(self) -> List[LineRecord]:
        async with self._connection() as conn:
            cursor = await conn.execute(
                'SELECT external_id, display_number, name FROM bus_lines ORDER BY display_number'
            )
            rows = await cursor.fetchall()
            await cursor.close()
        return [LineRecord(external_id=ext, display_number=display, name=name) for ext, display, name in rows]

    async def find_stop(self, code: str) -> Optional[StopLocation]:
        async with self._connection() as conn:
            cursor = await conn.execute(
                'SELECT code, lat, lon, name FROM bus_stops WHERE code = ?', (code,)
            )
            row = await cursor.fetchone()
            await cursor.close()
        if row is None:
            return None
        stop_code, lat, lon, name = row
        return StopLocation(code=stop_code, latitude=lat, longitude=lon, name=name)

    async def line_serves_stop(self, stop_code: str, line_substring: str) -> bool:
        async with self._connection() as conn:
            cursor = await conn.execute('''
                SELECT 1
                FROM bus_line_stops bls
                JOIN bus_lines l ON l.id = bls.line_id
                JOIN bus_stops s ON s.id = bls.stop_id
                WHERE s.code = ? AND instr(lower(l.display_number), ?) > 0
                LIMIT 1
            ''', (stop_code, _clean_line(line_substring)))
            row = await cursor.fetchone()
            await cursor.close()
        return row is not None

    async def upsert_line(self, external_id: str, display_number: str, name: str = "") -> int:
        async with self._write_lock, self._connection() as conn:
            await conn.execute('''
                INSERT INTO bus_lines (external_id, display_number, name) VALUES (?, ?, ?)
                ON CONFLICT(external_id) DO UPDATE SET
                    display_number = excluded.display_number,
                    name = excluded.name
            ''', (external_id, display_number, name))
            await conn.commit()
            cursor = await conn.execute('SELECT id FROM bus_lines WHERE external_id = ?', (external_id,))
            (line_id,) = await cursor.fetchone()
            await cursor.close()
        return line_id

    async def upsert_stop(self, code: str, latitude: float, longitude: float, name: str = "") -> int:
        async with self._write_lock, self._connection() as conn:
            await conn.execute('''
                INSERT INTO bus_stops (code, name, lat, lon) VALUES (?, ?, ?, ?)
                ON CONFLICT(code) DO UPDATE SET
                    name = excluded.name,
                    lat = excluded.lat,
                    lon = excluded.lon
            ''', (code, name, latitude, longitude))
            await conn.commit()
            cursor = await conn.execute('SELECT id FROM bus_stops WHERE code = ?', (code,))
            (stop_id,) = await cursor.fetchone()
            await cursor.close()
        return stop_id

    async def link_line_stop(self, external_id: str, stop_code: str, sequence: int = 0,
                             sub_line_name: Optional[str] = None) -> bool:
        """Record that a line serves a stop. Returns True if a new link was written."""
        async with self._write_lock, self._connection() as conn:
            cursor = await conn.execute('''
                INSERT OR IGNORE INTO bus_line_stops (line_id, stop_id, sequence, sub_line_name)
                SELECT l.id, s.id, ?, ?
                FROM bus_lines l, bus_stops s
                WHERE l.external_id = ? AND s.code = ?
            ''', (sequence, sub_line_name, external_id, stop_code))
            linked = cursor.rowcount > 0
            await cursor.close()
            await conn.commit()
        return linked
