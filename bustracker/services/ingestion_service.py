"""
Position ingestion service.
Runs the fixed-interval cycle: refresh line codes, fetch the feed, parse,
translate, persist, then evict history older than the retention window.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import pytz

from ..core.config import ApplicationConfig
from ..core.resource_manager import ResourceManager
from ..data.parsing import parse_feed
from ..data.repositories.position_store import PositionStore
from ..data.sources.position_feed import PositionFeedSource
from ..exceptions import FeedFetchError
from .line_translator import LineCodeTranslator

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


@dataclass
class CycleReport:
    """Summary of one ingestion tick"""
    started_at: datetime
    reference_refreshed: bool = False
    feed_ok: bool = False
    rows_seen: int = 0
    rows_skipped: int = 0
    positions_written: int = 0
    positions_cleaned: int = 0
    cleanup_ok: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


class IngestionService:
    """Service that keeps the position store fed with fresh, translated samples"""

    def __init__(self, config: ApplicationConfig, store: PositionStore,
                 translator: LineCodeTranslator,
                 feed_source: Optional[PositionFeedSource] = None,
                 resource_manager: Optional[ResourceManager] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.config = config
        self.store = store
        self.translator = translator
        self.resource_manager = resource_manager
        if feed_source is None:
            if resource_manager is None:
                raise ValueError("IngestionService needs a feed_source or a resource_manager")
            feed_source = PositionFeedSource(
                resource_manager,
                url=config.feed_url,
                timeout_seconds=config.request_timeout_seconds,
                user_agent=config.user_agent,
            )
        self.feed_source = feed_source
        self._clock = clock
        self._stop_event = asyncio.Event()
        self.ingestion_task: Optional[asyncio.Task] = None
        self.is_running = False
        self.last_report: Optional[CycleReport] = None
        self.cycles_completed = 0

    async def start(self):
        """Start the ingestion loop in the background"""
        if self.ingestion_task is not None and not self.ingestion_task.done():
            return
        logger.info(f"Starting ingestion service. Update interval: {self.config.update_interval_seconds}s")
        self.is_running = True
        self._stop_event.clear()
        self.ingestion_task = asyncio.create_task(self._ingestion_loop(), name="ingestion_loop")

    async def stop(self):
        """Signal the loop and wait for it to finish"""
        logger.info("Stopping ingestion service...")
        self.is_running = False
        self._stop_event.set()

        if self.ingestion_task and not self.ingestion_task.done():
            self.ingestion_task.cancel()
            try:
                await self.ingestion_task
            except asyncio.CancelledError:
                pass

        logger.info("Ingestion service stopped")

    async def _ingestion_loop(self):
        """Run one cycle, then wait the fixed interval. Ticks never overlap."""
        while self.is_running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Unexpected error in ingestion cycle: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.update_interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Ingestion loop stopped")

    async def run_cycle(self) -> CycleReport:
        """Execute one ingestion tick"""
        report = CycleReport(started_at=self._clock())
        logger.info("Starting position update cycle")

        if self.translator.needs_refresh():
            report.reference_refreshed = await self.translator.refresh_reference_cache(self.store)

        try:
            await self._ingest_feed(report)
        except Exception as e:
            logger.exception(f"Unexpected error ingesting position feed: {e}")
        # retention sweep runs regardless of how the feed step ended
        await self._cleanup_stale_positions(report)

        self.last_report = report
        self.cycles_completed += 1
        if self.resource_manager is not None:
            self.resource_manager.log_resource_usage()
        return report

    async def _ingest_feed(self, report: CycleReport):
        try:
            payload = await self.feed_source.fetch_payload()
        except FeedFetchError as e:
            logger.error(f"Error downloading position feed: {e}")
            return

        report.feed_ok = True
        parsed = parse_feed(payload, self.config.feed_utc_offset_minutes)
        report.rows_seen = parsed.total_rows
        report.rows_skipped = parsed.skipped_rows
        if parsed.skipped_rows:
            logger.debug(f"Skipped {parsed.skipped_rows} of {parsed.total_rows} feed rows")

        samples = [p.with_line(self.translator.translate(p.raw_line_code)) for p in parsed.positions]
        if not samples:
            logger.warning("No valid positions found in feed data")
            return

        try:
            report.positions_written = await self.store.append_positions(samples)
        except Exception as e:
            logger.error(f"Error storing {len(samples)} positions: {e}")
            return
        logger.info(f"Successfully updated {report.positions_written} bus positions")

    async def _cleanup_stale_positions(self, report: CycleReport):
        threshold = self._clock() - timedelta(minutes=self.config.position_retention_minutes)
        try:
            report.positions_cleaned = await self.store.delete_older_than(threshold)
        except Exception as e:
            report.cleanup_ok = False
            logger.warning(f"Error cleaning old positions (non-fatal): {e}")
            return
        if report.positions_cleaned:
            logger.info(f"Cleaned {report.positions_cleaned} old positions")

    def get_service_stats(self) -> Dict[str, Any]:
        """Get service statistics"""
        return {
            "is_running": self.is_running,
            "ingestion_task_running": bool(self.ingestion_task and not self.ingestion_task.done()),
            "cycles_completed": self.cycles_completed,
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
            "reference_cache_size": self.translator.reference_size,
            "reference_cache_age_seconds": self.translator.reference_age_seconds(),
            "legacy_map_size": self.translator.legacy_size,
        }
