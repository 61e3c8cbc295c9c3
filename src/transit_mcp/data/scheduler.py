"""Decides when to refresh the feed and drives download -> parse -> import."""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from transit_mcp.data.downloader import FeedDownloader
from transit_mcp.data.feed_parser import FeedArchive
from transit_mcp.data.importer import FeedImporter
from transit_mcp.data.store import FeedStore
from transit_mcp.models.gtfs import FeedValidators

logger = logging.getLogger(__name__)

DAILY_CHECK_JOB_ID = "feed_daily_check"


def daily_check_trigger(hour: int, tz: ZoneInfo) -> CronTrigger:
    """Fires at ``hour``:00 local time; DST shifts follow the zone."""
    return CronTrigger(hour=hour, minute=0, timezone=tz)


class FeedScheduler:
    """Owns the feed refresh schedule.

    The last-check day is read and written under one lock, so concurrent
    callers of check_and_update() trigger at most one conditional request per
    day. A second lock keeps update cycles serialized because the importer
    must be the only writer. The daily check itself is an APScheduler cron
    job in the operating timezone.
    """

    def __init__(
        self,
        store: FeedStore,
        downloader: FeedDownloader,
        importer: FeedImporter,
        tz: ZoneInfo,
        check_hour: int = 3,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.downloader = downloader
        self.importer = importer
        self.tz = tz
        self.check_hour = check_hour
        self._clock = clock or (lambda: datetime.now(UTC))
        self._day_lock = asyncio.Lock()
        self._update_lock = asyncio.Lock()
        self.last_check_date: date | None = None
        self.scheduler = AsyncIOScheduler(timezone=tz)
        self._setup_jobs()

    def now(self) -> datetime:
        """Current time in the operating timezone."""
        return self._clock().astimezone(self.tz)

    async def ensure_data(self) -> bool:
        """Run a full update if the store has no routes. Returns True if it imported."""
        if await self.store.has_data():
            logger.info("Feed data already present")
            return False
        logger.info("No feed data found, performing initial import")
        await self.update()
        return True

    async def _claim_today(self) -> bool:
        """Atomically mark today as checked. False if it already was."""
        today = self.now().date()
        async with self._day_lock:
            if self.last_check_date == today:
                return False
            self.last_check_date = today
            return True

    async def check_and_update(self) -> bool:
        """Check the feed at most once per operating-timezone day.

        Returns:
            True if a new feed was imported.
        """
        if not await self._claim_today():
            logger.debug("Feed already checked today")
            return False

        last_modified = await self.store.get_metadata("last_modified") or ""
        etag = await self.store.get_metadata("etag") or ""

        result = await self.downloader.check(last_modified, etag)
        if not result.needs_update:
            return False

        logger.info("Feed changed upstream, updating")
        await self.update()
        return True

    async def force_refresh(self) -> dict[str, int]:
        """Operator-triggered unconditional download and import."""
        logger.info("Forced feed refresh requested")
        return await self.update()

    async def update(self) -> dict[str, int]:
        """Full download -> parse -> import cycle."""
        async with self._update_lock:
            zip_path, validators = await self.downloader.download()
            try:
                return await self._import_path(zip_path, validators)
            finally:
                zip_path.unlink(missing_ok=True)

    async def ingest_path(
        self, path: Path, validators: FeedValidators | None = None
    ) -> dict[str, int]:
        """Import a local archive or directory instead of downloading."""
        async with self._update_lock:
            return await self._import_path(Path(path), validators)

    async def _import_path(
        self, path: Path, validators: FeedValidators | None
    ) -> dict[str, int]:
        with FeedArchive(path) as archive:
            return await self.importer.import_archive(archive, validators)

    def _setup_jobs(self) -> None:
        self.scheduler.add_job(
            func=self._scheduled_check,
            trigger=daily_check_trigger(self.check_hour, self.tz),
            id=DAILY_CHECK_JOB_ID,
            name="Check transit feed",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    @property
    def next_check_at(self) -> datetime | None:
        """When the daily check fires next, or None while the scheduler is stopped."""
        if not self.scheduler.running:
            return None
        job = self.scheduler.get_job(DAILY_CHECK_JOB_ID)
        return job.next_run_time if job else None

    def start(self) -> None:
        """Start the daily check. Needs a running event loop."""
        logger.info("Starting feed refresh scheduler")
        self.scheduler.start()
        if self.next_check_at:
            logger.info(f"Next feed check scheduled at {self.next_check_at.isoformat()}")

    def stop(self) -> None:
        if self.scheduler.running:
            logger.info("Stopping feed refresh scheduler")
            self.scheduler.shutdown(wait=False)

    async def _scheduled_check(self) -> None:
        """Daily job body. A failed cycle is logged and the previous feed stays."""
        try:
            await self.check_and_update()
        except Exception as e:
            logger.error(f"Scheduled feed update failed: {e!r}")
