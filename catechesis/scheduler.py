"""
catechesis.scheduler — Periodic Background Jobs
=================================================

Two asyncio loops run inside the API process:

- **Nightly analytics** — once a day at ``snapshot_hour`` (UTC), runs the
  three snapshot builders for the current date.
- **Leaderboard rebuild** — every ``leaderboard_rebuild_minutes``, rebuilds
  the weekly, monthly and all-time boards.

Both run the blocking work via ``run_db()`` so the event loop stays free.
A failed run is logged and the loop keeps going.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from sqlalchemy import Engine

from catechesis.collaborators import ContentCatalog
from catechesis.config import CatechesisConfig
from catechesis.database.engine import run_db
from catechesis.database.models import utcnow
from catechesis.services.analytics_service import run_nightly_snapshot
from catechesis.services.community_service import rebuild_all_leaderboards

logger = logging.getLogger(__name__)


def seconds_until_hour(hour: int, now: datetime | None = None) -> float:
    """Seconds from *now* until the next occurrence of ``hour:00`` UTC."""
    now = now or utcnow()
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class PeriodicJobs:
    """Owns the background tasks; ``start`` / ``stop`` from the app lifespan."""

    def __init__(
        self,
        engine: Engine,
        config: CatechesisConfig,
        catalog: ContentCatalog | None = None,
    ) -> None:
        self.engine = engine
        self.config = config
        self.catalog = catalog
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._snapshot_loop(), name="analytics-snapshot"),
            asyncio.create_task(self._leaderboard_loop(), name="leaderboard-rebuild"),
        ]
        logger.info(
            "Scheduler started (snapshot at %02d:00 UTC, leaderboards every %d min)",
            self.config.snapshot_hour, self.config.leaderboard_rebuild_minutes,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    # -------------------------------------------------------------------
    # Nightly analytics
    # -------------------------------------------------------------------
    async def run_snapshot_once(self) -> dict[str, bool] | None:
        try:
            return await run_db(run_nightly_snapshot, self.engine, None, self.catalog)
        except Exception:
            logger.exception("Analytics snapshot task failed", extra={"task": "snapshot"})
            return None

    async def _snapshot_loop(self) -> None:
        while True:
            await asyncio.sleep(seconds_until_hour(self.config.snapshot_hour))
            await self.run_snapshot_once()

    # -------------------------------------------------------------------
    # Leaderboards
    # -------------------------------------------------------------------
    async def run_leaderboards_once(self) -> dict | None:
        try:
            result = await run_db(rebuild_all_leaderboards, self.engine)
            logger.info("Leaderboard rebuild complete: %s", result)
            return result
        except Exception:
            logger.exception("Leaderboard rebuild failed", extra={"task": "leaderboards"})
            return None

    async def _leaderboard_loop(self) -> None:
        interval = self.config.leaderboard_rebuild_minutes * 60
        while True:
            await self.run_leaderboards_once()
            await asyncio.sleep(interval)
