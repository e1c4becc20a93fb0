"""Sweeper Scheduler - Periodic timeout sweep

Runs WorkflowEngine.sweep_timeouts on an APScheduler interval. The sweep
is synchronous (store and collaborator calls block), so it runs in a
worker thread to keep the event loop free. Several servers may sweep the
same database; the execution lock and the escalation guard keep that safe.
"""
import asyncio
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..engine import WorkflowEngine
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id

logger = get_logger(__name__)


class SweeperScheduler:
    """APScheduler wrapper around the timeout sweeper"""

    def __init__(self, engine: WorkflowEngine, interval_seconds: Optional[int] = None):
        self.engine = engine
        self.interval_seconds = interval_seconds or settings.sweeper_interval_seconds
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self._sweep_count = 0

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._sweep,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="sweep_timeouts",
            name="Apply step timeout policies",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(f"Sweeper scheduler started (every {self.interval_seconds}s)")

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown()
            self._is_running = False
            logger.info("Sweeper scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running"""
        return self._is_running

    async def _sweep(self) -> None:
        set_correlation_id(generate_correlation_id())
        try:
            outcomes = await asyncio.to_thread(self.engine.sweep_timeouts)
            self._sweep_count += 1
            if outcomes:
                logger.info(f"Sweep #{self._sweep_count} handled {len(outcomes)} step(s)")
        except Exception as e:
            logger.error(f"Error in timeout sweep job: {e}", exc_info=True)


# Global scheduler instance
_scheduler: Optional[SweeperScheduler] = None


def get_scheduler(engine: WorkflowEngine) -> SweeperScheduler:
    """Get or create scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = SweeperScheduler(engine)
    return _scheduler


def start_scheduler(engine: WorkflowEngine) -> None:
    """Start the global scheduler"""
    scheduler = get_scheduler(engine)
    scheduler.start()


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None


def is_scheduler_running() -> bool:
    return _scheduler is not None and _scheduler.is_running
