"""Scheduler for background consistency refreshes.

This module provides:
- ConsistencyPoller: runs a refresh callable on a fixed interval
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class ConsistencyPoller:
    """Periodically refreshes client data from the server.

    A failed refresh is logged and the next run happens on schedule.
    """

    def __init__(self, refresh: Callable[[], Any], interval: float = 30.0) -> None:
        """Initialize the poller.

        Args:
            refresh: Callable performing one refresh.
            interval: Seconds between refreshes.
        """
        self._refresh = refresh
        self._interval = interval
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        """Whether the poller is started."""
        return self._scheduler is not None

    def _refresh_job(self) -> None:
        """Job function for scheduled refresh."""
        try:
            self._refresh()
        except Exception:
            logger.exception("Auto-refresh failed")

    def start(self) -> None:
        """Start the poller."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._refresh_job,
            trigger=IntervalTrigger(seconds=self._interval),
            id="consistency_refresh",
            name="Consistency refresh",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Consistency poller started (every %.1fs)", self._interval)

    def stop(self) -> None:
        """Stop the poller."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Consistency poller stopped")

    def run_now(self) -> None:
        """Run one refresh immediately, with the same error handling."""
        self._refresh_job()
