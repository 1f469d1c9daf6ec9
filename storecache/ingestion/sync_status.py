"""
Order Sync Status

Process-wide state token for the order sync. Transitions are serialized
through an asyncio.Lock; a second run is refused, never queued.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class SyncState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    FAILED = "FAILED"


class SyncInProgressError(Exception):
    """Raised when a sync is requested while another one is running."""

    def __init__(self, started_at: Optional[datetime] = None):
        super().__init__("Order sync already in progress")
        self.started_at = started_at


@dataclass
class SyncSnapshot:
    state: SyncState
    started_at: Optional[datetime]
    last_completed_at: Optional[datetime]
    last_result: Optional[Dict[str, Any]]
    last_error: Optional[str]

    @property
    def is_processing(self) -> bool:
        return self.state == SyncState.RUNNING


class SyncTracker:
    """
    Owner of the sync state.

    Example:
        if not await tracker.try_begin():
            raise SyncInProgressError()
        try:
            result = await run()
        except Exception as e:
            await tracker.fail(e)
            raise
        except BaseException as e:
            tracker.abort(e)
            raise
        await tracker.complete(result)
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._state = SyncState.IDLE
        self._started_at: Optional[datetime] = None
        self._last_completed_at: Optional[datetime] = None
        self._last_result: Optional[Dict[str, Any]] = None
        self._last_error: Optional[str] = None

    @property
    def state(self) -> SyncState:
        return self._state

    async def try_begin(self) -> bool:
        """Move to RUNNING; False if a run is already active."""
        async with self._lock:
            if self._state == SyncState.RUNNING:
                return False
            self._state = SyncState.RUNNING
            self._started_at = datetime.now(timezone.utc)
            self._last_error = None
            return True

    async def complete(self, result: Optional[Dict[str, Any]] = None) -> None:
        async with self._lock:
            self._state = SyncState.IDLE
            self._last_completed_at = datetime.now(timezone.utc)
            self._last_result = result
            self._started_at = None

    async def fail(self, error: BaseException) -> None:
        async with self._lock:
            self._state = SyncState.FAILED
            self._last_error = str(error) or type(error).__name__
            self._started_at = None
        logger.error("Order sync failed", error=self._last_error)

    def abort(self, error: BaseException) -> None:
        """Release a run interrupted by cancellation. Must not await."""
        self._state = SyncState.FAILED
        self._last_error = str(error) or type(error).__name__
        self._started_at = None
        logger.warning("Order sync interrupted", error=self._last_error)

    async def snapshot(self) -> SyncSnapshot:
        async with self._lock:
            return SyncSnapshot(
                state=self._state,
                started_at=self._started_at,
                last_completed_at=self._last_completed_at,
                last_result=self._last_result,
                last_error=self._last_error,
            )


_tracker: Optional[SyncTracker] = None


def get_sync_tracker() -> SyncTracker:
    """The process-wide tracker."""
    global _tracker
    if _tracker is None:
        _tracker = SyncTracker()
    return _tracker
