"""Service for cleanup operations."""
import logging
import threading
import time
from datetime import timedelta

from exam_api.backend import DataBackend
from exam_api.config import ACTIVITY_CLEANUP_INTERVAL_SECONDS, STALE_ACTIVITY_MINUTES
from exam_api.errors import BackendError
from exam_api.models.db import ResultStatus
from exam_api.utils import utc_now

logger = logging.getLogger(__name__)


def _as_aware(value):
    # SQLite hands back naive datetimes for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=utc_now().tzinfo)
    return value


def mark_stale_results_inactive(
    backend: DataBackend, stale_minutes: int = STALE_ACTIVITY_MINUTES
) -> int:
    """Flag active results with no recent activity as inactive."""
    if stale_minutes <= 0:
        return 0

    cutoff = utc_now() - timedelta(minutes=stale_minutes)
    try:
        rows = backend.select(
            "exam_results",
            {"status": ResultStatus.ACTIVE.value},
            columns=["id", "updated_at", "taken_at"],
        )
        stale = [
            row["id"]
            for row in rows
            if (_as_aware(row["updated_at"] or row["taken_at"]) or cutoff) < cutoff
        ]
        if not stale:
            return 0
        updated = backend.update(
            "exam_results",
            {"id": stale, "status": ResultStatus.ACTIVE.value},
            {"status": ResultStatus.INACTIVE.value},
        )
    except BackendError as e:
        logger.error("Failed to clean up stale exam activity: %s", e)
        return 0

    if updated > 0:
        logger.info("Marked %s stale exam attempts inactive", updated)
    return updated


def schedule_activity_cleanup(
    backend: DataBackend, interval: int = ACTIVITY_CLEANUP_INTERVAL_SECONDS
) -> threading.Thread:
    """Run the stale activity cleanup periodically on a daemon thread."""

    def _worker() -> None:
        # Initial delay before first cleanup
        time.sleep(60)
        while True:
            mark_stale_results_inactive(backend)
            time.sleep(interval)

    thread = threading.Thread(
        target=_worker,
        name="activity_cleanup",
        daemon=True,
    )
    thread.start()
    return thread
