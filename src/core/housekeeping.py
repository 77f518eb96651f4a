"""
Retention housekeeping for transient signature storage.

Stored images are only needed between the store and finalize calls of one
submission. A daily sweep removes anything older than the retention window,
linked or not, together with its link marker.
"""

import time
from functools import partial
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import ALLOWED_IMAGE_TYPES, get_storage_dir, get_retention_days, get_housekeeping_interval
from .storage import LINK_MARKER_SUFFIX
from . import heartbeat
from util.logging import logger

CLEANUP_TASK_NAME = "signature_cleanup"


@dataclass
class CleanupReport:
    """Outcome of one housekeeping sweep."""
    operation: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    files_scanned: int = 0
    files_removed: int = 0
    bytes_removed: int = 0
    errors: List[str] = None

    def __post_init__(self):
        if self.errors is None:
            self.errors = []

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        data = {
            "operation": self.operation,
            "started_at": self.started_at.isoformat(),
            "files_scanned": self.files_scanned,
            "files_removed": self.files_removed,
            "bytes_removed": self.bytes_removed,
            "errors": self.errors
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data


def _signature_files(storage_dir: Path) -> List[Path]:
    files = []
    for image_type in ALLOWED_IMAGE_TYPES:
        files.extend(storage_dir.glob(f"signature_*.{image_type}"))
    return sorted(files)


def cleanup_old_signatures(max_age_days: int = None, now: float = None) -> CleanupReport:
    """
    Delete stored signature images older than the retention window.

    Args:
        max_age_days: Retention window, defaults to SIGNATURE_RETENTION_DAYS
        now: Reference unix time, defaults to the current time

    Returns:
        CleanupReport: what was scanned and removed
    """
    if max_age_days is None:
        max_age_days = get_retention_days()
    if now is None:
        now = time.time()

    report = CleanupReport(operation="signature_cleanup", started_at=datetime.now())
    storage_dir = get_storage_dir()

    if not storage_dir.is_dir():
        report.completed_at = datetime.now()
        return report

    threshold = now - max_age_days * 24 * 60 * 60

    for path in _signature_files(storage_dir):
        report.files_scanned += 1
        try:
            stat = path.stat()
            if stat.st_mtime >= threshold:
                continue
            path.unlink()
            report.files_removed += 1
            report.bytes_removed += stat.st_size

            marker = path.with_name(path.name + LINK_MARKER_SUFFIX)
            if marker.exists():
                marker.unlink()
        except FileNotFoundError:
            # Removed concurrently by another sweep
            continue
        except OSError as e:
            report.errors.append(f"{path.name}: {e}")

    report.completed_at = datetime.now()
    logger.log_cleanup(
        report.files_scanned,
        report.files_removed,
        report.bytes_removed,
        status="failed" if report.errors else "success"
    )
    return report


def register_housekeeping(interval_sec: int = None, max_age_days: int = None) -> None:
    """Register the cleanup sweep with the heartbeat loop."""
    if interval_sec is None:
        interval_sec = get_housekeeping_interval()
    heartbeat.register_task(CLEANUP_TASK_NAME, interval_sec, partial(cleanup_old_signatures, max_age_days))
