"""Progress tracking utilities"""
import time
from typing import Any, Callable, Dict, Optional

import structlog

logger = structlog.get_logger()

# on_progress(label, percent, stats)
ProgressObserver = Callable[[str, float, Dict[str, Any]], None]


def notify(observer: Optional[ProgressObserver], label: str, percent: float,
           stats: Optional[Dict[str, Any]] = None) -> None:
    """Invoke an observer; its failures never affect the encode."""
    if observer is None:
        return
    try:
        observer(label, percent, stats or {})
    except Exception as e:
        logger.warning("Progress observer failed", label=label, error=str(e))


class ProgressTracker:
    """Logs rendition progress, throttled per label."""

    def __init__(self, update_interval: float = 2.0, min_step: float = 5.0):
        self.update_interval = update_interval
        self.min_step = min_step
        self._last: Dict[str, tuple] = {}

    def __call__(self, label: str, percent: float, stats: Dict[str, Any]) -> None:
        now = time.monotonic()
        last_time, last_percent = self._last.get(label, (0.0, -self.min_step))

        force_update = (
            percent >= 100.0 or
            percent - last_percent >= self.min_step or
            now - last_time >= self.update_interval
        )
        if not force_update:
            return

        self._last[label] = (now, percent)
        logger.info(
            "Rendition progress",
            label=label,
            progress=round(percent, 1),
            fps=stats.get('fps'),
            speed=stats.get('speed'),
            bitrate=stats.get('bitrate'),
        )
