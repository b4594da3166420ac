"""
Threshold-crossing detection with a per-subject high-water mark.
"""

import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_MILESTONE_WINDOW = 3600.0  # seconds

Number = Union[int, float, Decimal]

VOLUME_MILESTONES: Tuple[int, ...] = (1000, 5000, 10000, 25000, 50000, 100000)
TRANSACTION_MILESTONES: Tuple[int, ...] = (10, 50, 100, 500, 1000)


@dataclass
class MilestoneState:
    """Highest threshold notified for one (subject, metric) pair."""

    threshold: Decimal
    updated_at: float


class MilestoneTracker:
    """
    Detects ladder crossings and remembers the highest one notified.

    A threshold qualifies when ``old < threshold <= new`` and it is above
    the recorded high-water mark. Only the lowest qualifying threshold is
    returned, and it is recorded before returning, so a burst of updates
    cannot notify it twice.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_MILESTONE_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._states: Dict[Tuple[str, str], MilestoneState] = {}
        self._lock = threading.Lock()

    def check_crossing(
        self,
        subject_id: str,
        metric: str,
        old_value: Number,
        new_value: Number,
        ladder: Sequence[Number],
    ) -> Optional[Decimal]:
        """
        Return the lowest newly crossed threshold, or None.

        Args:
            subject_id: User the metric belongs to
            metric: Metric name, e.g. ``volume``
            old_value: Value before the update
            new_value: Value after the update
            ladder: Ascending thresholds

        Returns:
            The crossed threshold, now recorded as the high-water mark
        """
        old = Decimal(str(old_value))
        new = Decimal(str(new_value))
        if new <= old:
            return None

        key = (str(subject_id), metric)
        with self._lock:
            state = self._states.get(key)
            high_water = state.threshold if state is not None else None

            for raw_threshold in sorted(ladder):
                threshold = Decimal(str(raw_threshold))
                if not (old < threshold <= new):
                    continue
                if high_water is not None and threshold <= high_water:
                    continue
                self._states[key] = MilestoneState(threshold, self._clock())
                logger.debug(
                    f"Milestone {metric}={threshold} crossed for {subject_id} "
                    f"({old} -> {new})"
                )
                return threshold

        return None

    def high_water_mark(self, subject_id: str, metric: str) -> Optional[Decimal]:
        with self._lock:
            state = self._states.get((str(subject_id), metric))
            return state.threshold if state is not None else None

    def sweep(self) -> int:
        """Evict pairs not updated within the window. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [
                key
                for key, state in self._states.items()
                if now - state.updated_at >= self.retention_seconds
            ]
            for key in expired:
                del self._states[key]

        if expired:
            logger.debug(f"Milestone sweep removed {len(expired)} expired entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
