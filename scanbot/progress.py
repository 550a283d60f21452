"""Rolling-average progress and ETA tracking for scan runs."""

from collections import deque
from typing import Deque, Optional

from .models import ProgressResponse

INDETERMINATE = "--"


def format_duration(seconds: Optional[float]) -> str:
    """Human readable duration, "--" when unknown."""
    if seconds is None or seconds != seconds or seconds < 0:
        return INDETERMINATE
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


class ProgressEstimator:
    """Tracks completed waypoint steps and averages the last few step durations."""

    def __init__(self, window: int = 6):
        self.window = window
        self.total_steps = 0
        self.completed_steps = 0
        self.step_durations: Deque[float] = deque(maxlen=window)

    def reset(self, total_steps: int) -> None:
        self.total_steps = max(0, int(total_steps))
        self.completed_steps = 0
        self.step_durations.clear()

    def record_step(self, duration_s: float) -> None:
        self.step_durations.append(max(0.0, float(duration_s)))
        self.completed_steps += 1

    @property
    def remaining_steps(self) -> int:
        return max(0, self.total_steps - self.completed_steps)

    @property
    def average_step_s(self) -> Optional[float]:
        if not self.step_durations:
            return None
        average = sum(self.step_durations) / len(self.step_durations)
        return average if average > 0 else None

    @property
    def percentage(self) -> float:
        if self.total_steps <= 0:
            return 0.0
        return max(0.0, min(100.0, self.completed_steps / self.total_steps * 100.0))

    @property
    def eta_s(self) -> Optional[float]:
        average = self.average_step_s
        if average is None or self.total_steps <= 0:
            return None
        return average * self.remaining_steps

    def eta_display(self) -> str:
        return format_duration(self.eta_s)

    def to_response(self) -> ProgressResponse:
        return ProgressResponse(
            total_steps=self.total_steps,
            completed_steps=self.completed_steps,
            percentage=round(self.percentage, 2),
            eta_seconds=self.eta_s,
            eta_display=self.eta_display(),
            average_step_seconds=self.average_step_s,
        )
