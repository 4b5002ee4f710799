"""
Progress and remaining-time estimation for sequential runs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from .common import format_duration

CALCULATING_TEXT = "ETA: calculating..."


@dataclass(frozen=True)
class EtaEstimate:
    """
    Snapshot of run progress.

    Attributes:
        completed: Finished steps, clamped into [0, total]
        total: Total steps (at least 1)
        percent: Completion percentage in [0, 100]
        average_seconds: Mean seconds per finished step (0 while calculating)
        remaining_seconds: Estimated seconds left (None while calculating)
        text: Human-readable estimate
    """
    completed: int
    total: int
    percent: float
    average_seconds: float
    remaining_seconds: float | None
    text: str

    @property
    def is_complete(self) -> bool:
        return self.completed >= self.total

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "completed": self.completed,
            "total": self.total,
            "percent": self.percent,
            "average_seconds": self.average_seconds,
            "remaining_seconds": self.remaining_seconds,
            "text": self.text,
        }


def estimate(elapsed_seconds: float, completed: int, total: int) -> EtaEstimate:
    """
    Estimate remaining time from the average duration of finished steps.

    Args:
        elapsed_seconds: Wall time since the run started
        completed: Finished steps
        total: Total steps

    Returns:
        EtaEstimate; never negative or NaN
    """
    if not math.isfinite(elapsed_seconds) or elapsed_seconds < 0:
        elapsed_seconds = 0.0
    total = max(1, total)
    completed = min(max(0, completed), total)
    percent = completed * 100.0 / total

    if completed == 0:
        return EtaEstimate(completed, total, percent, 0.0, None, CALCULATING_TEXT)

    average = elapsed_seconds / completed
    if completed == total:
        return EtaEstimate(
            completed, total, percent, average, 0.0,
            f"Completed in {format_duration(elapsed_seconds)}",
        )

    remaining = average * (total - completed)
    return EtaEstimate(
        completed, total, percent, average, remaining,
        f"ETA: {format_duration(remaining)} remaining",
    )
