"""Progress and status aggregation over assignment rows."""

from collections.abc import Iterable
from dataclasses import dataclass

from cohort_tracker.models import AssignmentStatus


@dataclass(frozen=True)
class Progress:
    total: int
    done: int
    percentage: int


def completion_percentage(done: int, total: int) -> int:
    """round(100 * done / total) with halves rounded up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (200 * done + total) // (2 * total)


def compute_progress(statuses: Iterable[AssignmentStatus]) -> Progress:
    total = 0
    done = 0
    for status in statuses:
        total += 1
        if status == AssignmentStatus.DONE:
            done += 1
    return Progress(
        total=total, done=done, percentage=completion_percentage(done, total)
    )


def empty_status_counts() -> dict[str, int]:
    """Zero count for every status, keyed by status value."""
    return {status.value: 0 for status in AssignmentStatus}


def count_statuses(statuses: Iterable[AssignmentStatus]) -> dict[str, int]:
    counts = empty_status_counts()
    for status in statuses:
        counts[status.value] += 1
    return counts
