"""Service layer for business logic."""

from cohort_tracker.services.progress import Progress, compute_progress
from cohort_tracker.services.slug import generate_unique_slug, slugify

__all__ = [
    "Progress",
    "compute_progress",
    "generate_unique_slug",
    "slugify",
]
