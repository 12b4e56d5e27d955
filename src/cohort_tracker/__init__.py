"""Cohort tracker: projects, features and student progress for cohorts."""

__version__ = "0.1.0"
