"""Enumeration types for database models."""

import enum


class OrganizationRole(str, enum.Enum):
    """Role of a user within an organization."""

    ADMIN = "admin"  # Manages the organization, its batches and members
    PM = "pm"  # Authors projects and features, assigns students
    STUDENT = "student"  # Tracks their own assignments


class AssignmentStatus(str, enum.Enum):
    """Self-reported workflow state of an assignment.

    Any status may move to any other status.
    """

    BACKLOG = "Backlog"
    TODO = "Todo"
    IN_PROGRESS = "InProgress"
    DONE = "Done"
    CANCELED = "Canceled"


class AssignmentOrigin(str, enum.Enum):
    """How an assignment came into existence."""

    BULK = "bulk"  # Rostered by a pm/admin
    SELF = "self"  # Taken by the student from a joined project
