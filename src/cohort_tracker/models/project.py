"""Project model: a template of work owned by an organization."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cohort_tracker.models.base import Base, TimestampMixin, generate_uuid

if TYPE_CHECKING:
    from cohort_tracker.models.assignment import Assignment
    from cohort_tracker.models.feature import Feature
    from cohort_tracker.models.organization import Organization
    from cohort_tracker.models.user import User


class Project(Base, TimestampMixin):
    """Project template.

    ``share_id`` is generated once at creation and grants read-only public
    access to the project; it is never regenerated.
    """

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )
    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    share_id: Mapped[str] = mapped_column(
        String(36),
        unique=True,
        nullable=False,
        default=generate_uuid,
        index=True,
    )
    created_by_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Relationships
    organization: Mapped[Organization] = relationship(back_populates="projects")
    created_by: Mapped[User | None] = relationship()
    features: Mapped[list[Feature]] = relationship(
        back_populates="project",
        order_by="Feature.created_at",
        passive_deletes=True,
    )
    assignments: Mapped[list[Assignment]] = relationship(
        back_populates="project",
        passive_deletes=True,
    )
