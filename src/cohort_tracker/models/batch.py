"""Batch model: a cohort of students within an organization."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cohort_tracker.models.base import Base, TimestampMixin, generate_uuid

if TYPE_CHECKING:
    from cohort_tracker.models.organization import Organization
    from cohort_tracker.models.user import User


class Batch(Base, TimestampMixin):
    """Cohort of students. Slugs are unique per organization."""

    __tablename__ = "batches"
    __table_args__ = (
        UniqueConstraint("organization_id", "slug", name="uq_batch_org_slug"),
    )

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
    slug: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Relationships
    organization: Mapped[Organization] = relationship(back_populates="batches")
    students: Mapped[list[User]] = relationship(back_populates="batch")
