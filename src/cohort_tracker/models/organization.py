"""Organization model for multi-tenancy."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cohort_tracker.models.base import Base, TimestampMixin, generate_uuid

if TYPE_CHECKING:
    from cohort_tracker.models.batch import Batch
    from cohort_tracker.models.organization_member import OrganizationMember
    from cohort_tracker.models.project import Project
    from cohort_tracker.models.user import User


class Organization(Base, TimestampMixin):
    """Tenant root entity.

    Users belong to organizations via OrganizationMember with roles.
    Every organization keeps at least one admin member.
    """

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    logo: Mapped[str | None] = mapped_column(String(1024))
    created_by_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Relationships
    created_by: Mapped[User | None] = relationship()
    members: Mapped[list[OrganizationMember]] = relationship(
        back_populates="organization",
        passive_deletes=True,
    )
    batches: Mapped[list[Batch]] = relationship(
        back_populates="organization",
        passive_deletes=True,
    )
    projects: Mapped[list[Project]] = relationship(
        back_populates="organization",
        passive_deletes=True,
    )
