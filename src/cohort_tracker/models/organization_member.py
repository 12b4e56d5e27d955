"""OrganizationMember model for user-organization relationships."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cohort_tracker.models.base import Base, TimestampMixin, generate_uuid
from cohort_tracker.models.enums import OrganizationRole

if TYPE_CHECKING:
    from cohort_tracker.models.organization import Organization
    from cohort_tracker.models.user import User


class OrganizationMember(Base, TimestampMixin):
    """Junction table for user-organization membership with roles.

    The role stored here is the only authoritative permission source for
    the organization. Users can have different roles in different
    organizations.
    """

    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_org_member"),
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
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[OrganizationRole] = mapped_column(
        Enum(OrganizationRole),
        nullable=False,
        default=OrganizationRole.STUDENT,
    )

    # Relationships
    organization: Mapped[Organization] = relationship(back_populates="members")
    user: Mapped[User] = relationship(back_populates="memberships")
