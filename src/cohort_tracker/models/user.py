"""User model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cohort_tracker.models.base import Base, TimestampMixin, generate_uuid
from cohort_tracker.models.enums import OrganizationRole

if TYPE_CHECKING:
    from cohort_tracker.models.batch import Batch
    from cohort_tracker.models.organization_member import OrganizationMember


class User(Base, TimestampMixin):
    """Identity record, linked to the identity provider via external_id.

    Organization roles live on OrganizationMember. ``legacy_role`` is a
    global fallback consulted only when no organization is active.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )
    # OIDC subject claim; null for users added by email who never signed in
    external_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        index=True,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    display_name: Mapped[str | None] = mapped_column(String(255))
    image: Mapped[str | None] = mapped_column(String(1024))
    batch_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey(
            "batches.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_users_batch_id",
        ),
        nullable=True,
        index=True,
    )
    legacy_role: Mapped[OrganizationRole | None] = mapped_column(
        Enum(OrganizationRole),
        nullable=True,
    )

    # Relationships
    batch: Mapped[Batch | None] = relationship(back_populates="students")
    memberships: Mapped[list[OrganizationMember]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )
