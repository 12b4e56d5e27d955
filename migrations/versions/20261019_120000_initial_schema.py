"""Initial cohort tracker schema.

Includes Organization, OrganizationMember, User, Batch, Project, Feature,
Assignment and StudentProject tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 12:00:00

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

organization_role = sa.Enum("ADMIN", "PM", "STUDENT", name="organizationrole")
assignment_status = sa.Enum(
    "BACKLOG", "TODO", "IN_PROGRESS", "DONE", "CANCELED", name="assignmentstatus"
)
assignment_origin = sa.Enum("BULK", "SELF", name="assignmentorigin")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create all tables."""
    # Users (batch FK added after batches exists)
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "external_id", sa.String(255), unique=True, nullable=True, index=True
        ),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("image", sa.String(1024), nullable=True),
        sa.Column("batch_id", sa.String(36), nullable=True, index=True),
        sa.Column("legacy_role", organization_role, nullable=True),
        _created_at(),
    )

    op.create_table(
        "organizations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(64), unique=True, nullable=False, index=True),
        sa.Column("logo", sa.String(1024), nullable=True),
        sa.Column(
            "created_by_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
    )

    # Organization Members (junction table with roles)
    op.create_table(
        "organization_members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(36),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("role", organization_role, nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id", "organization_id", name="uq_org_member"),
    )

    op.create_table(
        "batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(36),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(64), nullable=False, index=True),
        _created_at(),
        sa.UniqueConstraint("organization_id", "slug", name="uq_batch_org_slug"),
    )
    op.create_foreign_key(
        "fk_users_batch_id",
        "users",
        "batches",
        ["batch_id"],
        ["id"],
        ondelete="SET NULL",
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(36),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("share_id", sa.String(36), unique=True, nullable=False, index=True),
        sa.Column(
            "created_by_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
    )

    op.create_table(
        "features",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "project_id",
            sa.String(36),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("tags", sa.JSON, nullable=False),
        _created_at(),
    )

    op.create_table(
        "assignments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "project_id",
            sa.String(36),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "feature_id",
            sa.String(36),
            sa.ForeignKey("features.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "student_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("status", assignment_status, nullable=False),
        sa.Column("origin", assignment_origin, nullable=False),
        sa.Column(
            "assigned_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "student_id", "feature_id", name="uq_assignment_student_feature"
        ),
    )

    # Voluntary enrollments (student self-service)
    op.create_table(
        "student_projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "student_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "project_id",
            sa.String(36),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("student_id", "project_id", name="uq_student_project"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("student_projects")
    op.drop_table("assignments")
    op.drop_table("features")
    op.drop_table("projects")
    op.drop_constraint("fk_users_batch_id", "users", type_="foreignkey")
    op.drop_table("batches")
    op.drop_table("organization_members")
    op.drop_table("organizations")
    op.drop_table("users")
    assignment_origin.drop(op.get_bind(), checkfirst=True)
    assignment_status.drop(op.get_bind(), checkfirst=True)
    organization_role.drop(op.get_bind(), checkfirst=True)
