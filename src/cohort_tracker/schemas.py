"""Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cohort_tracker.models.enums import (
    AssignmentOrigin,
    AssignmentStatus,
    OrganizationRole,
)


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Must not be blank")
    return v


# --- Organization Schemas ---


class OrganizationCreate(BaseModel):
    """Create an organization. The slug is derived from the name."""

    name: str = Field(min_length=1, max_length=255)
    logo: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v)


class OrganizationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    logo: str | None = None


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    logo: str | None
    created_at: datetime


class OrganizationWithRoleResponse(OrganizationResponse):
    """An organization as seen by one of its members."""

    role: OrganizationRole


class OrganizationDetailResponse(OrganizationResponse):
    """Organization with member, batch and project counts."""

    member_count: int
    batch_count: int
    project_count: int


# --- Batch Schemas ---


class BatchCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v)


class BatchUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=255)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v)


class BatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    name: str
    slug: str
    created_at: datetime


class BatchWithCountResponse(BatchResponse):
    student_count: int


class BatchStudentAssign(BaseModel):
    user_id: UUID


# --- User / Member Schemas ---


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    display_name: str | None
    image: str | None = None


class UserResponse(UserSummary):
    batch_id: str | None
    created_at: datetime


class BatchDetailResponse(BatchResponse):
    """A batch with its students."""

    organization_slug: str
    students: list[UserSummary]


class OrganizationBySlugResponse(OrganizationDetailResponse):
    batches: list[BatchResponse]


class MembershipInfo(BaseModel):
    organization_id: str
    organization_name: str
    organization_slug: str
    role: OrganizationRole


class CurrentUserResponse(UserResponse):
    """The caller, their effective role and their memberships."""

    role: OrganizationRole
    active_organization_id: str | None
    batch: BatchResponse | None
    memberships: list[MembershipInfo]


class MemberCreate(BaseModel):
    """Add a user to the organization by email."""

    email: str = Field(min_length=3, max_length=255)
    name: str | None = None
    role: OrganizationRole = OrganizationRole.STUDENT

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v


class MemberUpdateRole(BaseModel):
    role: OrganizationRole


class MemberResponse(BaseModel):
    """Organization member."""

    id: str
    user_id: str
    email: str
    display_name: str | None
    role: OrganizationRole
    batch_id: str | None
    batch_name: str | None


# --- Project Schemas ---


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v)


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    name: str
    description: str | None
    share_id: str
    created_at: datetime


class ProjectSummaryResponse(ProjectResponse):
    created_by_name: str | None
    feature_count: int
    assignment_count: int


# --- Feature Schemas ---


class FeatureCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    tags: list[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _strip_required(v)


class FeatureUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    tags: list[str] | None = None


class FeatureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    title: str
    description: str
    tags: list[str]
    created_at: datetime


class FeatureAssigneeResponse(BaseModel):
    """One student working on a feature."""

    assignment_id: str
    student_id: str
    student_name: str | None
    status: AssignmentStatus


class FeatureDetailResponse(FeatureResponse):
    assignees: list[FeatureAssigneeResponse]


class ProjectDetailResponse(ProjectResponse):
    """A project with its features and who works on them."""

    feature_count: int
    assignment_count: int
    features: list[FeatureDetailResponse]


# --- Assignment Schemas ---


class BulkAssignRequest(BaseModel):
    student_ids: list[UUID] = Field(min_length=1)


class BulkAssignResponse(BaseModel):
    created: int


class RemoveStudentResponse(BaseModel):
    removed: int


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    feature_id: str
    student_id: str
    status: AssignmentStatus
    origin: AssignmentOrigin
    assigned_at: datetime


class AssignmentDetailResponse(AssignmentResponse):
    feature: FeatureResponse
    project_name: str


class ProjectAssignmentResponse(AssignmentResponse):
    """An assignment as listed for project managers."""

    student: UserSummary
    feature_title: str


class AssignmentStatusUpdate(BaseModel):
    status: AssignmentStatus


class ProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    done: int
    percentage: int


class ProjectProgressResponse(BaseModel):
    project: ProjectResponse
    progress: ProgressResponse


# --- Student Project Schemas ---


class TakeFeatureRequest(BaseModel):
    feature_id: UUID
    status: AssignmentStatus = AssignmentStatus.BACKLOG


class StudentProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    project_id: str
    joined_at: datetime


class JoinedProjectResponse(BaseModel):
    project: ProjectResponse
    joined_at: datetime
    feature_count: int
    progress: ProgressResponse


class AvailableProjectResponse(BaseModel):
    project: ProjectResponse
    feature_count: int


class ProjectPreviewResponse(BaseModel):
    project: ProjectResponse
    features: list[FeatureResponse]
    joined: bool


class BoardAssignmentResponse(AssignmentResponse):
    feature: FeatureResponse


class StudentBoardResponse(BaseModel):
    """A student's kanban view of a joined project.

    ``assignments`` maps each status value to its assignments, ordered
    InProgress, Todo, Backlog, Done, Canceled.
    """

    project: ProjectResponse
    joined_at: datetime
    assignments: dict[str, list[BoardAssignmentResponse]]
    progress: ProgressResponse
    available_features: list[FeatureResponse]


class LeaveProjectResponse(BaseModel):
    removed_assignments: int


# --- Public Share Schemas ---


class PublicOrganization(BaseModel):
    name: str
    logo: str | None


class PublicFeatureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    tags: list[str]
    created_at: datetime


class PublicFeatureWithStatsResponse(PublicFeatureResponse):
    status_counts: dict[str, int] | None = None


class PublicProjectResponse(BaseModel):
    """Read-only project view for share links. Contains no student data."""

    name: str
    description: str | None
    created_at: datetime
    organization: PublicOrganization
    feature_count: int
    features: list[PublicFeatureResponse]


class PublicProjectStatsResponse(BaseModel):
    total_students: int
    total_assignments: int
    status_breakdown: dict[str, int]
    completion_percentage: int


# --- Auth Schemas ---


class TokenExchangeRequest(BaseModel):
    """Request a token for an organization, or with no active organization."""

    org_id: str | None = None


class TokenExchangeResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
