"""Assignment routes: bulk rostering by project managers and status updates."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.auth import ANY_MEMBER, PM_OR_ADMIN, Caller, require_role
from cohort_tracker.db import get_db
from cohort_tracker.models import Assignment
from cohort_tracker.schemas import (
    AssignmentDetailResponse,
    AssignmentResponse,
    AssignmentStatusUpdate,
    BulkAssignRequest,
    BulkAssignResponse,
    FeatureResponse,
    ProgressResponse,
    ProjectAssignmentResponse,
    ProjectProgressResponse,
    ProjectResponse,
    RemoveStudentResponse,
    UserSummary,
)
from cohort_tracker.services import assignments as assignment_service

router = APIRouter(tags=["assignments"])


def assignment_detail(assignment: Assignment) -> AssignmentDetailResponse:
    return AssignmentDetailResponse(
        **AssignmentResponse.model_validate(assignment).model_dump(),
        feature=FeatureResponse.model_validate(assignment.feature),
        project_name=assignment.project.name,
    )


# --- Project managers ---


@router.post("/projects/{project_id}/assignments", response_model=BulkAssignResponse)
async def bulk_assign(
    project_id: UUID,
    data: BulkAssignRequest,
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Assign every feature of the project to each student.

    Pairs that already exist are skipped, so repeating the call is safe.
    """
    created = await assignment_service.bulk_assign(
        db, caller, str(project_id), [str(s) for s in data.student_ids]
    )
    return BulkAssignResponse(created=created)


@router.get(
    "/projects/{project_id}/assignments",
    response_model=list[ProjectAssignmentResponse],
)
async def list_project_assignments(
    project_id: UUID,
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    assignments = await assignment_service.list_project_assignments(
        db, caller, str(project_id)
    )
    return [
        ProjectAssignmentResponse(
            **AssignmentResponse.model_validate(a).model_dump(),
            student=UserSummary.model_validate(a.student),
            feature_title=a.feature.title,
        )
        for a in assignments
    ]


@router.get("/projects/{project_id}/students", response_model=list[UserSummary])
async def list_assigned_students(
    project_id: UUID,
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await assignment_service.list_assigned_students(
        db, caller, str(project_id)
    )


@router.delete(
    "/projects/{project_id}/students/{student_id}",
    response_model=RemoveStudentResponse,
)
async def remove_student_from_project(
    project_id: UUID,
    student_id: UUID,
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete all of a student's assignments in the project."""
    removed = await assignment_service.remove_student_from_project(
        db, caller, str(project_id), str(student_id)
    )
    return RemoveStudentResponse(removed=removed)


# --- Any member ---


@router.get("/assignments/me", response_model=list[AssignmentDetailResponse])
async def my_assignments(
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    assignments = await assignment_service.my_assignments(db, caller)
    return [assignment_detail(a) for a in assignments]


@router.get("/assignments/me/projects", response_model=list[ProjectProgressResponse])
async def my_projects(
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Projects the caller has assignments in, with completion progress."""
    projects = await assignment_service.my_projects(db, caller)
    return [
        ProjectProgressResponse(
            project=ProjectResponse.model_validate(p.project),
            progress=ProgressResponse.model_validate(p.progress),
        )
        for p in projects
    ]


@router.get("/assignments/{assignment_id}", response_model=AssignmentDetailResponse)
async def get_assignment(
    assignment_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    assignment = await assignment_service.get_assignment(
        db, caller, str(assignment_id)
    )
    return assignment_detail(assignment)


@router.patch(
    "/assignments/{assignment_id}/status", response_model=AssignmentDetailResponse
)
async def update_assignment_status(
    assignment_id: UUID,
    data: AssignmentStatusUpdate,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Move an assignment to any status. Students may only move their own."""
    assignment = await assignment_service.update_assignment_status(
        db, caller, str(assignment_id), data.status
    )
    return assignment_detail(assignment)
