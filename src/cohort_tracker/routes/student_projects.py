"""Student self-service routes: join a project, take features, leave."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.auth import ANY_MEMBER, Caller, require_role
from cohort_tracker.db import get_db
from cohort_tracker.schemas import (
    AssignmentResponse,
    AvailableProjectResponse,
    BoardAssignmentResponse,
    FeatureResponse,
    JoinedProjectResponse,
    LeaveProjectResponse,
    ProgressResponse,
    ProjectPreviewResponse,
    ProjectResponse,
    StudentBoardResponse,
    StudentProjectResponse,
    TakeFeatureRequest,
)
from cohort_tracker.services import enrollment as enrollment_service

router = APIRouter(prefix="/student-projects", tags=["student-projects"])


@router.get("", response_model=list[JoinedProjectResponse])
async def list_joined_projects(
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    joined = await enrollment_service.list_joined_projects(db, caller)
    return [
        JoinedProjectResponse(
            project=ProjectResponse.model_validate(j.project),
            joined_at=j.joined_at,
            feature_count=j.feature_count,
            progress=ProgressResponse.model_validate(j.progress),
        )
        for j in joined
    ]


@router.get("/available", response_model=list[AvailableProjectResponse])
async def list_available_projects(
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Projects of the organization the caller has not joined."""
    available = await enrollment_service.list_available_projects(db, caller)
    return [
        AvailableProjectResponse(
            project=ProjectResponse.model_validate(a.project),
            feature_count=a.feature_count,
        )
        for a in available
    ]


@router.get("/{project_id}/preview", response_model=ProjectPreviewResponse)
async def preview_project(
    project_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    project, features, joined = await enrollment_service.preview_project(
        db, caller, str(project_id)
    )
    return ProjectPreviewResponse(
        project=ProjectResponse.model_validate(project),
        features=[FeatureResponse.model_validate(f) for f in features],
        joined=joined,
    )


@router.post(
    "/{project_id}/join",
    response_model=StudentProjectResponse,
    status_code=status.HTTP_201_CREATED,
)
async def join_project(
    project_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await enrollment_service.join_project(db, caller, str(project_id))


@router.post(
    "/{project_id}/features",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def take_feature(
    project_id: UUID,
    data: TakeFeatureRequest,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Take a feature of a joined project into the caller's backlog."""
    return await enrollment_service.take_feature(
        db, caller, str(project_id), str(data.feature_id), status=data.status
    )


@router.delete("/{project_id}", response_model=LeaveProjectResponse)
async def leave_project(
    project_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Leave a project, removing the caller's assignments in it."""
    removed = await enrollment_service.leave_project(db, caller, str(project_id))
    return LeaveProjectResponse(removed_assignments=removed)


@router.get("/{project_id}/board", response_model=StudentBoardResponse)
async def get_student_board(
    project_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    board = await enrollment_service.get_student_board(db, caller, str(project_id))
    return StudentBoardResponse(
        project=ProjectResponse.model_validate(board.project),
        joined_at=board.joined_at,
        assignments={
            column.value: [BoardAssignmentResponse.model_validate(a) for a in items]
            for column, items in board.assignments.items()
        },
        progress=ProgressResponse.model_validate(board.progress),
        available_features=[
            FeatureResponse.model_validate(f) for f in board.available_features
        ],
    )
