"""Project and feature routes.

Any member can read projects of the active organization; authoring is
limited to project managers and admins.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.auth import ANY_MEMBER, PM_OR_ADMIN, Caller, require_role
from cohort_tracker.db import get_db
from cohort_tracker.models import Feature
from cohort_tracker.schemas import (
    FeatureAssigneeResponse,
    FeatureCreate,
    FeatureDetailResponse,
    FeatureResponse,
    FeatureUpdate,
    ProjectCreate,
    ProjectDetailResponse,
    ProjectResponse,
    ProjectSummaryResponse,
    ProjectUpdate,
)
from cohort_tracker.services import projects as project_service

router = APIRouter(tags=["projects"])


def feature_detail(feature: Feature) -> FeatureDetailResponse:
    return FeatureDetailResponse(
        **FeatureResponse.model_validate(feature).model_dump(),
        assignees=[
            FeatureAssigneeResponse(
                assignment_id=a.id,
                student_id=a.student_id,
                student_name=a.student.display_name or a.student.email,
                status=a.status,
            )
            for a in feature.assignments
        ],
    )


# --- Project endpoints ---


@router.post(
    "/projects", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED
)
async def create_project(
    data: ProjectCreate,
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await project_service.create_project(
        db, caller, name=data.name, description=data.description
    )


@router.get("/projects", response_model=list[ProjectSummaryResponse])
async def list_projects(
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    summaries = await project_service.list_projects(db, caller)
    return [
        ProjectSummaryResponse(
            **ProjectResponse.model_validate(s.project).model_dump(),
            created_by_name=(
                s.project.created_by.display_name if s.project.created_by else None
            ),
            feature_count=s.feature_count,
            assignment_count=s.assignment_count,
        )
        for s in summaries
    ]


@router.get("/projects/{project_id}", response_model=ProjectDetailResponse)
async def get_project(
    project_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """A project with its features and who is working on each."""
    project = await project_service.get_project_detail(db, caller, str(project_id))
    features = [feature_detail(f) for f in project.features]
    return ProjectDetailResponse(
        **ProjectResponse.model_validate(project).model_dump(),
        feature_count=len(features),
        assignment_count=sum(len(f.assignees) for f in features),
        features=features,
    )


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: UUID,
    data: ProjectUpdate,
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await project_service.update_project(
        db, caller, str(project_id), name=data.name, description=data.description
    )


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: UUID,
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a project with its features, assignments and enrollments."""
    await project_service.delete_project(db, caller, str(project_id))


# --- Feature endpoints ---


@router.get(
    "/projects/{project_id}/features", response_model=list[FeatureDetailResponse]
)
async def list_features(
    project_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    features = await project_service.list_features(db, caller, str(project_id))
    return [feature_detail(f) for f in features]


@router.post(
    "/projects/{project_id}/features",
    response_model=FeatureResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_feature(
    project_id: UUID,
    data: FeatureCreate,
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await project_service.create_feature(
        db,
        caller,
        str(project_id),
        title=data.title,
        description=data.description,
        tags=data.tags,
    )


@router.get("/features/{feature_id}", response_model=FeatureDetailResponse)
async def get_feature(
    feature_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    feature = await project_service.get_feature(db, caller, str(feature_id))
    return feature_detail(feature)


@router.patch("/features/{feature_id}", response_model=FeatureResponse)
async def update_feature(
    feature_id: UUID,
    data: FeatureUpdate,
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await project_service.update_feature(
        db,
        caller,
        str(feature_id),
        title=data.title,
        description=data.description,
        tags=data.tags,
    )


@router.delete("/features/{feature_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_feature(
    feature_id: UUID,
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a feature and every assignment of it."""
    await project_service.delete_feature(db, caller, str(feature_id))
