"""Unauthenticated, read-only project views reached through share links."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.db import get_db
from cohort_tracker.schemas import (
    PublicFeatureResponse,
    PublicFeatureWithStatsResponse,
    PublicOrganization,
    PublicProjectResponse,
    PublicProjectStatsResponse,
)
from cohort_tracker.services import share as share_service
from cohort_tracker.services.share import FeatureStats

router = APIRouter(prefix="/public/projects", tags=["public"])


def _feature_with_stats(item: FeatureStats) -> PublicFeatureWithStatsResponse:
    return PublicFeatureWithStatsResponse(
        **PublicFeatureResponse.model_validate(item.feature).model_dump(),
        status_counts=item.status_counts,
    )


@router.get("/{share_id}", response_model=PublicProjectResponse)
async def get_shared_project(
    share_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    project = await share_service.get_shared_project(db, share_id)
    return PublicProjectResponse(
        name=project.name,
        description=project.description,
        created_at=project.created_at,
        organization=PublicOrganization(
            name=project.organization.name, logo=project.organization.logo
        ),
        feature_count=len(project.features),
        features=[PublicFeatureResponse.model_validate(f) for f in project.features],
    )


@router.get("/{share_id}/stats", response_model=PublicProjectStatsResponse)
async def get_shared_project_stats(
    share_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    stats = await share_service.get_shared_project_stats(db, share_id)
    return PublicProjectStatsResponse(
        total_students=stats.total_students,
        total_assignments=stats.total_assignments,
        status_breakdown=stats.status_breakdown,
        completion_percentage=stats.completion_percentage,
    )


@router.get(
    "/{share_id}/features", response_model=list[PublicFeatureWithStatsResponse]
)
async def list_shared_features(
    share_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    include_stats: bool = False,
):
    items = await share_service.list_shared_features(
        db, share_id, include_stats=include_stats
    )
    return [_feature_with_stats(item) for item in items]


@router.get(
    "/{share_id}/features/{feature_id}",
    response_model=PublicFeatureWithStatsResponse,
)
async def get_shared_feature(
    share_id: str,
    feature_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    item = await share_service.get_shared_feature(db, share_id, feature_id)
    return _feature_with_stats(item)
