"""Batch (cohort) routes, scoped to the active organization."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.auth import ADMIN_ONLY, ANY_MEMBER, Caller, require_role
from cohort_tracker.db import get_db
from cohort_tracker.schemas import (
    BatchCreate,
    BatchResponse,
    BatchStudentAssign,
    BatchUpdate,
    BatchWithCountResponse,
    UserResponse,
)
from cohort_tracker.services import batches as batch_service

router = APIRouter(prefix="/batches", tags=["batches"])


@router.post("", response_model=BatchResponse, status_code=status.HTTP_201_CREATED)
async def create_batch(
    data: BatchCreate,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await batch_service.create_batch(db, caller, data.name)


@router.get("", response_model=list[BatchWithCountResponse])
async def list_batches(
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    batches = await batch_service.list_batches(db, caller)
    return [
        BatchWithCountResponse(
            **BatchResponse.model_validate(batch).model_dump(), student_count=count
        )
        for batch, count in batches
    ]


@router.patch("/{batch_id}", response_model=BatchResponse)
async def update_batch(
    batch_id: UUID,
    data: BatchUpdate,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await batch_service.update_batch(db, caller, str(batch_id), data.name)


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_batch(
    batch_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a batch. Its students stay members without a batch."""
    await batch_service.delete_batch(db, caller, str(batch_id))


@router.post("/{batch_id}/students", response_model=UserResponse)
async def assign_student_to_batch(
    batch_id: UUID,
    data: BatchStudentAssign,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Move a member into this batch, replacing any previous batch."""
    return await batch_service.assign_student_to_batch(
        db, caller, str(batch_id), str(data.user_id)
    )


@router.delete("/students/{user_id}", response_model=UserResponse)
async def remove_student_from_batch(
    user_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Clear a member's batch."""
    return await batch_service.remove_student_from_batch(db, caller, str(user_id))
