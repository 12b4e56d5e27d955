"""Tests for student self-service: joining, taking features, leaving."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.exceptions import ConflictError, ForbiddenError, NotFoundError
from cohort_tracker.models import (
    Assignment,
    AssignmentOrigin,
    AssignmentStatus,
    StudentProject,
)
from cohort_tracker.services import assignments as assignment_service
from cohort_tracker.services import enrollment as enrollment_service
from tests.conftest import OrgFixture, create_project


async def _count(session: AsyncSession, model, student_id: str) -> int:
    return await session.scalar(
        select(func.count(model.id)).where(model.student_id == student_id)
    )


@pytest.fixture
async def joined(async_session: AsyncSession, acme: OrgFixture, todo_project):
    """The student has joined the project."""
    project, features = todo_project
    await enrollment_service.join_project(
        async_session, acme.student_caller, project.id
    )
    return project, features


# --- Join ---


@pytest.mark.asyncio
async def test_join_project_route(
    client: AsyncClient, login, acme: OrgFixture, todo_project
):
    project, _ = todo_project
    login(acme.student, acme.org)

    response = await client.post(f"/api/v1/student-projects/{project.id}/join")
    assert response.status_code == 201
    data = response.json()
    assert data["student_id"] == acme.student.id
    assert data["project_id"] == project.id

    response = await client.post(f"/api/v1/student-projects/{project.id}/join")
    assert response.status_code == 409
    assert response.json() == {
        "error": "Already joined this project",
        "code": "CONFLICT",
    }


@pytest.mark.asyncio
async def test_join_project_of_other_tenant(
    async_session: AsyncSession, globex: OrgFixture, todo_project
):
    project, _ = todo_project
    with pytest.raises(NotFoundError):
        await enrollment_service.join_project(
            async_session, globex.student_caller, project.id
        )


# --- Take ---


@pytest.mark.asyncio
async def test_take_feature_requires_join(
    async_session: AsyncSession, acme: OrgFixture, todo_project
):
    project, features = todo_project
    with pytest.raises(ForbiddenError, match="Join the project"):
        await enrollment_service.take_feature(
            async_session, acme.student_caller, project.id, features[0].id
        )


@pytest.mark.asyncio
async def test_take_feature_creates_self_assignment(
    async_session: AsyncSession, acme: OrgFixture, joined
):
    project, features = joined
    assignment = await enrollment_service.take_feature(
        async_session, acme.student_caller, project.id, features[1].id
    )
    assert assignment.project_id == project.id
    assert assignment.status == AssignmentStatus.BACKLOG
    assert assignment.origin == AssignmentOrigin.SELF

    with pytest.raises(ConflictError, match="already assigned"):
        await enrollment_service.take_feature(
            async_session, acme.student_caller, project.id, features[1].id
        )


@pytest.mark.asyncio
async def test_take_feature_of_other_project(
    async_session: AsyncSession, acme: OrgFixture, joined
):
    project, _ = joined
    _, other_features = await create_project(
        async_session, acme.org, "Chat App", ("Rooms",)
    )
    with pytest.raises(NotFoundError, match="Feature not found in this project"):
        await enrollment_service.take_feature(
            async_session, acme.student_caller, project.id, other_features[0].id
        )


@pytest.mark.asyncio
async def test_take_feature_already_rostered(
    async_session: AsyncSession, acme: OrgFixture, joined
):
    project, features = joined
    await assignment_service.bulk_assign(
        async_session, acme.pm_caller, project.id, [acme.student.id]
    )
    with pytest.raises(ConflictError):
        await enrollment_service.take_feature(
            async_session, acme.student_caller, project.id, features[0].id
        )


@pytest.mark.asyncio
async def test_take_feature_route_with_status(
    client: AsyncClient, login, acme: OrgFixture, joined
):
    project, features = joined
    login(acme.student, acme.org)

    response = await client.post(
        f"/api/v1/student-projects/{project.id}/features",
        json={"feature_id": features[2].id, "status": "Todo"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "Todo"
    assert data["origin"] == "self"

    response = await client.post(
        f"/api/v1/student-projects/{project.id}/features",
        json={"feature_id": "nope"},
    )
    assert response.status_code == 400


# --- Leave ---


@pytest.mark.asyncio
async def test_leave_project_removes_assignments_and_enrollment(
    client: AsyncClient,
    login,
    acme: OrgFixture,
    joined,
    async_session: AsyncSession,
):
    project, features = joined
    for feature in features[:2]:
        await enrollment_service.take_feature(
            async_session, acme.student_caller, project.id, feature.id
        )
    await assignment_service.bulk_assign(
        async_session, acme.pm_caller, project.id, [acme.other_student.id]
    )

    login(acme.student, acme.org)
    response = await client.delete(f"/api/v1/student-projects/{project.id}")
    assert response.status_code == 200
    assert response.json() == {"removed_assignments": 2}

    assert await _count(async_session, Assignment, acme.student.id) == 0
    assert await _count(async_session, StudentProject, acme.student.id) == 0
    # Other students are untouched
    assert await _count(async_session, Assignment, acme.other_student.id) == 3

    response = await client.delete(f"/api/v1/student-projects/{project.id}")
    assert response.status_code == 404
    assert response.json()["error"] == "Project not joined"


@pytest.mark.asyncio
async def test_leave_project_is_atomic(
    async_session: AsyncSession, acme: OrgFixture, joined, monkeypatch
):
    """A failure after deleting assignments leaves everything in place."""
    project, features = joined
    await enrollment_service.take_feature(
        async_session, acme.student_caller, project.id, features[0].id
    )
    # Rollback expires loaded instances, so keep plain ids
    student_id = acme.student.id
    project_id = project.id

    async def broken_delete(instance):
        raise RuntimeError("disk full")

    monkeypatch.setattr(async_session, "delete", broken_delete)
    with pytest.raises(RuntimeError):
        await enrollment_service.leave_project(
            async_session, acme.student_caller, project_id
        )
    await async_session.rollback()

    assert await _count(async_session, Assignment, student_id) == 1
    assert await _count(async_session, StudentProject, student_id) == 1


# --- Listing and board ---


@pytest.mark.asyncio
async def test_joined_and_available_projects(
    client: AsyncClient,
    login,
    acme: OrgFixture,
    joined,
    async_session: AsyncSession,
):
    project, features = joined
    await create_project(async_session, acme.org, "Chat App", ("Rooms", "DMs"))
    assignment = await enrollment_service.take_feature(
        async_session, acme.student_caller, project.id, features[0].id
    )
    await assignment_service.update_assignment_status(
        async_session, acme.student_caller, assignment.id, AssignmentStatus.DONE
    )

    login(acme.student, acme.org)
    response = await client.get("/api/v1/student-projects")
    assert response.status_code == 200
    data = response.json()
    assert len(data) == 1
    assert data[0]["project"]["id"] == project.id
    assert data[0]["feature_count"] == 3
    assert data[0]["progress"] == {"total": 1, "done": 1, "percentage": 100}

    response = await client.get("/api/v1/student-projects/available")
    assert response.status_code == 200
    available = response.json()
    assert [a["project"]["name"] for a in available] == ["Chat App"]
    assert available[0]["feature_count"] == 2


@pytest.mark.asyncio
async def test_preview_project(client: AsyncClient, login, acme: OrgFixture, joined):
    project, _ = joined

    login(acme.student, acme.org)
    response = await client.get(f"/api/v1/student-projects/{project.id}/preview")
    assert response.status_code == 200
    data = response.json()
    assert data["joined"] is True
    assert [f["title"] for f in data["features"]] == ["Login", "Signup", "Dashboard"]

    login(acme.other_student, acme.org)
    response = await client.get(f"/api/v1/student-projects/{project.id}/preview")
    assert response.json()["joined"] is False


@pytest.mark.asyncio
async def test_student_board(
    client: AsyncClient,
    login,
    acme: OrgFixture,
    joined,
    async_session: AsyncSession,
):
    project, features = joined
    await enrollment_service.take_feature(
        async_session,
        acme.student_caller,
        project.id,
        features[0].id,
        status=AssignmentStatus.IN_PROGRESS,
    )
    await enrollment_service.take_feature(
        async_session,
        acme.student_caller,
        project.id,
        features[2].id,
        status=AssignmentStatus.DONE,
    )

    login(acme.student, acme.org)
    response = await client.get(f"/api/v1/student-projects/{project.id}/board")
    assert response.status_code == 200
    board = response.json()

    assert list(board["assignments"]) == [
        "InProgress",
        "Todo",
        "Backlog",
        "Done",
        "Canceled",
    ]
    assert [a["feature"]["title"] for a in board["assignments"]["InProgress"]] == [
        "Login"
    ]
    assert [a["feature"]["title"] for a in board["assignments"]["Done"]] == [
        "Dashboard"
    ]
    assert board["assignments"]["Todo"] == []
    assert [f["title"] for f in board["available_features"]] == ["Signup"]
    assert board["progress"] == {"total": 2, "done": 1, "percentage": 50}


@pytest.mark.asyncio
async def test_board_requires_join(
    client: AsyncClient, login, acme: OrgFixture, todo_project
):
    project, _ = todo_project
    login(acme.student, acme.org)
    response = await client.get(f"/api/v1/student-projects/{project.id}/board")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_self_service_flow(
    client: AsyncClient, login, acme: OrgFixture, todo_project
):
    """Take before join is refused; after joining a feature can be taken once."""
    project, features = todo_project
    url = f"/api/v1/student-projects/{project.id}"
    login(acme.other_student, acme.org)

    body = {"feature_id": features[0].id, "status": "InProgress"}
    response = await client.post(f"{url}/features", json=body)
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"

    response = await client.post(f"{url}/join")
    assert response.status_code == 201

    response = await client.post(f"{url}/features", json=body)
    assert response.status_code == 201
    assert response.json()["status"] == "InProgress"

    response = await client.post(f"{url}/features", json={"feature_id": features[0].id})
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"
