"""Tests for bulk assignment and assignment status."""

import pytest
from httpx import AsyncClient
from sqlalchemy import Insert, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.exceptions import ForbiddenError, NotFoundError
from cohort_tracker.models import (
    Assignment,
    AssignmentOrigin,
    AssignmentStatus,
    StudentProject,
)
from cohort_tracker.models.base import generate_uuid, utc_now
from cohort_tracker.services import assignments as assignment_service
from tests.conftest import OrgFixture, create_project


async def _assignment_count(
    session: AsyncSession, student_id: str | None = None
) -> int:
    stmt = select(func.count(Assignment.id))
    if student_id is not None:
        stmt = stmt.where(Assignment.student_id == student_id)
    return await session.scalar(stmt)


# --- Bulk assignment ---


@pytest.mark.asyncio
async def test_bulk_assign_creates_backlog_per_feature(
    async_session: AsyncSession, acme: OrgFixture, todo_project
):
    project, _ = todo_project

    created = await assignment_service.bulk_assign(
        async_session,
        acme.pm_caller,
        project.id,
        [acme.student.id, acme.other_student.id],
    )
    assert created == 6

    result = await async_session.execute(select(Assignment))
    assignments = result.scalars().all()
    assert {a.status for a in assignments} == {AssignmentStatus.BACKLOG}
    assert {a.origin for a in assignments} == {AssignmentOrigin.BULK}
    assert {a.project_id for a in assignments} == {project.id}


@pytest.mark.asyncio
async def test_bulk_assign_is_idempotent(
    async_session: AsyncSession, acme: OrgFixture, todo_project
):
    project, _ = todo_project
    students = [acme.student.id, acme.student.id]

    assert await assignment_service.bulk_assign(
        async_session, acme.pm_caller, project.id, students
    ) == 3
    assert await assignment_service.bulk_assign(
        async_session, acme.pm_caller, project.id, students
    ) == 0
    assert await _assignment_count(async_session) == 3


@pytest.mark.asyncio
async def test_bulk_assign_keeps_existing_progress(
    async_session: AsyncSession, acme: OrgFixture, todo_project
):
    """A student who already took a feature keeps its status."""
    project, features = todo_project
    async_session.add(
        Assignment(
            project_id=project.id,
            feature_id=features[0].id,
            student_id=acme.student.id,
            status=AssignmentStatus.DONE,
            origin=AssignmentOrigin.SELF,
        )
    )
    await async_session.commit()

    created = await assignment_service.bulk_assign(
        async_session, acme.pm_caller, project.id, [acme.student.id]
    )
    assert created == 2

    result = await async_session.execute(
        select(Assignment.status).where(Assignment.feature_id == features[0].id)
    )
    assert result.scalars().all() == [AssignmentStatus.DONE]


@pytest.mark.asyncio
async def test_bulk_assign_counts_only_inserted_rows(
    async_session: AsyncSession, acme: OrgFixture, todo_project, monkeypatch
):
    """A pair inserted by a concurrent request is skipped and not counted."""
    project, features = todo_project
    execute = async_session.execute

    async def execute_after_concurrent_assign(statement, *args, **kwargs):
        if isinstance(statement, Insert):
            await execute(
                insert(Assignment).values(
                    id=generate_uuid(),
                    project_id=project.id,
                    feature_id=features[1].id,
                    student_id=acme.student.id,
                    status=AssignmentStatus.TODO,
                    origin=AssignmentOrigin.SELF,
                    assigned_at=utc_now(),
                )
            )
        return await execute(statement, *args, **kwargs)

    monkeypatch.setattr(async_session, "execute", execute_after_concurrent_assign)
    created = await assignment_service.bulk_assign(
        async_session, acme.pm_caller, project.id, [acme.student.id]
    )
    monkeypatch.undo()

    assert created == 2
    assert await _assignment_count(async_session, acme.student.id) == 3
    status = await async_session.scalar(
        select(Assignment.status).where(Assignment.feature_id == features[1].id)
    )
    assert status == AssignmentStatus.TODO


def test_plain_insert_for_dialects_without_on_conflict():
    rows = [{"id": "a1", "student_id": "s1", "feature_id": "f1"}]

    sqlite_stmt = assignment_service._insert_skipping_duplicates("sqlite", rows)
    assert "ON CONFLICT" in str(sqlite_stmt)

    plain_stmt = assignment_service._insert_skipping_duplicates("mssql", rows)
    assert isinstance(plain_stmt, Insert)
    assert "ON CONFLICT" not in str(plain_stmt)


@pytest.mark.asyncio
async def test_bulk_assign_project_without_features(
    async_session: AsyncSession, acme: OrgFixture
):
    project, _ = await create_project(async_session, acme.org, "Empty", features=())
    created = await assignment_service.bulk_assign(
        async_session, acme.pm_caller, project.id, [acme.student.id]
    )
    assert created == 0


@pytest.mark.asyncio
async def test_bulk_assign_rejects_non_members(
    async_session: AsyncSession, acme: OrgFixture, globex: OrgFixture, todo_project
):
    project, _ = todo_project
    with pytest.raises(NotFoundError, match=globex.student.id):
        await assignment_service.bulk_assign(
            async_session,
            acme.pm_caller,
            project.id,
            [acme.student.id, globex.student.id],
        )
    # Nothing is written when any student is unknown
    assert await _assignment_count(async_session) == 0


@pytest.mark.asyncio
async def test_bulk_assign_route(
    client: AsyncClient, login, acme: OrgFixture, todo_project
):
    project, _ = todo_project
    url = f"/api/v1/projects/{project.id}/assignments"

    login(acme.student, acme.org)
    response = await client.post(url, json={"student_ids": [acme.student.id]})
    assert response.status_code == 403

    login(acme.pm, acme.org)
    response = await client.post(url, json={"student_ids": []})
    assert response.status_code == 400

    response = await client.post(url, json={"student_ids": [acme.student.id]})
    assert response.status_code == 200
    assert response.json() == {"created": 3}

    response = await client.get(url)
    assert response.status_code == 200
    data = response.json()
    assert len(data) == 3
    assert {a["feature_title"] for a in data} == {"Login", "Signup", "Dashboard"}
    assert {a["student"]["email"] for a in data} == {acme.student.email}

    response = await client.get(f"/api/v1/projects/{project.id}/students")
    assert [s["id"] for s in response.json()] == [acme.student.id]


@pytest.mark.asyncio
async def test_remove_student_from_project_keeps_enrollment(
    client: AsyncClient,
    login,
    acme: OrgFixture,
    todo_project,
    async_session: AsyncSession,
):
    project, _ = todo_project
    async_session.add(
        StudentProject(student_id=acme.student.id, project_id=project.id)
    )
    await async_session.commit()
    await assignment_service.bulk_assign(
        async_session,
        acme.pm_caller,
        project.id,
        [acme.student.id, acme.other_student.id],
    )

    login(acme.pm, acme.org)
    response = await client.delete(
        f"/api/v1/projects/{project.id}/students/{acme.student.id}"
    )
    assert response.status_code == 200
    assert response.json() == {"removed": 3}

    assert await _assignment_count(async_session, student_id=acme.student.id) == 0
    assert await _assignment_count(
        async_session, student_id=acme.other_student.id
    ) == 3
    assert await async_session.scalar(
        select(func.count(StudentProject.id)).where(
            StudentProject.student_id == acme.student.id
        )
    ) == 1


@pytest.mark.asyncio
async def test_bulk_assign_other_tenant_project(
    client: AsyncClient, login, acme: OrgFixture, globex: OrgFixture, todo_project
):
    project, _ = todo_project
    login(globex.pm, globex.org)
    response = await client.post(
        f"/api/v1/projects/{project.id}/assignments",
        json={"student_ids": [globex.student.id]},
    )
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


# --- Status ---


@pytest.fixture
async def assigned(async_session: AsyncSession, acme: OrgFixture, todo_project):
    """Backlog assignments of the project for both students."""
    project, _ = todo_project
    await assignment_service.bulk_assign(
        async_session,
        acme.pm_caller,
        project.id,
        [acme.student.id, acme.other_student.id],
    )
    result = await async_session.execute(select(Assignment))
    return result.scalars().all()


@pytest.mark.asyncio
async def test_student_updates_own_status(
    client: AsyncClient, login, acme: OrgFixture, assigned
):
    mine = next(a for a in assigned if a.student_id == acme.student.id)
    login(acme.student, acme.org)

    for value in ["InProgress", "Done", "Backlog", "Canceled", "Todo"]:
        response = await client.patch(
            f"/api/v1/assignments/{mine.id}/status", json={"status": value}
        )
        assert response.status_code == 200
        assert response.json()["status"] == value

    data = response.json()
    assert data["project_name"] == "Todo App"
    assert data["feature"]["id"] == mine.feature_id


@pytest.mark.asyncio
async def test_student_cannot_update_others_assignment(
    client: AsyncClient, login, acme: OrgFixture, assigned
):
    theirs = next(a for a in assigned if a.student_id == acme.other_student.id)
    login(acme.student, acme.org)

    response = await client.patch(
        f"/api/v1/assignments/{theirs.id}/status", json={"status": "Done"}
    )
    assert response.status_code == 403
    assert response.json() == {"error": "Not your assignment", "code": "FORBIDDEN"}

    response = await client.get(f"/api/v1/assignments/{theirs.id}")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_student_lookup_of_foreign_assignment_ids(
    client: AsyncClient, login, acme: OrgFixture, globex: OrgFixture, assigned
):
    """Unknown and other-tenant ids are not found; a classmate's is forbidden."""
    theirs = next(a for a in assigned if a.student_id == acme.other_student.id)

    login(acme.student, acme.org)
    response = await client.get(f"/api/v1/assignments/{generate_uuid()}")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"

    response = await client.get(f"/api/v1/assignments/{theirs.id}")
    assert response.json()["code"] == "FORBIDDEN"

    login(globex.student, globex.org)
    response = await client.get(f"/api/v1/assignments/{theirs.id}")
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_manager_updates_any_assignment(
    async_session: AsyncSession, acme: OrgFixture, assigned
):
    theirs = next(a for a in assigned if a.student_id == acme.other_student.id)
    updated = await assignment_service.update_assignment_status(
        async_session, acme.pm_caller, theirs.id, AssignmentStatus.DONE
    )
    assert updated.status == AssignmentStatus.DONE


@pytest.mark.asyncio
async def test_invalid_status_is_rejected(
    client: AsyncClient, login, acme: OrgFixture, assigned
):
    mine = next(a for a in assigned if a.student_id == acme.student.id)
    login(acme.student, acme.org)
    response = await client.patch(
        f"/api/v1/assignments/{mine.id}/status", json={"status": "Finished"}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"


@pytest.mark.asyncio
async def test_assignment_of_other_tenant_not_found(
    async_session: AsyncSession, acme: OrgFixture, globex: OrgFixture, assigned
):
    with pytest.raises(NotFoundError):
        await assignment_service.update_assignment_status(
            async_session, globex.admin_caller, assigned[0].id, AssignmentStatus.DONE
        )


@pytest.mark.asyncio
async def test_ownership_checked_before_update(
    async_session: AsyncSession, acme: OrgFixture, assigned
):
    theirs = next(a for a in assigned if a.student_id == acme.other_student.id)
    with pytest.raises(ForbiddenError):
        await assignment_service.update_assignment_status(
            async_session, acme.student_caller, theirs.id, AssignmentStatus.DONE
        )
    status = await async_session.scalar(
        select(Assignment.status).where(Assignment.id == theirs.id)
    )
    assert status == AssignmentStatus.BACKLOG


# --- My assignments ---


@pytest.mark.asyncio
async def test_my_assignments_and_progress(
    client: AsyncClient,
    login,
    acme: OrgFixture,
    assigned,
    async_session: AsyncSession,
):
    mine = [a for a in assigned if a.student_id == acme.student.id]
    await assignment_service.update_assignment_status(
        async_session, acme.student_caller, mine[0].id, AssignmentStatus.DONE
    )

    other, _ = await create_project(async_session, acme.org, "API Server", ("Auth",))
    await assignment_service.bulk_assign(
        async_session, acme.pm_caller, other.id, [acme.student.id]
    )

    login(acme.student, acme.org)
    response = await client.get("/api/v1/assignments/me")
    assert response.status_code == 200
    data = response.json()
    assert len(data) == 4
    # Ordered by project name
    assert [a["project_name"] for a in data] == ["API Server"] + ["Todo App"] * 3

    response = await client.get("/api/v1/assignments/me/projects")
    assert response.status_code == 200
    progress = {p["project"]["name"]: p["progress"] for p in response.json()}
    assert progress == {
        "API Server": {"total": 1, "done": 0, "percentage": 0},
        "Todo App": {"total": 3, "done": 1, "percentage": 33},
    }


@pytest.mark.asyncio
async def test_my_assignments_scoped_to_active_org(
    client: AsyncClient,
    login,
    acme: OrgFixture,
    globex: OrgFixture,
    assigned,
):
    login(acme.student, globex.org)
    response = await client.get("/api/v1/assignments/me")
    assert response.status_code == 200
    assert response.json() == []


def test_group_by_status_orders_active_work_first():
    assignments = [
        Assignment(status=AssignmentStatus.DONE),
        Assignment(status=AssignmentStatus.IN_PROGRESS),
        Assignment(status=AssignmentStatus.BACKLOG),
        Assignment(status=AssignmentStatus.IN_PROGRESS),
    ]
    grouped = assignment_service.group_by_status(assignments)

    assert list(grouped) == [
        AssignmentStatus.IN_PROGRESS,
        AssignmentStatus.TODO,
        AssignmentStatus.BACKLOG,
        AssignmentStatus.DONE,
        AssignmentStatus.CANCELED,
    ]
    assert len(grouped[AssignmentStatus.IN_PROGRESS]) == 2
    assert grouped[AssignmentStatus.TODO] == []


@pytest.mark.asyncio
async def test_rostered_student_reports_progress(
    client: AsyncClient, login, acme: OrgFixture
):
    """PM rosters a student on a two-feature project; one Done is 50%."""
    login(acme.pm, acme.org)
    response = await client.post("/api/v1/projects", json={"name": "Website"})
    project_id = response.json()["id"]
    for title in ("F1", "F2"):
        await client.post(
            f"/api/v1/projects/{project_id}/features", json={"title": title}
        )
    response = await client.post(
        f"/api/v1/projects/{project_id}/assignments",
        json={"student_ids": [acme.student.id]},
    )
    assert response.json() == {"created": 2}

    login(acme.student, acme.org)
    mine = (await client.get("/api/v1/assignments/me")).json()
    assert [a["status"] for a in mine] == ["Backlog", "Backlog"]
    f1 = next(a for a in mine if a["feature"]["title"] == "F1")
    await client.patch(
        f"/api/v1/assignments/{f1['id']}/status", json={"status": "Done"}
    )

    response = await client.get("/api/v1/assignments/me/projects")
    assert response.json()[0]["progress"] == {"total": 2, "done": 1, "percentage": 50}
