from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from sqlalchemy.future import select

from app.models.tasks import Task
from app.services import clock
from app.services import tasks as task_service
from tests.factories import auth, make_project, make_task


async def test_create_task_resolves_display_fields(client, db, alice):
    await make_project(db, "Scratch")
    project = await make_project(db, "Launch")

    response = await client.post("/api/tasks", headers=auth(alice), json={
        "title": "Draft plan",
        "projectId": project.id,
        "status": "not-started",
    })

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["id"]
    assert body["userId"] == alice.id
    assert body["username"] == "alice"
    assert body["projectName"] == "Launch"
    assert body["isCoWork"] is False
    assert body["isArchived"] is False


async def test_create_task_rejects_bad_input(client, alice, project):
    headers = auth(alice)
    bad_status = await client.post("/api/tasks", headers=headers,
                                   json={"title": "x", "projectId": project.id, "status": "done"})
    assert bad_status.status_code == 400
    assert "message" in bad_status.json()

    missing_project = await client.post("/api/tasks", headers=headers, json={"title": "x"})
    assert missing_project.status_code == 400

    dangling_project = await client.post("/api/tasks", headers=headers,
                                         json={"title": "x", "projectId": 999})
    assert dangling_project.status_code == 400


async def test_requests_without_token_are_rejected(client, db_schema):
    response = await client.get("/api/tasks/user")
    assert response.status_code == 401
    assert "message" in response.json()


async def test_personal_view_defaults_to_today(client, db, alice, bob, project):
    yesterday = datetime.now(timezone.utc) - timedelta(days=1)
    today_task = await make_task(db, alice, project, "today")
    old_task = await make_task(db, alice, project, "yesterday", created_at=yesterday)
    await make_task(db, bob, project, "not mine")
    await make_task(db, alice, project, "shared", is_co_work=True)
    await make_task(db, alice, project, "stored away", is_archived=True)

    response = await client.get("/api/tasks/user", headers=auth(alice))
    assert [t["id"] for t in response.json()] == [today_task.id]

    day = clock.to_local_date(yesterday).isoformat()
    response = await client.get(f"/api/tasks/user?date={day}", headers=auth(alice))
    assert [t["id"] for t in response.json()] == [old_task.id]


async def test_malformed_date_is_a_client_error(client, alice):
    response = await client.get("/api/tasks/user?date=not-a-date", headers=auth(alice))
    assert response.status_code == 400
    response = await client.get("/api/tasks/date", headers=auth(alice))
    assert response.status_code == 400


async def test_scheduler_date_view_orders_by_status(client, db, alice, bob, project):
    base = datetime(2024, 3, 1, 1, 0, tzinfo=timezone.utc)  # 10:00 local, 2024-03-01
    completed = await make_task(db, alice, project, "a", status="completed", created_at=base)
    not_started = await make_task(db, bob, project, "b", status="not-started",
                                  created_at=base + timedelta(minutes=1))
    in_progress = await make_task(db, alice, project, "c", status="in-progress",
                                  created_at=base + timedelta(minutes=2))
    await make_task(db, alice, project, "next day", created_at=base + timedelta(hours=14))

    response = await client.get("/api/tasks/date?date=2024-03-01", headers=auth(alice))

    assert response.status_code == 200
    body = response.json()
    assert [t["id"] for t in body] == [not_started.id, in_progress.id, completed.id]
    assert [t["username"] for t in body] == ["bob", "alice", "alice"]


async def test_team_view(client, db, alice, bob, carol, project):
    mine = await make_task(db, alice, project, "pm 1", status="completed")
    theirs = await make_task(db, bob, project, "pm 2", status="in-progress")
    await make_task(db, carol, project, "cc")
    await make_task(db, bob, project, "old", created_at=datetime.now(timezone.utc) - timedelta(days=2))
    await make_task(db, bob, project, "shared", is_co_work=True)

    response = await client.get("/api/tasks/team/PM", headers=auth(carol))

    assert response.status_code == 200
    assert [t["id"] for t in response.json()] == [theirs.id, mine.id]

    unknown = await client.get("/api/tasks/team/XX", headers=auth(carol))
    assert unknown.status_code == 400


async def test_project_views(client, db, alice, bob, project):
    other = await make_project(db, "Other")
    first = await make_task(db, alice, project, "first",
                            created_at=datetime.now(timezone.utc) - timedelta(days=3))
    second = await make_task(db, bob, project, "second", status="completed")
    elsewhere = await make_task(db, bob, other, "elsewhere")
    await make_task(db, bob, project, "shared", is_co_work=True)

    response = await client.get(f"/api/tasks/project/{project.id}", headers=auth(alice))
    assert [t["id"] for t in response.json()] == [second.id, first.id]

    response = await client.get("/api/tasks/project", headers=auth(alice))
    body = response.json()
    assert [t["id"] for t in body] == [elsewhere.id, second.id, first.id]
    assert body[0]["username"] == "bob"


async def test_previous_tasks(client, db, alice, project):
    old = await make_task(db, alice, project, "old", created_at=datetime.now(timezone.utc) - timedelta(days=2))
    await make_task(db, alice, project, "today")

    response = await client.get("/api/tasks/previous", headers=auth(alice))
    assert [t["id"] for t in response.json()] == [old.id]


async def test_update_and_status_are_owner_only(client, db, alice, bob, project):
    other = await make_project(db, "Beta")
    task = await make_task(db, alice, project, "mine")

    forbidden = await client.patch(f"/api/tasks/{task.id}/status", headers=auth(bob),
                                   json={"status": "completed"})
    assert forbidden.status_code == 403

    response = await client.patch(f"/api/tasks/{task.id}/status", headers=auth(alice),
                                  json={"status": "in-progress"})
    assert response.status_code == 200
    assert response.json()["status"] == "in-progress"

    invalid = await client.patch(f"/api/tasks/{task.id}/status", headers=auth(alice),
                                 json={"status": "paused"})
    assert invalid.status_code == 400

    response = await client.patch(f"/api/tasks/{task.id}", headers=auth(alice),
                                  json={"title": "renamed", "projectId": other.id})
    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "renamed"
    assert body["projectName"] == "Beta"
    assert body["status"] == "in-progress"

    forbidden = await client.patch(f"/api/tasks/{task.id}", headers=auth(bob), json={"title": "x"})
    assert forbidden.status_code == 403

    missing = await client.patch("/api/tasks/9999", headers=auth(alice), json={"title": "x"})
    assert missing.status_code == 404


async def test_delete_rules(client, db, alice, bob, project):
    personal = await make_task(db, alice, project, "mine")
    shared = await make_task(db, alice, project, "shared", is_co_work=True)

    assert (await client.delete(f"/api/tasks/{personal.id}", headers=auth(bob))).status_code == 403
    assert (await client.delete(f"/api/tasks/{shared.id}", headers=auth(bob))).status_code == 204
    assert (await client.delete(f"/api/tasks/{personal.id}", headers=auth(alice))).status_code == 204
    assert (await client.delete(f"/api/tasks/{personal.id}", headers=auth(alice))).status_code == 404


async def test_co_work_round_trip(client, db, alice, bob, project):
    task = await make_task(db, alice, project, "Draft plan", status="in-progress", description="v1")

    not_owner = await client.post(f"/api/tasks/{task.id}/move-to-cowork", headers=auth(bob))
    assert not_owner.status_code == 403

    moved = await client.post(f"/api/tasks/{task.id}/move-to-cowork", headers=auth(alice))
    assert moved.status_code == 200
    assert moved.json()["isCoWork"] is True
    assert moved.json()["originalUserId"] == alice.id
    assert moved.json()["originalUsername"] == "alice"

    again = await client.post(f"/api/tasks/{task.id}/move-to-cowork", headers=auth(alice))
    assert again.status_code == 400

    pool = await client.get("/api/tasks/co-work", headers=auth(bob))
    assert [t["id"] for t in pool.json()] == [task.id]
    assert (await client.get("/api/tasks/user", headers=auth(alice))).json() == []

    accepted = await client.post(f"/api/tasks/co-work/{task.id}/accept", headers=auth(bob))
    assert accepted.status_code == 200
    body = accepted.json()
    assert body["userId"] == bob.id
    assert body["username"] == "bob"
    assert body["isCoWork"] is False
    assert (body["title"], body["description"], body["status"], body["projectId"]) == \
        ("Draft plan", "v1", "in-progress", project.id)
    assert body["originalUserId"] == alice.id

    second = await client.post(f"/api/tasks/co-work/{task.id}/accept", headers=auth(alice))
    assert second.status_code == 400

    missing = await client.post("/api/tasks/co-work/9999/accept", headers=auth(alice))
    assert missing.status_code == 404

    await db.refresh(task)
    assert task.user_id == bob.id


async def test_accept_loses_race_when_task_already_taken(db, alice, bob, carol, project):
    task = await make_task(db, alice, project, "contested", is_co_work=True)
    # Both requests read the task while it was still in the pool
    stale = await task_service.get_task_by_id(db, task.id)
    await task_service.accept_co_work(db, stale, bob)

    stale.is_co_work = True  # what the slower request still believes
    with pytest.raises(HTTPException) as exc:
        await task_service.accept_co_work(db, stale, carol)
    assert exc.value.status_code == 409

    result = await db.execute(select(Task).filter(Task.id == task.id))
    assert result.scalars().first().user_id == bob.id


async def test_create_and_delete_co_work_task(client, alice, bob, project):
    created = await client.post("/api/tasks/co-work", headers=auth(alice),
                                json={"title": "Need a hand", "projectId": project.id, "status": "completed"})
    assert created.status_code == 201
    body = created.json()
    assert body["isCoWork"] is True
    assert body["status"] == "not-started"

    assert (await client.get("/api/tasks/user", headers=auth(alice))).json() == []

    deleted = await client.delete(f"/api/tasks/co-work/{body['id']}", headers=auth(bob))
    assert deleted.status_code == 204
    assert (await client.get("/api/tasks/co-work", headers=auth(bob))).json() == []


async def test_archive_is_admin_only_and_hides_tasks(client, db, admin, alice, project):
    old = await make_task(db, alice, project, "old done", status="completed",
                          created_at=datetime(2024, 1, 10, 3, 0, tzinfo=timezone.utc))
    await make_task(db, alice, project, "old open", status="in-progress",
                    created_at=datetime(2024, 1, 10, 4, 0, tzinfo=timezone.utc))
    recent = await make_task(db, alice, project, "recent", status="completed")

    forbidden = await client.post("/api/tasks/archive", headers=auth(alice), json={})
    assert forbidden.status_code == 403

    response = await client.post("/api/tasks/archive", headers=auth(admin),
                                 json={"before": "2024-01-31", "status": "completed"})
    assert response.status_code == 200
    assert [t["id"] for t in response.json()] == [old.id]
    assert response.json()[0]["isArchived"] is True

    listing = await client.get("/api/tasks/archived", headers=auth(admin))
    assert [t["id"] for t in listing.json()] == [old.id]

    project_view = await client.get(f"/api/tasks/project/{project.id}", headers=auth(alice))
    assert old.id not in [t["id"] for t in project_view.json()]
    assert recent.id in [t["id"] for t in project_view.json()]

    # Archived rows stay in storage
    await db.refresh(old)
    assert old.is_archived is True


async def test_archive_cutoff_excludes_tasks_from_that_day(client, db, admin, alice, project):
    # Local (UTC+9) times in comments
    day_before = await make_task(db, alice, project, "day before",
                                 created_at=datetime(2024, 3, 4, 14, 59, tzinfo=timezone.utc))  # 03-04 23:59
    await make_task(db, alice, project, "cutoff midnight",
                    created_at=datetime(2024, 3, 4, 15, 0, tzinfo=timezone.utc))  # 03-05 00:00
    await make_task(db, alice, project, "cutoff morning",
                    created_at=datetime(2024, 3, 5, 1, 0, tzinfo=timezone.utc))  # 03-05 10:00

    response = await client.post("/api/tasks/archive", headers=auth(admin), json={"before": "2024-03-05"})
    assert [t["id"] for t in response.json()] == [day_before.id]

    listing = await client.get("/api/tasks/archived?before=2024-03-05", headers=auth(admin))
    assert [t["id"] for t in listing.json()] == [day_before.id]
    assert (await client.get("/api/tasks/archived?before=2024-03-04", headers=auth(admin))).json() == []


async def test_accept_restamps_renamed_project(client, db, admin, alice, bob, project):
    task = await make_task(db, alice, project, "hand over")
    await client.patch(f"/api/projects/{project.id}", headers=auth(admin), json={"name": "Alpha v2"})
    await client.post(f"/api/tasks/{task.id}/move-to-cowork", headers=auth(alice))

    accepted = await client.post(f"/api/tasks/co-work/{task.id}/accept", headers=auth(bob))

    assert accepted.status_code == 200
    assert accepted.json()["projectName"] == "Alpha v2"


async def test_accept_keeps_name_of_deleted_project(client, db, admin, alice, bob, project):
    task = await make_task(db, alice, project, "orphan", is_co_work=True)
    await client.delete(f"/api/projects/{project.id}", headers=auth(admin))

    accepted = await client.post(f"/api/tasks/co-work/{task.id}/accept", headers=auth(bob))

    assert accepted.json()["projectName"] == "Alpha"


async def test_store_narrows_co_work_pool(db, alice, project):
    shared = await make_task(db, alice, project, "shared", is_co_work=True)
    await make_task(db, alice, project, "mine")
    await make_task(db, alice, project, "shared but archived", is_co_work=True, is_archived=True)

    assert [t.id for t in await task_service.query_tasks(db, is_co_work=True)] == [shared.id]
