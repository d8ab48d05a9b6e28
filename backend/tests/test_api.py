"""
End-to-end API tests over an in-memory SQLite database.

Each request runs the full path: route -> coordinator -> mutation service ->
CPM -> repository.
"""

import uuid

import pytest

from keystone.routes import projects as project_routes
from keystone.services.coordinator import get_coordinator
from keystone.main import app


async def create_project(client, **fields):
    payload = {"name": "Office fit-out", "anchor_date": "2024-01-01", **fields}
    response = await client.post("/projects/", json=payload)
    assert response.status_code == 201
    return response.json()


async def create_example(client):
    """A (5d) -> B (3d) plus an unconnected C (2d)."""
    project = await create_project(client)
    response = await client.post("/tasks/bulk", json={
        "project_id": project["id"],
        "tasks": [
            {"name": "A", "wbs_code": "1", "duration_days": 5},
            {"name": "B", "wbs_code": "2", "duration_days": 3},
            {"name": "C", "wbs_code": "3", "duration_days": 2},
        ],
    })
    assert response.status_code == 201
    ids = {task["name"]: task["id"] for task in response.json()}

    response = await client.post("/relationships/", json={
        "predecessor_id": ids["A"],
        "successor_id": ids["B"],
    })
    assert response.status_code == 201
    return project, ids


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestProjects:

    @pytest.mark.asyncio
    async def test_create_and_get(self, client):
        project = await create_project(client, description="Level 3")
        assert project["schedule_version"] == 0
        assert project["status"] == "planning"

        response = await client.get(f"/projects/{project['id']}")
        assert response.status_code == 200
        assert response.json()["description"] == "Level 3"

    @pytest.mark.asyncio
    async def test_unknown_project(self, client):
        response = await client.get(f"/projects/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_rename_keeps_version(self, client):
        project = await create_project(client)
        response = await client.patch(f"/projects/{project['id']}", json={"name": "Renamed"})
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["schedule_version"] == 0

    @pytest.mark.asyncio
    async def test_status_changes_leave_schedule_alone(self, client):
        project, _ = await create_example(client)
        response = await client.patch(f"/projects/{project['id']}", json={"status": "on_hold"})
        assert response.status_code == 200
        assert response.json()["status"] == "on_hold"
        assert response.json()["schedule_version"] == 2

        response = await client.patch(f"/projects/{project['id']}", json={"status": "archived"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_anchor_past_last_date_rejected(self, client):
        project, ids = await create_example(client)
        response = await client.patch(f"/projects/{project['id']}", json={"anchor_date": "9999-12-28"})
        assert response.status_code == 422
        assert response.json()["error"] == "date_out_of_range"

        task = (await client.get(f"/tasks/{ids['A']}")).json()
        assert task["early_start"] == "2024-01-01"

    @pytest.mark.asyncio
    async def test_moving_anchor_reschedules(self, client):
        project, ids = await create_example(client)
        response = await client.patch(f"/projects/{project['id']}", json={"anchor_date": "2024-01-08"})
        assert response.status_code == 200
        assert response.json()["anchor_date"] == "2024-01-08"

        task = (await client.get(f"/tasks/{ids['A']}")).json()
        assert task["early_start"] == "2024-01-08"
        assert task["early_finish"] == "2024-01-15"

    @pytest.mark.asyncio
    async def test_delete_project(self, client):
        project, _ = await create_example(client)
        response = await client.delete(f"/projects/{project['id']}")
        assert response.status_code == 204

        response = await client.get(f"/tasks/?project_id={project['id']}")
        assert response.json() == []


class TestSchedule:

    @pytest.mark.asyncio
    async def test_schedule_has_cpm_dates(self, client):
        project, ids = await create_example(client)

        response = await client.get(f"/projects/{project['id']}/schedule")
        assert response.status_code == 200
        schedule = response.json()

        assert schedule["version"] == 2
        assert schedule["project_finish"] == "2024-01-11"
        tasks = {t["name"]: t for t in schedule["tasks"]}
        assert tasks["B"]["early_start"] == "2024-01-08"
        assert tasks["B"]["is_critical"] is True
        assert tasks["C"]["late_start"] == "2024-01-09"
        assert tasks["C"]["total_float"] == 6
        assert [p["task_ids"] for p in schedule["float_paths"]] == [[ids["A"], ids["B"]]]

    @pytest.mark.asyncio
    async def test_recompute_bumps_version(self, client):
        project, _ = await create_example(client)
        response = await client.post(f"/projects/{project['id']}/recompute")
        assert response.status_code == 200
        assert response.json()["version"] == 3

    @pytest.mark.asyncio
    async def test_enqueue_recompute(self, client, monkeypatch):
        calls = []

        async def fake_enqueue(project_id, version):
            calls.append((project_id, version))
            return "job-1"

        monkeypatch.setattr(project_routes, "enqueue_recompute", fake_enqueue)
        project, _ = await create_example(client)

        response = await client.post(f"/projects/{project['id']}/recompute/enqueue")
        assert response.status_code == 202
        assert response.json() == {"job_id": "job-1", "version": 2}
        assert calls == [(project["id"], 2)]

    @pytest.mark.asyncio
    async def test_export(self, client):
        project, _ = await create_example(client)
        response = await client.get(f"/projects/{project['id']}/export")
        assert response.status_code == 200
        export = response.json()
        assert export["schedule_version"] == 2
        assert export["summary"]["tasks"] == 3
        assert export["summary"]["task_relationships"] == 1
        assert export["summary"]["float_paths"] == 1
        assert export["summary"]["projects"] == 1
        assert export["entities"]["projects"][0]["id"] == project["id"]
        assert export["entities"]["projects"][0]["status"] == "planning"


class TestTasks:

    @pytest.mark.asyncio
    async def test_child_task_gets_parent_from_code(self, client):
        project, ids = await create_example(client)
        response = await client.post("/tasks/", json={
            "project_id": project["id"],
            "name": "Demolition",
            "wbs_code": "1.1",
        })
        assert response.status_code == 201
        task = response.json()
        assert task["parent_task_id"] == ids["A"]
        assert task["level"] == 2

    @pytest.mark.asyncio
    async def test_duplicate_wbs_code(self, client):
        project, _ = await create_example(client)
        response = await client.post("/tasks/", json={"project_id": project["id"], "name": "Again", "wbs_code": "2"})
        assert response.status_code == 409
        assert response.json()["error"] == "duplicate_wbs_code"

    @pytest.mark.asyncio
    async def test_bulk_is_all_or_nothing(self, client):
        project, _ = await create_example(client)
        response = await client.post("/tasks/bulk", json={
            "project_id": project["id"],
            "tasks": [
                {"name": "D", "wbs_code": "4"},
                {"name": "Orphan", "wbs_code": "7.1"},
            ],
        })
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_hierarchy"

        tasks = (await client.get(f"/tasks/?project_id={project['id']}")).json()
        assert [t["wbs_code"] for t in tasks] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_duration_beyond_limit_rejected(self, client):
        project, ids = await create_example(client)
        response = await client.post("/tasks/", json={
            "project_id": project["id"],
            "name": "Forever",
            "wbs_code": "4",
            "duration_days": 3000000,
        })
        assert response.status_code == 422

        response = await client.patch(f"/tasks/{ids['A']}", json={"duration_days": 3000000})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_reschedules(self, client):
        _, ids = await create_example(client)
        response = await client.patch(f"/tasks/{ids['A']}", json={"duration_days": 7})
        assert response.status_code == 200
        assert response.json()["early_finish"] == "2024-01-10"

        b = (await client.get(f"/tasks/{ids['B']}")).json()
        assert b["early_start"] == "2024-01-10"

    @pytest.mark.asyncio
    async def test_move_recodes_subtree(self, client):
        project, ids = await create_example(client)
        child = (await client.post("/tasks/", json={
            "project_id": project["id"], "name": "C.1", "wbs_code": "3.1",
        })).json()

        response = await client.post(f"/tasks/{ids['C']}/move", json={"new_parent_id": ids["A"]})
        assert response.status_code == 200
        assert [(t["id"], t["wbs_code"]) for t in response.json()] == [(ids["C"], "1.1"), (child["id"], "1.1.1")]

    @pytest.mark.asyncio
    async def test_delete_needs_cascade_for_parents(self, client):
        project, ids = await create_example(client)
        await client.post("/tasks/", json={"project_id": project["id"], "name": "A.1", "wbs_code": "1.1"})

        response = await client.delete(f"/tasks/{ids['A']}")
        assert response.status_code == 409
        assert response.json()["error"] == "has_children"

        response = await client.delete(f"/tasks/{ids['A']}?cascade=true")
        assert response.status_code == 204

        tasks = (await client.get(f"/tasks/?project_id={project['id']}")).json()
        assert [t["name"] for t in tasks] == ["B", "C"]
        relationships = (await client.get(f"/relationships/?project_id={project['id']}")).json()
        assert relationships == []

    @pytest.mark.asyncio
    async def test_unknown_task(self, client):
        response = await client.get(f"/tasks/{uuid.uuid4()}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_assignments(self, client):
        _, ids = await create_example(client)
        resource_id = str(uuid.uuid4())

        response = await client.post(
            f"/tasks/{ids['A']}/assignments", json={"resource_id": resource_id, "allocation": 0.5},
        )
        assert response.status_code == 201
        assert response.json()["allocation"] == 0.5

        listed = (await client.get(f"/tasks/{ids['A']}/assignments")).json()
        assert [a["resource_id"] for a in listed] == [resource_id]

        response = await client.delete(f"/tasks/{ids['A']}/assignments/{resource_id}")
        assert response.status_code == 204
        response = await client.delete(f"/tasks/{ids['A']}/assignments/{resource_id}")
        assert response.status_code == 404


class TestRelationships:

    @pytest.mark.asyncio
    async def test_cycle_rejected_and_logged(self, client):
        project, ids = await create_example(client)

        response = await client.post("/relationships/", json={
            "predecessor_id": ids["B"],
            "successor_id": ids["A"],
        })
        assert response.status_code == 400
        assert response.json()["error"] == "cycle_detected"

        loops = (await client.get(f"/projects/{project['id']}/loops")).json()
        assert [loop["task_ids"] for loop in loops] == [[ids["B"], ids["A"]]]

        schedule = (await client.get(f"/projects/{project['id']}/schedule")).json()
        assert schedule["version"] == 2
        assert len(schedule["relationships"]) == 1

    @pytest.mark.asyncio
    async def test_self_loop_and_duplicate(self, client):
        _, ids = await create_example(client)

        response = await client.post("/relationships/", json={"predecessor_id": ids["C"], "successor_id": ids["C"]})
        assert response.status_code == 400
        assert response.json()["error"] == "self_loop"

        response = await client.post("/relationships/", json={"predecessor_id": ids["A"], "successor_id": ids["B"]})
        assert response.status_code == 409
        assert response.json()["error"] == "duplicate_edge"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client):
        _, ids = await create_example(client)

        response = await client.patch(
            f"/relationships/{ids['A']}/{ids['B']}", json={"type": "start_to_start", "lag_days": 2},
        )
        assert response.status_code == 200
        assert response.json()["type"] == "start_to_start"
        assert (await client.get(f"/tasks/{ids['B']}")).json()["early_start"] == "2024-01-03"

        response = await client.delete(f"/relationships/{ids['A']}/{ids['B']}")
        assert response.status_code == 204
        assert (await client.get(f"/tasks/{ids['B']}")).json()["early_start"] == "2024-01-01"

        response = await client.delete(f"/relationships/{ids['A']}/{ids['B']}")
        assert response.status_code == 404


class TestBaselines:

    @pytest.mark.asyncio
    async def test_capture_and_variance(self, client):
        project, ids = await create_example(client)

        response = await client.post("/baselines/", json={"project_id": project["id"], "name": "Plan"})
        assert response.status_code == 201
        baseline = response.json()
        assert len(baseline["entries"]) == 3

        response = await client.post("/baselines/", json={"project_id": project["id"], "name": "Plan"})
        assert response.status_code == 409

        await client.patch(f"/tasks/{ids['A']}", json={"duration_days": 7})
        response = await client.get(f"/baselines/{baseline['id']}/variance")
        assert response.status_code == 200
        report = response.json()
        variance = {v["task_id"]: v["schedule_variance_days"] for v in report["variances"]}
        assert variance == {ids["A"]: 2, ids["B"]: 2, ids["C"]: 0}

        listed = (await client.get(f"/baselines/?project_id={project['id']}")).json()
        assert [b["name"] for b in listed] == ["Plan"]

    @pytest.mark.asyncio
    async def test_capture_while_busy(self, client):
        project, _ = await create_example(client)
        coordinator = app.dependency_overrides[get_coordinator]()
        async with coordinator._project_lock(uuid.UUID(project["id"])):
            response = await client.post(
                "/baselines/?wait=false", json={"project_id": project["id"], "name": "Busy"},
            )

        assert response.status_code == 423
        assert response.json()["error"] == "schedule_busy"
        assert response.json()["retryable"] is True


class TestCalendars:

    @pytest.mark.asyncio
    async def test_project_calendar_reschedules(self, client):
        project, ids = await create_example(client)
        response = await client.post("/calendars/", json={
            "name": "Four day week",
            "working_weekdays": [0, 1, 2, 3],
            "project_id": project["id"],
        })
        assert response.status_code == 201
        calendar = response.json()

        listed = (await client.get(f"/calendars/?project_id={project['id']}")).json()
        assert [c["id"] for c in listed] == [calendar["id"]]

        response = await client.patch(f"/projects/{project['id']}", json={"default_calendar_id": calendar["id"]})
        assert response.status_code == 200
        assert (await client.get(f"/tasks/{ids['A']}")).json()["early_finish"] == "2024-01-09"

    @pytest.mark.asyncio
    async def test_holiday_pushes_finish(self, client):
        project, ids = await create_example(client)
        calendar = (await client.post("/calendars/", json={
            "name": "With holiday",
            "exceptions": [{"date": "2024-01-03"}],
        })).json()

        response = await client.patch(f"/tasks/{ids['A']}", json={"calendar_id": calendar["id"]})
        assert response.status_code == 200
        assert response.json()["early_finish"] == "2024-01-09"

        fetched = (await client.get(f"/calendars/{calendar['id']}")).json()
        assert fetched["exceptions"] == [{"date": "2024-01-03", "is_working": False}]

    @pytest.mark.asyncio
    async def test_calendar_without_working_days(self, client):
        response = await client.post("/calendars/", json={"name": "Never", "working_weekdays": []})
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_calendar_config"
