"""Tests for collaborative task decomposition, execution and versioning."""

import json
import math

import pytest

from app.modules.tasks import prompts
from app.modules.tasks.executor import TaskExecutor
from tests.conftest import USER_B, parse_sse


@pytest.fixture
def team(make_agent, make_team):
    lead = make_agent(name="Lead", configuration={"model": "gpt-4o"})
    analyst = make_agent(name="Analyst")
    return make_team(agents=[lead, analyst])


@pytest.fixture
def agents(db, team):
    members = sorted(db.rows("team_members"), key=lambda m: not m["is_primary_agent"])
    return [db.row("agents", m["agent_id"]) for m in members]


@pytest.fixture
def task(client, llm, team):
    response = client.post(f"/api/teams/{team['id']}/tasks", json={
        "title": "Market entry",
        "description": "Plan a launch in Spain.",
        "priority": "high",
    })
    assert response.status_code == 201
    llm.calls.clear()
    return response.json()


class TestPrompts:
    def test_parse_subtasks_strips_code_fences(self):
        reply = '```json\n[{"agentId": "a1", "description": "Do research."}, {"agent_id": "a2", "description": "Write."}]\n```'

        assert prompts.parse_subtasks(reply) == {"a1": "Do research.", "a2": "Write."}

    def test_parse_subtasks_rejects_non_array(self):
        with pytest.raises(ValueError):
            prompts.parse_subtasks('{"agentId": "a1"}')


class TestTaskCreation:
    def test_one_assignment_per_member(self, client, db, llm, team, agents):
        llm.replies = [json.dumps([{"agentId": agents[0]["id"], "description": "Coordinate the plan."}])]

        response = client.post(f"/api/teams/{team['id']}/tasks", json={
            "title": "Market entry",
            "description": "Plan a launch in Spain.",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["version_number"] == 1
        assignments = data["assignments"]
        assert len(assignments) == len(db.rows("team_members")) == 2
        assert [a["execution_order"] for a in assignments] == [1, 2]
        assert assignments[0]["subtask_description"] == "Coordinate the plan."
        assert assignments[1]["subtask_description"] == prompts.default_subtask("Role 2")

    def test_decomposition_failure_falls_back_to_roles(self, client, llm, team):
        llm.replies = ["not json at all"]

        response = client.post(f"/api/teams/{team['id']}/tasks", json={"title": "T", "description": "D"})

        descriptions = [a["subtask_description"] for a in response.json()["assignments"]]
        assert descriptions == [prompts.fallback_subtask("Role 1"), prompts.fallback_subtask("Role 2")]

    def test_priority_is_validated(self, client, team):
        response = client.post(f"/api/teams/{team['id']}/tasks", json={
            "title": "T", "description": "D", "priority": "urgent",
        })

        assert response.status_code == 422

    def test_empty_team_is_rejected(self, client, make_team):
        team = make_team()

        response = client.post(f"/api/teams/{team['id']}/tasks", json={"title": "T", "description": "D"})

        assert response.status_code == 400

    def test_assignment_failure_removes_task(self, client, db, team):
        db.fail_on["task_assignments"] = {"insert"}

        response = client.post(f"/api/teams/{team['id']}/tasks", json={"title": "T", "description": "D"})

        assert response.status_code == 500
        assert db.rows("collaborative_tasks") == []
        assert db.rows("task_assignments") == []

    def test_list_hides_tasks_from_other_users(self, client, team, task, current_user):
        current_user["user"] = USER_B

        response = client.get(f"/api/teams/{team['id']}/tasks")

        assert response.status_code == 404


class TestTaskExecution:
    def test_event_sequence_and_completion(self, client, db, llm, team, agents, task):
        llm.replies = ["Lead findings", "Analyst findings", "Final plan"]

        response = client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/execute")

        assert response.status_code == 200
        events = parse_sse(response.text)
        assert [e["event"] for e in events] == [
            "status",
            "agent_start", "agent_stream", "agent_complete",
            "agent_start", "agent_stream", "agent_complete",
            "synthesis", "complete",
        ]
        assert events[1]["data"]["agent_name"] == "Lead"
        assert events[-1]["data"] == {"result": "Final plan"}

        stored = db.row("collaborative_tasks", task["id"])
        assert stored["status"] == "COMPLETED"
        assert stored["result"] == "Final plan"
        assert stored["completed_at"]

    def test_contributions_carry_confidence(self, client, db, llm, team, task):
        client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/execute")

        contributions = db.rows("agent_contributions")
        assert len(contributions) == 2
        expected = math.exp(-0.15) * 100
        assert all(c["confidence"] == pytest.approx(expected) for c in contributions)
        assert all(a["status"] == "COMPLETED" for a in db.rows("task_assignments"))

    def test_later_agents_see_earlier_contributions(self, client, llm, team, agents, task):
        llm.replies = ["Lead findings", "Analyst findings", "Final plan"]

        client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/execute")

        first_prompt = llm.calls[0]["messages"][0]["content"]
        second_prompt = llm.calls[1]["messages"][0]["content"]
        assert llm.calls[0]["model"] == "gpt-4o"
        assert "Lead findings" not in first_prompt
        assert "Lead findings" in second_prompt

    def test_agent_failure_becomes_result_text(self, client, db, llm, team, task):
        llm.replies = [RuntimeError("rate limited"), "Analyst findings", "Final plan"]

        events = parse_sse(client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/execute").text)

        completes = [e["data"] for e in events if e["event"] == "agent_complete"]
        assert completes[0]["result"] == "Error executing subtask: rate limited"
        assert completes[0]["confidence"] is None
        assert len([e for e in events if e["event"] == "agent_stream"]) == 1
        assert db.row("collaborative_tasks", task["id"])["status"] == "COMPLETED"

    def test_synthesis_failure_joins_contributions(self, client, db, llm, team, task):
        llm.replies = ["Lead findings", "Analyst findings", RuntimeError("synthesis down")]

        client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/execute")

        result = db.row("collaborative_tasks", task["id"])["result"]
        assert "Lead findings" in result and "Analyst findings" in result

    def test_uncaught_error_rolls_back_to_pending(self, client, db, team, task):
        db.fail_on["agent_contributions"] = {"insert"}

        events = parse_sse(client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/execute").text)

        assert events[-1]["event"] == "error"
        assert "agent_contributions" in events[-1]["data"]["message"]
        assert db.row("collaborative_tasks", task["id"])["status"] == "PENDING"

    def test_rerun_replaces_previous_contributions(self, client, db, team, task):
        client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/execute")
        client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/execute")

        assert len(db.rows("agent_contributions")) == 2

    def test_disconnect_resets_task(self, db, llm, storage, task):
        executor = TaskExecutor(db, llm, storage)
        stream = executor.execute(db.row("collaborative_tasks", task["id"]))

        next(stream)
        assert db.row("collaborative_tasks", task["id"])["status"] == "IN_PROGRESS"
        stream.close()

        assert db.row("collaborative_tasks", task["id"])["status"] == "PENDING"

    def test_departed_member_keeps_agent_identity(self, client, db, llm, team, agents, task):
        lead_member = next(m for m in db.rows("team_members") if m["agent_id"] == agents[0]["id"])
        db.tables["team_members"].remove(lead_member)

        events = parse_sse(client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/execute").text)

        starts = [e["data"] for e in events if e["event"] == "agent_start"]
        assert starts[0]["agent_name"] == "Lead"
        assert llm.calls[0]["model"] == "gpt-4o"

    def test_access_checked_before_stream(self, client, team, task, current_user):
        current_user["user"] = USER_B

        response = client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/execute")

        assert response.status_code == 404
        assert response.json()["success"] is False


class TestTaskVersions:
    def test_versions_point_at_root(self, client, db, team, task):
        first = client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/new-version", json={"description": "Spain and Portugal."})
        second = client.post(f"/api/teams/{team['id']}/tasks/{first.json()['id']}/new-version", json={})

        assert first.status_code == 201
        assert first.json()["version_number"] == 2
        assert first.json()["parent_task_id"] == task["id"]
        assert second.json()["version_number"] == 3
        assert second.json()["parent_task_id"] == task["id"]
        assert second.json()["description"] == "Spain and Portugal."

        listed = client.get(f"/api/teams/{team['id']}/tasks").json()
        assert [t["id"] for t in listed] == [task["id"]]
        assert listed[0]["version_count"] == 3

        versions = client.get(f"/api/teams/{team['id']}/tasks/{second.json()['id']}/versions").json()
        assert [v["version_number"] for v in versions["versions"]] == [1, 2, 3]

    def test_feedback(self, client, db, team, task):
        response = client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/feedback", json={"feedback": "dislike"})

        assert response.status_code == 200
        assert response.json()["feedback"] == -1
        assert db.row("collaborative_tasks", task["id"])["feedback"] == -1

    def test_delete_removes_dependent_rows(self, client, db, team, task):
        response = client.delete(f"/api/teams/{team['id']}/tasks/{task['id']}")

        assert response.status_code == 204
        assert db.rows("collaborative_tasks") == []
        assert db.rows("task_assignments") == []

    def test_deleting_root_promotes_next_version(self, client, db, team, task):
        second = client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/new-version", json={}).json()
        third = client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/new-version", json={}).json()

        response = client.delete(f"/api/teams/{team['id']}/tasks/{task['id']}")

        assert response.status_code == 204
        assert db.row("collaborative_tasks", second["id"])["parent_task_id"] is None
        assert db.row("collaborative_tasks", third["id"])["parent_task_id"] == second["id"]
        listed = client.get(f"/api/teams/{team['id']}/tasks").json()
        assert [(t["id"], t["version_count"]) for t in listed] == [(second["id"], 2)]
        versions = client.get(f"/api/teams/{team['id']}/tasks/{third['id']}/versions").json()
        assert [v["id"] for v in versions["versions"]] == [second["id"], third["id"]]

    def test_deleting_a_version_keeps_the_chain(self, client, db, team, task):
        second = client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/new-version", json={}).json()
        third = client.post(f"/api/teams/{team['id']}/tasks/{task['id']}/new-version", json={}).json()

        client.delete(f"/api/teams/{team['id']}/tasks/{second['id']}")

        assert db.row("collaborative_tasks", third["id"])["parent_task_id"] == task["id"]
        listed = client.get(f"/api/teams/{team['id']}/tasks").json()
        assert [(t["id"], t["version_count"]) for t in listed] == [(task["id"], 2)]
