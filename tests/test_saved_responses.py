"""Tests for saved agent responses."""

import pytest

from tests.conftest import USER_B


@pytest.fixture
def agents(make_agent):
    return make_agent(name="Writer"), make_agent(name="Reviewer")


@pytest.fixture
def saved(client, agents):
    writer, reviewer = agents
    response = client.post("/api/saved-responses", json={
        "original_agent_id": writer["id"],
        "original_response": "Draft intro paragraph.",
        "question_text": "Write an intro",
        "target_agent_id": reviewer["id"],
    })
    assert response.status_code == 201
    return response.json()


class TestSavedResponses:
    def test_save_records_owner(self, saved, agents):
        assert saved["user_id"] == "user-a"
        assert saved["target_agent_id"] == agents[1]["id"]

    def test_empty_response_is_rejected(self, client, agents):
        response = client.post("/api/saved-responses", json={
            "original_agent_id": agents[0]["id"],
            "original_response": "",
        })

        assert response.status_code == 422
        assert response.json()["success"] is False

    def test_requires_access_to_agents(self, client, agents, make_agent):
        foreign = make_agent(user_id=USER_B["id"])

        original = client.post("/api/saved-responses", json={
            "original_agent_id": foreign["id"],
            "original_response": "Hi",
        })
        target = client.post("/api/saved-responses", json={
            "original_agent_id": agents[0]["id"],
            "original_response": "Hi",
            "target_agent_id": foreign["id"],
        })

        assert original.status_code == 403
        assert target.status_code == 403

    def test_filter_by_target(self, client, agents, saved):
        client.post("/api/saved-responses", json={
            "original_agent_id": agents[1]["id"],
            "original_response": "Untargeted note",
        })

        everything = client.get("/api/saved-responses").json()
        for_reviewer = client.get("/api/saved-responses", params={"target_agent_id": agents[1]["id"]}).json()

        assert len(everything) == 2
        assert [r["id"] for r in for_reviewer] == [saved["id"]]

    def test_private_to_the_saver(self, client, saved, current_user):
        current_user["user"] = USER_B

        assert client.get("/api/saved-responses").json() == []
        assert client.get(f"/api/saved-responses/{saved['id']}").status_code == 404
        assert client.delete(f"/api/saved-responses/{saved['id']}").status_code == 404

    def test_retarget(self, client, db, agents, saved, make_agent):
        third = make_agent(name="Editor")

        response = client.put(f"/api/saved-responses/{saved['id']}/target", json={"target_agent_id": third["id"]})

        assert response.status_code == 200
        assert response.json()["target_agent_id"] == third["id"]
        assert db.row("saved_responses", saved["id"])["updated_at"]

    def test_delete(self, client, db, saved):
        response = client.delete(f"/api/saved-responses/{saved['id']}")

        assert response.status_code == 204
        assert db.rows("saved_responses") == []
