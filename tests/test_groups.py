"""Tests for group chat rooms and agents inside groups."""

import pytest

from tests.conftest import USER_B, parse_sse


@pytest.fixture
def group(client):
    response = client.post("/api/groups", json={"name": "Product", "description": "Roadmap talk"})
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def group_agent(client, db, group, make_agent):
    agent = make_agent(name="Helper", configuration={"system_prompt": "Help the group."})
    response = client.post(f"/api/groups/{group['id']}/agents", json={"agent_id": agent["id"]})
    assert response.status_code == 201
    return agent


class TestGroups:
    def test_creator_becomes_owner(self, client, db, group):
        assert group["role"] == "owner"
        [member] = db.rows("group_members")
        assert member["user_id"] == "user-a"
        assert member["role"] == "owner"

    def test_failed_owner_membership_removes_group(self, client, db):
        db.fail_on["group_members"] = {"insert"}

        response = client.post("/api/groups", json={"name": "Broken"})

        assert response.status_code == 500
        assert db.rows("groups") == []

    def test_join_and_remaining(self, client, group, current_user):
        current_user["user"] = USER_B

        before = client.get("/api/groups/remaining").json()
        joined = client.post(f"/api/groups/{group['id']}/join")
        again = client.post(f"/api/groups/{group['id']}/join")
        after = client.get("/api/groups/remaining").json()

        assert [g["id"] for g in before] == [group["id"]]
        assert joined.status_code == 201
        assert joined.json()["role"] == "member"
        assert again.status_code == 400
        assert after == []
        assert client.get("/api/groups").json()[0]["role"] == "member"

    def test_role_for_non_member(self, client, group, current_user):
        current_user["user"] = USER_B

        response = client.get(f"/api/groups/{group['id']}/role")

        assert response.json() == {"group_id": group["id"], "role": None, "is_member": False}

    def test_only_owner_updates(self, client, group, current_user):
        renamed = client.put(f"/api/groups/{group['id']}", json={"name": "Platform"})
        assert renamed.json()["name"] == "Platform"

        current_user["user"] = USER_B
        client.post(f"/api/groups/{group['id']}/join")

        assert client.put(f"/api/groups/{group['id']}", json={"name": "Mine"}).status_code == 403
        assert client.delete(f"/api/groups/{group['id']}").status_code == 403

    def test_delete_removes_everything(self, client, db, group, group_agent):
        client.post(f"/api/groups/{group['id']}/messages", json={"content": "Hello"})

        response = client.delete(f"/api/groups/{group['id']}")

        assert response.status_code == 204
        for table in ("groups", "group_members", "group_messages", "group_agents"):
            assert db.rows(table) == []


class TestGroupMessages:
    def test_members_post_and_read_in_order(self, client, group):
        client.post(f"/api/groups/{group['id']}/messages", json={"content": "One"})
        client.post(f"/api/groups/{group['id']}/messages", json={"content": "Two"})

        response = client.get(f"/api/groups/{group['id']}/messages")

        assert [m["content"] for m in response.json()] == ["One", "Two"]
        assert all(m["role"] == "user" for m in response.json())

    def test_non_members_are_refused(self, client, group, current_user):
        current_user["user"] = USER_B

        assert client.get(f"/api/groups/{group['id']}/messages").status_code == 403
        assert client.post(f"/api/groups/{group['id']}/messages", json={"content": "Hi"}).status_code == 403


class TestGroupAgents:
    def test_list_agents(self, client, group, group_agent):
        response = client.get(f"/api/groups/{group['id']}/agents")

        assert [a["agent"]["name"] for a in response.json()] == ["Helper"]

    def test_agent_added_once(self, client, group, group_agent):
        response = client.post(f"/api/groups/{group['id']}/agents", json={"agent_id": group_agent["id"]})

        assert response.status_code == 400

    def test_send_stores_agent_addressed_message(self, client, db, group, group_agent):
        response = client.post(
            f"/api/groups/{group['id']}/agents/{group_agent['id']}/send",
            json={"content": "Summarize please"},
        )

        assert response.status_code == 201
        assert response.json()["role"] == "agent"

    def test_chat_streams_and_stores_reply(self, client, db, llm, group, group_agent):
        client.post(f"/api/groups/{group['id']}/messages", json={"content": "Side chatter"})
        client.post(f"/api/groups/{group['id']}/agents/{group_agent['id']}/send", json={"content": "Earlier question"})

        response = client.post(
            f"/api/groups/{group['id']}/agents/{group_agent['id']}/chat",
            json={"message": "What now?"},
        )

        events = parse_sse(response.text)
        assert [e["event"] for e in events] == ["token", "token", "done"]
        assert events[-1]["data"] == {"reply": "Hello there"}

        sent = llm.stream_calls[0]["messages"]
        assert sent[0] == {"role": "system", "content": "Help the group."}
        assert [m["content"] for m in sent[1:]] == ["Earlier question", "What now?"]

        history = client.get(f"/api/groups/{group['id']}/agents/{group_agent['id']}/history").json()
        assert [h["message"] for h in history] == ["Hello there"]

    def test_previous_replies_are_context(self, client, llm, group, group_agent):
        client.post(f"/api/groups/{group['id']}/agents/{group_agent['id']}/chat", json={"message": "First"})
        llm.tokens = ["Second", " answer"]

        client.post(f"/api/groups/{group['id']}/agents/{group_agent['id']}/chat", json={"message": "Again"})

        sent = llm.stream_calls[1]["messages"]
        assert [(m["role"], m["content"]) for m in sent[1:]] == [
            ("user", "First"),
            ("assistant", "Hello there"),
            ("user", "Again"),
        ]

    def test_chat_with_agent_outside_group(self, client, group, make_agent):
        outsider = make_agent(name="Outsider")

        response = client.post(f"/api/groups/{group['id']}/agents/{outsider['id']}/chat", json={"message": "Hi"})

        assert response.status_code == 404
        assert response.json()["error"] == "Agent is not part of this group"
