"""
Pytest configuration and fixtures for the agent workspace API tests.

The Supabase client is replaced by an in-memory fake of its query builder and
the LLM client by a scripted fake, both injected through
app.dependency_overrides, so no test touches the network.
"""

import copy
import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import get_current_user_id
from app.core.limiter import limiter
from app.core.llm import LLMResult, get_llm_client
from app.database.supabase_client import get_service_supabase, get_supabase
from app.main import app
from app.modules.uploads.storage import AttachmentStorage, get_attachment_storage

USER_A = {"id": "user-a", "email": "alice@example.com", "name": "alice"}
USER_B = {"id": "user-b", "email": "bob@example.com", "name": "bob"}

# Column defaults the database would fill in
TABLE_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "agents": {
        "type": "GENERAL",
        "status": "ACTIVE",
        "capabilities": [],
        "configuration": {},
        "metrics": {},
        "is_deleted": False,
    },
    "teams": {"status": "ACTIVE"},
    "messages": {"feedback": 0},
    "collaborative_tasks": {
        "status": "PENDING",
        "priority": "MEDIUM",
        "version_number": 1,
        "parent_task_id": None,
        "feedback": None,
        "result": None,
    },
    "group_members": {"role": "member"},
}
EXTRA_TIMESTAMPS = {
    "team_members": "added_at",
    "message_attachments": "uploaded_at",
    "task_attachments": "uploaded_at",
}


class FakeResult:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data


class FakeQuery:
    """Subset of the postgrest query builder used by the services"""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.action = "select"
        self.payload: Any = None
        self.filters = []
        self.orders = []
        self.row_limit: Optional[int] = None

    def select(self, *args, **kwargs):
        return self

    def insert(self, payload):
        self.action = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.action = "update"
        self.payload = payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.action))
        if self.table in self.db.fail_on and self.action in self.db.fail_on[self.table]:
            raise RuntimeError(f"{self.action} on {self.table} failed")
        rows = self.db.tables.setdefault(self.table, [])

        if self.action == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResult([copy.deepcopy(self.db.add_row(self.table, p)) for p in payloads])

        matched = [r for r in rows if self._matches(r)]
        if self.action == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResult(copy.deepcopy(matched))
        if self.action == "delete":
            self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResult(copy.deepcopy(matched))

        for column, desc in reversed(self.orders):
            matched.sort(key=lambda r: (r.get(column) is None, r.get(column) if r.get(column) is not None else 0), reverse=desc)
        if self.row_limit is not None:
            matched = matched[:self.row_limit]
        return FakeResult(copy.deepcopy(matched))


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls = []
        self.fail_on: Dict[str, set] = {}
        self.auth = MagicMock()
        self.storage = MagicMock()
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _now(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def add_row(self, table: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        row = {**TABLE_DEFAULTS.get(table, {}), **copy.deepcopy(payload)}
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", self._now())
        if table in EXTRA_TIMESTAMPS:
            row.setdefault(EXTRA_TIMESTAMPS[table], row["created_at"])
        self.tables.setdefault(table, []).append(row)
        return row

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])

    def row(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.rows(table) if r["id"] == row_id), None)


class FakeLLM:
    """
    Scripted LLM client. Non-streaming calls pop from `replies` (a str or an
    Exception) and fall back to `default_reply`; streaming yields `tokens`.
    """

    def __init__(self):
        self.replies: List[Any] = []
        self.default_reply = "Done."
        self.token_logprobs: Optional[List[float]] = [-0.1, -0.2]
        self.tokens = ["Hello", " there"]
        self.stream_error: Optional[Exception] = None
        self.calls: List[Dict[str, Any]] = []
        self.stream_calls: List[Dict[str, Any]] = []

    def complete(self, messages, model=None, temperature=0.7, max_tokens=None, logprobs=False):
        self.calls.append({"messages": messages, "model": model, "max_tokens": max_tokens, "logprobs": logprobs})
        reply = self.replies.pop(0) if self.replies else self.default_reply
        if isinstance(reply, Exception):
            raise reply
        return LLMResult(
            content=reply,
            model=model or "gpt-4o-mini",
            usage={"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
            token_logprobs=self.token_logprobs if logprobs else None,
        )

    def complete_with_fallback(self, messages, model, fallback_model, **kwargs):
        return self.complete(messages, model=model, **kwargs)

    def stream(self, messages, model=None, temperature=0.7, fallback_model=None, usage=None):
        self.stream_calls.append({"messages": messages, "model": model})
        if self.stream_error:
            raise self.stream_error
        if usage is not None:
            usage.update({"prompt_tokens": 4, "completion_tokens": len(self.tokens), "total_tokens": 4 + len(self.tokens)})
        for token in self.tokens:
            yield token


class MemoryStorage(AttachmentStorage):
    """AttachmentStorage keeping file bytes in a dict"""

    def __init__(self, supabase):
        super().__init__(supabase)
        self.files: Dict[str, bytes] = {}

    def upload(self, content, folder, file_name, content_type):
        key = f"{folder}/{file_name}"
        self.files[key] = content
        return key

    def download(self, file_path):
        if file_path not in self.files:
            raise FileNotFoundError(file_path)
        return self.files[file_path]

    def delete(self, file_path):
        return self.files.pop(file_path, None) is not None


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def storage(db):
    return MemoryStorage(db)


@pytest.fixture
def current_user():
    """Mutable holder for the authenticated user; tests switch users by assignment"""
    return {"user": USER_A}


@pytest.fixture
def client(db, llm, storage, current_user):
    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_service_supabase] = lambda: db
    app.dependency_overrides[get_llm_client] = lambda: llm
    app.dependency_overrides[get_attachment_storage] = lambda: storage
    app.dependency_overrides[get_current_user_id] = lambda: dict(current_user["user"])
    limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_agent(db):
    def _make(user_id=USER_A["id"], name="Researcher", **fields):
        return db.add_row("agents", {"user_id": user_id, "name": name, **fields})
    return _make


@pytest.fixture
def make_team(db):
    def _make(user_id=USER_A["id"], agents=(), name="Launch team"):
        team = db.add_row("teams", {"user_id": user_id, "name": name})
        for index, agent in enumerate(agents):
            db.add_row("team_members", {
                "team_id": team["id"],
                "agent_id": agent["id"],
                "role": f"Role {index + 1}",
                "is_primary_agent": index == 0,
            })
        return team
    return _make


def parse_sse(body: str) -> List[Dict[str, Any]]:
    """Split an SSE body into [{"event": ..., "data": ...}] with JSON data decoded"""
    events = []
    for block in body.strip().split("\n\n"):
        event = {}
        for line in block.splitlines():
            key, _, value = line.partition(": ")
            event[key] = json.loads(value) if key == "data" else value
        if event:
            events.append(event)
    return events
