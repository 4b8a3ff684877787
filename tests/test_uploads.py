"""Tests for attachment upload, download and deletion."""

import base64
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from app.config import settings
from app.modules.uploads.routes import content_disposition
from app.modules.uploads.service import validate_file
from app.modules.uploads.storage import AttachmentStorage
from tests.conftest import USER_B


@pytest.fixture
def message(db, make_agent):
    agent = make_agent()
    conversation = db.add_row("conversations", {"user_id": "user-a", "agent_id": agent["id"]})
    return db.add_row("messages", {"conversation_id": conversation["id"], "role": "user", "content": "See file"})


class TestValidateFile:
    def test_accepts_allowed_type(self):
        validate_file("application/pdf", 1024)

    def test_rejects_unknown_type(self):
        with pytest.raises(HTTPException) as exc:
            validate_file("application/x-msdownload", 10)
        assert exc.value.status_code == 400

    def test_rejects_oversized_file(self):
        with pytest.raises(HTTPException) as exc:
            validate_file("image/png", settings.max_upload_size_bytes + 1)
        assert exc.value.status_code == 400
        assert "exceeds maximum" in exc.value.detail


class TestMessageAttachments:
    def test_upload_stores_file_and_row(self, client, db, storage, message):
        response = client.post(
            f"/api/uploads/messages/{message['id']}",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["original_file_name"] == "notes.txt"
        assert data["file_name"].endswith(".txt")
        assert data["file_size"] == 5
        assert data["file_path"] == f"conversations/{data['file_name']}"
        assert storage.files[data["file_path"]] == b"hello"
        assert db.rows("message_attachments")[0]["message_id"] == message["id"]

    def test_disallowed_type_is_rejected(self, client, db, message):
        response = client.post(
            f"/api/uploads/messages/{message['id']}",
            files={"file": ("run.exe", b"MZ", "application/x-msdownload")},
        )

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert db.rows("message_attachments") == []

    def test_oversized_file_is_rejected(self, client, message, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_size_mb", 0)

        response = client.post(
            f"/api/uploads/messages/{message['id']}",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400

    def test_other_users_cannot_attach(self, client, message, current_user):
        current_user["user"] = USER_B

        response = client.post(
            f"/api/uploads/messages/{message['id']}",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 403

    def test_download_and_delete(self, client, db, storage, message):
        uploaded = client.post(
            f"/api/uploads/messages/{message['id']}",
            files={"file": ("photo.png", b"\x89PNG", "image/png")},
        ).json()

        download = client.get(f"/api/uploads/files/conversation/{uploaded['file_name']}")
        assert download.status_code == 200
        assert download.content == b"\x89PNG"
        assert download.headers["content-type"] == "image/png"
        assert "photo.png" in download.headers["content-disposition"]

        listed = client.get(f"/api/uploads/messages/{message['id']}").json()
        assert [a["id"] for a in listed] == [uploaded["id"]]

        deleted = client.delete(f"/api/uploads/message/{uploaded['id']}")
        assert deleted.status_code == 204
        assert db.rows("message_attachments") == []
        assert storage.files == {}

    def test_download_non_latin_file_name(self, client, message):
        uploaded = client.post(
            f"/api/uploads/messages/{message['id']}",
            files={"file": ("报告.txt", b"data", "text/plain")},
        ).json()

        download = client.get(f"/api/uploads/files/conversation/{uploaded['file_name']}")

        assert download.status_code == 200
        assert download.content == b"data"
        assert "filename*=UTF-8''%E6%8A%A5%E5%91%8A.txt" in download.headers["content-disposition"]

    def test_download_unknown_kind(self, client):
        assert client.get("/api/uploads/files/avatar/x.png").status_code == 400

    def test_download_missing_file(self, client):
        assert client.get("/api/uploads/files/task/missing.png").status_code == 404


class TestContentDisposition:
    def test_quotes_are_kept_out_of_the_fallback_name(self):
        header = content_disposition('draft "v2".txt')

        assert header == "inline; filename=\"draft v2.txt\"; filename*=UTF-8''draft%20%22v2%22.txt"

    def test_non_ascii_only_name_falls_back(self):
        assert content_disposition("报告").startswith('inline; filename="download";')


class TestTaskAttachments:
    def test_upload_records_uploader(self, client, db, make_agent, make_team):
        team = make_team(agents=[make_agent()])
        task = db.add_row("collaborative_tasks", {"team_id": team["id"], "user_id": "user-a", "title": "T", "description": "D"})

        response = client.post(
            f"/api/uploads/tasks/{task['id']}",
            files={"file": ("brief.pdf", b"%PDF", "application/pdf")},
        )

        assert response.status_code == 201
        assert response.json()["uploaded_by"] == "user-a"
        assert response.json()["file_path"].startswith("tasks/")


class TestImageParts:
    def test_images_become_data_urls(self, storage):
        path = storage.upload(b"img", "conversations", "a.png", "image/png")
        attachments = [
            {"file_path": path, "file_type": "image/png", "original_file_name": "a.png"},
            {"file_path": "conversations/doc.pdf", "file_type": "application/pdf"},
        ]

        parts = storage.image_parts(attachments)

        encoded = base64.b64encode(b"img").decode("ascii")
        assert parts == [{"type": "image_url", "image_url": {"url": f"data:image/png;base64,{encoded}"}}]

    def test_unreadable_images_are_skipped(self, storage):
        parts = storage.image_parts([{"file_path": "missing.png", "file_type": "image/png"}])

        assert parts == []


class TestS3Routing:
    def test_s3_paths_go_to_s3(self, db):
        s3 = MagicMock()
        s3.upload_file.return_value = "s3://bucket/tasks/a.pdf"
        s3.key_from_path.return_value = "tasks/a.pdf"
        s3.download_file.return_value = b"%PDF"
        storage = AttachmentStorage(db, s3_storage=s3)

        path = storage.upload(b"%PDF", "tasks", "a.pdf", "application/pdf")

        assert path == "s3://bucket/tasks/a.pdf"
        assert storage.download(path) == b"%PDF"
        s3.download_file.assert_called_once_with("tasks/a.pdf")
        db.storage.from_.assert_not_called()

    def test_supabase_used_without_s3(self, db):
        storage = AttachmentStorage(db)

        path = storage.upload(b"hi", "conversations", "a.txt", "text/plain")

        assert path == "conversations/a.txt"
        db.storage.from_.assert_called_with(settings.storage_bucket)
