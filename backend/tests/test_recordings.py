"""Tests for recording upload, sidecar metadata, catalog and download."""
import json
import re
from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from huddle.main import create_app
from huddle.recordings.service import RecordingService, build_filename

FILENAME_RE = re.compile(r"^recording-[0-9TZ-]+-[A-Z0-9]+-[0-9a-f]{6}\.webm$")


def upload(client, content=b"webm-bytes", **fields):
    data = {
        "roomCode": "team42",
        "userEmail": "alice@example.com",
        "duration": "00:42",
        "recordingType": "single",
        "participantCount": "3",
    }
    data.update(fields)
    return client.post(
        "/api/upload-recording",
        files={"recording": ("clip.webm", content, "video/webm")},
        data=data,
    )


class TestBuildFilename:

    def test_format(self):
        moment = datetime(2024, 5, 1, 12, 30, 15, 123000, tzinfo=timezone.utc)
        name = build_filename("team42", moment)
        assert name.startswith("recording-2024-05-01T12-30-15-123Z-TEAM42-")
        assert FILENAME_RE.match(name)

    def test_unsafe_room_code_is_reduced(self):
        name = build_filename("../../etc", datetime.now(timezone.utc))
        assert "/" not in name
        assert "-ETC-" in name

    def test_missing_room_code(self):
        assert "-UNKNOWN-" in build_filename(None, datetime.now(timezone.utc))


class TestService:

    def test_save_writes_file_sidecar_and_catalog(self, tmp_path):
        service = RecordingService(upload_dir=str(tmp_path), db_path=":memory:")
        metadata = service.save_recording(
            b"abc", room_code="room1", user_email="a@example.com", participant_count=2
        )

        assert (tmp_path / metadata.filename).read_bytes() == b"abc"
        sidecar = json.loads((tmp_path / f"{metadata.filename}.json").read_text())
        assert set(sidecar) == {
            "filename", "roomCode", "userEmail", "recordingType", "participantCount",
            "duration", "fileSize", "uploadedAt", "path",
        }
        assert sidecar["roomCode"] == "ROOM1"
        assert sidecar["recordingType"] == "single"
        assert sidecar["duration"] == "unknown"
        assert sidecar["fileSize"] == 3
        assert sidecar["path"] == f"/uploads/recordings/{metadata.filename}"

        assert service.get_recording(metadata.filename) == metadata
        assert service.list_room_recordings("room1") == [metadata]

    def test_size_limit(self, tmp_path):
        service = RecordingService(upload_dir=str(tmp_path), db_path=":memory:", max_file_size_bytes=2)
        with pytest.raises(ValueError):
            service.save_recording(b"abc", room_code="ROOM1", user_email="a@example.com")
        assert list(tmp_path.iterdir()) == []

    def test_unknown_recording_has_no_path(self, tmp_path):
        service = RecordingService(upload_dir=str(tmp_path), db_path=":memory:")
        (tmp_path / "stray.webm").write_bytes(b"x")
        assert service.get_recording_path("stray.webm") is None

    def test_singleton(self, tmp_path):
        first = RecordingService.get_instance(upload_dir=str(tmp_path), db_path=":memory:")
        assert RecordingService.get_instance() is first


class TestApi:

    def test_upload(self, api_client, test_config):
        response = upload(api_client)
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert FILENAME_RE.match(body["filename"])
        assert "-TEAM42-" in body["filename"]
        assert body["size"] == len(b"webm-bytes")
        assert body["participantCount"] == 3
        assert body["duration"] == "00:42"
        assert body["metadata"]["userEmail"] == "alice@example.com"

        upload_dir = Path(test_config.recordings.upload_dir)
        assert (upload_dir / body["filename"]).exists()
        assert (upload_dir / f"{body['filename']}.json").exists()

    def test_upload_defaults(self, api_client):
        body = upload(api_client, recordingType="", participantCount="many", duration="").json()
        assert body["recordingType"] == "single"
        assert body["participantCount"] == 1
        assert body["duration"] == "unknown"

    def test_upload_without_file(self, api_client):
        response = api_client.post("/api/upload-recording", data={"roomCode": "ROOM1"})
        assert response.status_code == 400

    def test_upload_too_large(self, test_config):
        test_config.recordings.max_file_size_mb = 1
        with TestClient(create_app(test_config)) as client:
            response = upload(client, content=b"x" * (1024 * 1024 + 1))
        assert response.status_code == 413

    def test_list_and_download(self, api_client):
        first = upload(api_client, content=b"first").json()
        upload(api_client, content=b"other", roomCode="OTHER1")

        listing = api_client.get("/api/recordings/TEAM42").json()
        assert listing["total"] == 1
        assert listing["data"][0]["filename"] == first["filename"]

        download = api_client.get(first["path"])
        assert download.status_code == 200
        assert download.content == b"first"
        assert download.headers["content-type"] == "video/webm"

    def test_download_unknown(self, api_client):
        response = api_client.get("/uploads/recordings/recording-nope.webm")
        assert response.status_code == 404
