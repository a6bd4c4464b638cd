"""Tests for daemon/routes.py and the assembled app.

Covers:
- /health and /status
- Raw file API with synchronous index updates
- Versioned capsule API (create, update, list, versions, restore, archive, delete)
- Search parameters and filtering
- Error envelope and status codes
"""

from __future__ import annotations

from pathlib import Path

import pytest
from starlette.testclient import TestClient

from capsuleos.config.models import CapsuleConfig
from capsuleos.daemon.app import create_app
from capsuleos.daemon.lifecycle import ServerController
from capsuleos.daemon.routes import create_routes, parse_flag, parse_limit


@pytest.fixture
def controller(data_root: Path) -> ServerController:
    controller = ServerController(data_root=data_root, config=CapsuleConfig(), watch=False)
    controller.index.build()
    return controller


@pytest.fixture
def client(controller: ServerController) -> TestClient:
    return TestClient(create_app(controller))


def _search_paths(client: TestClient, **params: str) -> list[str]:
    response = client.get("/api/search", params=params)
    assert response.status_code == 200
    return [r["path"] for r in response.json()["results"]]


class TestHelpers:
    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", "on", " on "])
    def test_truthy_flags(self, value: str) -> None:
        assert parse_flag(value) is True

    @pytest.mark.parametrize("value", [None, "", "0", "false", "no", "maybe"])
    def test_falsy_flags(self, value: str | None) -> None:
        assert parse_flag(value) is False

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, 20), ("5", 5), ("0", 1), ("-3", 1), ("500", 100), ("abc", 20)],
    )
    def test_parse_limit(self, value: str | None, expected: int) -> None:
        assert parse_limit(value, 20) == expected

    def test_route_table(self, controller: ServerController) -> None:
        paths = {route.path for route in create_routes(controller)}
        assert {"/health", "/status", "/api/search", "/api/capsules"} <= paths


class TestDiagnostics:
    def test_health(self, client: TestClient, data_root: Path) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["data_root"] == str(data_root)

    def test_status(self, client: TestClient) -> None:
        body = client.get("/status").json()
        assert body["index"]["entries"] == 1  # tracker/habits.json
        assert body["watcher"] == {"enabled": False, "running": False}
        assert body["reconciler"] is None

    def test_unknown_route(self, client: TestClient) -> None:
        response = client.get("/api/nothing-here")
        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}


class TestMiddleware:
    def test_security_headers(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-XSS-Protection"] == "1; mode=block"

    def test_request_id_generated(self, client: TestClient) -> None:
        response = client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 12

    def test_request_id_echoed(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


class TestFileApi:
    def test_note_write_search_delete(self, client: TestClient) -> None:
        """Given a note written through the API, when searched, then it is found at once."""
        # Given
        response = client.post("/api/file/notes/test.md", json={"content": "# Hello\nsearch me"})
        assert response.json() == {"success": True}

        # When / Then
        assert _search_paths(client, q="hello") == ["notes/test.md"]

        # And after deletion it is gone
        assert client.delete("/api/file/notes/test.md").json() == {"success": True}
        assert _search_paths(client, q="hello") == []

    def test_archived_note_needs_include_archived(self, client: TestClient) -> None:
        # Given
        response = client.post("/api/file/archive/notes/x.md", json={"content": "archived note"})
        assert response.json() == {"success": True}

        # When / Then
        assert _search_paths(client, q="archived note") == []
        assert _search_paths(client, q="archived note", includeArchived="true") == [
            "archive/notes/x.md"
        ]
        result = client.get(
            "/api/search", params={"q": "archived note", "includeArchived": "1"}
        ).json()["results"][0]
        assert result["archived"] is True
        assert result["module"] == "notes"

    def test_read_file(self, client: TestClient) -> None:
        client.post("/api/file/planner/2024/week.json", json={"content": "{}"})
        response = client.get("/api/file/planner/2024/week.json")
        assert response.status_code == 200
        assert response.json() == {"content": "{}"}

    def test_read_missing_file(self, client: TestClient) -> None:
        response = client.get("/api/file/notes/missing.md")
        assert response.status_code == 404
        assert response.json()["error"] == "FILE_NOT_FOUND"

    def test_write_requires_string_content(self, client: TestClient) -> None:
        response = client.post("/api/file/notes/a.md", json={"content": 5})
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_PAYLOAD"

    def test_state_directory_is_off_limits(self, client: TestClient) -> None:
        response = client.get("/api/file/.capsuleos/config.yaml")
        assert response.status_code == 400
        assert response.json()["error"] == "PATH_OUTSIDE_ROOT"

    def test_list_files(self, client: TestClient) -> None:
        client.post("/api/file/notes/b.md", json={"content": "b"})
        client.post("/api/file/notes/a.md", json={"content": "a"})
        assert client.get("/api/files/notes").json() == ["a.md", "b.md"]

    def test_list_missing_folder_is_empty(self, client: TestClient) -> None:
        response = client.get("/api/files/nope")
        assert response.status_code == 200
        assert response.json() == []


class TestCapsuleApi:
    def test_create_update_list_versions_restore_delete(self, client: TestClient) -> None:
        # create
        created = client.post(
            "/api/capsules", json={"title": "Test", "tags": ["t"], "payload": {"a": 1}}
        )
        assert created.status_code == 200
        doc_id = created.json()["id"]
        assert created.json()["version"] == 1

        # update
        updated = client.post(
            "/api/capsules", json={"id": doc_id, "title": "Test updated", "tags": [], "payload": {}}
        )
        assert updated.json()["version"] == 2

        # list
        listed = client.get("/api/capsules").json()
        assert len(listed) == 1
        assert listed[0]["title"] == "Test updated"
        assert listed[0]["versions"] == [1, 2]

        # versions
        assert client.get("/api/versions/Test").json()["versions"] == [1, 2]

        # restore version 1
        restored = client.post("/api/restore/Test", json={"version": 1})
        assert restored.status_code == 200
        assert restored.json()["title"] == "Test"
        assert client.get("/api/versions/Test").json()["versions"] == [1, 2, 3]

        # delete
        assert client.delete(f"/api/capsules/{doc_id}").status_code == 200
        assert client.get("/api/capsules").json() == []

    def test_search_sees_only_latest_version(self, client: TestClient) -> None:
        doc_id = client.post("/api/capsules", json={"title": "Gardening"}).json()["id"]
        client.post("/api/capsules", json={"id": doc_id, "title": "Gardening plan"})

        assert _search_paths(client, q="gardening") == ["capsules/Gardening.v2.json"]
        # Equal scores fall back to path order
        assert _search_paths(client, q="gardening", versions="all") == [
            "capsules/Gardening.v1.json",
            "capsules/Gardening.v2.json",
        ]

    def test_archive_hides_from_search_and_list(self, client: TestClient) -> None:
        doc_id = client.post("/api/capsules", json={"title": "Secret plan"}).json()["id"]

        response = client.post(f"/api/capsules/{doc_id}/archive", json={"archived": True})
        assert response.json() == {"success": True, "archived": True, "moved": 1}

        assert client.get("/api/capsules").json() == []
        assert len(client.get("/api/capsules", params={"archived": "1"}).json()) == 1
        assert _search_paths(client, q="secret") == []
        assert _search_paths(client, q="secret", includeArchived="1") == [
            "archive/capsules/Secret plan.json"
        ]

    def test_create_archived_directly(self, client: TestClient) -> None:
        client.post("/api/capsules", json={"title": "Hidden", "archived": True})
        results = client.get("/api/search", params={"q": "hidden", "includeArchived": "true"})
        assert results.json()["results"][0]["archived"] is True

    def test_missing_title(self, client: TestClient) -> None:
        response = client.post("/api/capsules", json={"tags": []})
        assert response.status_code == 400
        assert response.json()["code"] == 3004

    def test_body_not_json(self, client: TestClient) -> None:
        response = client.post(
            "/api/capsules", content=b"not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400

    def test_delete_unknown(self, client: TestClient) -> None:
        response = client.delete("/api/capsules/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "DOCUMENT_NOT_FOUND"

    def test_versions_unknown(self, client: TestClient) -> None:
        assert client.get("/api/versions/nope").status_code == 404

    def test_restore_unknown_version(self, client: TestClient) -> None:
        client.post("/api/capsules", json={"title": "Test"})
        response = client.post("/api/restore/Test", json={"version": 7})
        assert response.status_code == 404
        assert response.json()["error"] == "VERSION_NOT_FOUND"

    @pytest.mark.parametrize("version", ["1", 1.5, True, None])
    def test_restore_rejects_non_integer(self, client: TestClient, version: object) -> None:
        client.post("/api/capsules", json={"title": "Test"})
        response = client.post("/api/restore/Test", json={"version": version})
        assert response.status_code == 400


class TestSearchParams:
    def test_limit_is_clamped(self, client: TestClient) -> None:
        for i in range(3):
            client.post(f"/api/file/notes/n{i}.md", json={"content": "alpha"})
        assert len(_search_paths(client, q="alpha", limit="0")) == 1
        assert len(_search_paths(client, q="alpha", limit="1000")) == 3

    def test_missing_query(self, client: TestClient) -> None:
        assert _search_paths(client) == []

    def test_result_shape(self, client: TestClient) -> None:
        client.post("/api/file/notes/shape.md", json={"content": "distinctive words"})
        result = client.get("/api/search", params={"q": "distinctive"}).json()["results"][0]
        assert result == {
            "itemId": "notes/shape.md",
            "path": "notes/shape.md",
            "module": "notes",
            "title": "shape",
            "version": 1,
            "archived": False,
            "tags": [],
        }
