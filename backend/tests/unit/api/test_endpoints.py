"""
Endpoint tests for the v1 REST API.

The application is built with an in-memory container so no Redis or
object store is needed.
"""

import io
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from app_factory import AppConfig, create_app
from sunnycloud.application.auth_service import AuthService
from sunnycloud.application.dependency_container import DependencyContainer
from sunnycloud.application.download_service import DownloadResolver
from sunnycloud.application.expiration_sweeper import ExpirationSweeper
from sunnycloud.application.file_service import FileService
from sunnycloud.application.upload_service import UploadOrchestrator
from sunnycloud.domain.access_tokens import CapabilityTokenService, TokenPurpose
from sunnycloud.infrastructure.credential_directory import ConfiguredCredentialDirectory, hash_secret

ADMIN_KEY = "admin-key-for-tests"
API = "/api/v1"


@pytest.fixture
def app(token_service, orchestrator, resolver, file_service, sweeper):
    directory = ConfiguredCredentialDirectory([
        {"identifier": "alice@example.com", "principal_id": "alice", "secret_bcrypt": hash_secret("pw-a", rounds=4)},
        {"identifier": "bob@example.com", "principal_id": "bob", "secret_bcrypt": hash_secret("pw-b", rounds=4)},
    ])
    container = DependencyContainer()
    container.register_singleton(CapabilityTokenService, token_service)
    container.register_singleton(UploadOrchestrator, orchestrator)
    container.register_singleton(DownloadResolver, resolver)
    container.register_singleton(FileService, file_service)
    container.register_singleton(ExpirationSweeper, sweeper)
    container.register_singleton(AuthService, AuthService(directory, token_service))

    config = AppConfig()
    config.admin_key = ADMIN_KEY
    app = create_app(config, container)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _login(client, identifier, secret):
    response = client.post(f"{API}/auth/login", json={"identifier": identifier, "secret": secret})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


@pytest.fixture
def alice(client):
    return _login(client, "alice@example.com", "pw-a")


@pytest.fixture
def bob(client):
    return _login(client, "bob@example.com", "pw-b")


def _upload(client, headers, data=b"hello world", filename="hello.txt", **form):
    form["file"] = (io.BytesIO(data), filename)
    return client.post(
        f"{API}/files/", data=form, headers=headers, content_type="multipart/form-data"
    )


def _link(client, headers, path, **body):
    response = client.post(f"{API}{path}", json=body, headers=headers)
    assert response.status_code == 201
    return response.get_json()


class TestAuth:
    def test_login_returns_token_and_expiry(self, client):
        response = client.post(
            f"{API}/auth/login", json={"identifier": "alice@example.com", "secret": "pw-a"}
        )
        data = response.get_json()
        assert response.status_code == 200
        assert data["token"].count(".") == 2
        assert data["expires_at"].endswith("+00:00")

    def test_login_rejects_wrong_secret(self, client):
        response = client.post(
            f"{API}/auth/login", json={"identifier": "alice@example.com", "secret": "nope"}
        )
        assert response.status_code == 401
        assert response.get_json()["error"] == "authentication_failed"

    def test_login_requires_fields(self, client):
        response = client.post(f"{API}/auth/login", json={"identifier": "alice@example.com"})
        assert response.status_code == 400

    def test_owner_endpoint_without_token(self, client):
        response = _upload(client, {})
        assert response.status_code == 401
        assert response.get_json()["error"] == "authentication_failed"

    def test_owner_endpoint_with_download_token(self, client, alice):
        link = _link(client, alice, f"/files/{_upload(client, alice).get_json()['id']}/links")
        response = _upload(client, {"Authorization": f"Bearer {link['token']}"})
        assert response.status_code == 401


class TestFiles:
    def test_upload_file(self, client, alice):
        response = _upload(client, alice, expires_in_days="3")
        data = response.get_json()

        assert response.status_code == 201
        assert data["name"] == "hello.txt"
        assert data["size"] == 11
        assert data["owner_id"] == "alice"
        assert data["storage_key"].startswith("uploads/alice/")
        assert data["expires_at"] is not None

    def test_upload_requires_file_field(self, client, alice):
        response = client.post(
            f"{API}/files/", data={}, headers=alice, content_type="multipart/form-data"
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_request"

    def test_upload_too_large(self, client, alice, limits):
        response = _upload(client, alice, data=b"x" * (limits.max_direct_upload_bytes + 500))
        body = response.get_json()

        assert response.status_code == 413
        assert body["error"] == "payload_too_large"
        assert body["details"]["limit"] == limits.max_direct_upload_bytes

    def test_bad_expiry_value(self, client, alice):
        response = _upload(client, alice, expires_in_days="soon")
        assert response.status_code == 400

    def test_set_expiration(self, client, alice):
        file_id = _upload(client, alice).get_json()["id"]

        response = client.put(
            f"{API}/files/{file_id}/expiration", json={"expires_in_days": 2}, headers=alice
        )
        assert response.status_code == 200
        assert response.get_json()["expires_at"] is not None

        response = client.put(
            f"{API}/files/{file_id}/expiration", json={"expires_in_days": None}, headers=alice
        )
        assert response.get_json()["expires_at"] is None

    def test_delete_file(self, client, alice, file_repository):
        file_id = _upload(client, alice).get_json()["id"]

        assert client.delete(f"{API}/files/{file_id}", headers=alice).status_code == 204
        assert file_repository.get(file_id) is None
        assert client.delete(f"{API}/files/{file_id}", headers=alice).status_code == 404

    def test_foreign_file_is_forbidden(self, client, alice, bob):
        file_id = _upload(client, alice).get_json()["id"]

        assert client.delete(f"{API}/files/{file_id}", headers=bob).status_code == 403
        response = client.post(f"{API}/files/{file_id}/links", json={}, headers=bob)
        assert response.status_code == 403
        assert response.get_json()["error"] == "ownership_violation"


class TestDownload:
    def test_file_link_streams_attachment(self, client, alice):
        file_id = _upload(client, alice, data=b"report body", filename="Q3 report.txt").get_json()["id"]
        link = _link(client, alice, f"/files/{file_id}/links")

        response = client.get(link["url"])

        assert response.status_code == 200
        assert response.data == b"report body"
        assert response.mimetype == "text/plain"
        assert response.headers["Content-Length"] == "11"
        assert response.headers["Cache-Control"] == "private, max-age=3600"
        disposition = response.headers["Content-Disposition"]
        assert disposition.startswith("attachment;")
        assert "filename*=UTF-8''Q3%20report.txt" in disposition

    def test_non_ascii_name(self, client, alice):
        file_id = _upload(client, alice, data=b"x", filename="résumé.txt").get_json()["id"]
        link = _link(client, alice, f"/files/{file_id}/links")

        disposition = client.get(link["url"]).headers["Content-Disposition"]
        assert 'filename="rsum.txt"' in disposition
        assert "filename*=UTF-8''r%C3%A9sum%C3%A9.txt" in disposition

    def test_link_works_without_session(self, client, alice):
        file_id = _upload(client, alice).get_json()["id"]
        link = _link(client, alice, f"/files/{file_id}/links", ttl_seconds=60)

        assert link["permanent"] is False
        assert client.get(f"{API}/download/{link['token']}").status_code == 200

    def test_malformed_token(self, client):
        response = client.get(f"{API}/download/not-a-token")
        assert response.status_code == 400
        assert response.get_json()["error"] == "token_malformed"

    def test_foreign_signature(self, client, clock):
        other = CapabilityTokenService("someone-else", clock=clock)
        token = other.issue("uploads/alice/x", TokenPurpose.FILE_DOWNLOAD, 60)

        response = client.get(f"{API}/download/{token}")
        assert response.status_code == 401
        assert response.get_json()["error"] == "token_invalid_signature"

    def test_expired_link(self, client, alice, clock):
        file_id = _upload(client, alice).get_json()["id"]
        link = _link(client, alice, f"/files/{file_id}/links", ttl_seconds=60)
        clock.advance(61)

        response = client.get(link["url"])
        assert response.status_code == 410
        assert response.get_json()["error"] == "token_expired"

    def test_deleted_file(self, client, alice):
        file_id = _upload(client, alice).get_json()["id"]
        link = _link(client, alice, f"/files/{file_id}/links")
        client.delete(f"{API}/files/{file_id}", headers=alice)

        response = client.get(link["url"])
        assert response.status_code == 404
        assert response.get_json()["details"]["reason"] == "metadata-missing"

    def test_missing_blob(self, client, alice, storage_repository):
        record = _upload(client, alice).get_json()
        link = _link(client, alice, f"/files/{record['id']}/links")
        storage_repository.delete(record["storage_key"])

        response = client.get(link["url"])
        assert response.status_code == 404
        assert response.get_json()["error"] == "blob_missing"


class TestGroups:
    def _create_group(self, client, headers, **overrides):
        body = {"name": "trip", "total_size": 100, "item_count": 2, "type": "folder"}
        body.update(overrides)
        return client.post(f"{API}/groups/", json=body, headers=headers)

    def test_create_group(self, client, alice):
        response = self._create_group(client, alice)
        data = response.get_json()
        assert response.status_code == 201
        assert data["group_type"] == "folder"
        assert data["declared_item_count"] == 2

    @pytest.mark.parametrize("overrides", [
        {"item_count": None},
        {"type": "zip"},
        {"total_size": 0},
    ])
    def test_create_group_validation(self, client, alice, overrides):
        assert self._create_group(client, alice, **overrides).status_code == 400

    def test_manifest_flow(self, client, alice):
        group_id = self._create_group(client, alice).get_json()["id"]
        for name, data in [("photos/b.jpg", b"bbbb"), ("a.txt", b"a")]:
            response = client.post(
                f"{API}/groups/{group_id}/items",
                data={"file": (io.BytesIO(data), "upload.bin"), "name": name},
                headers=alice,
                content_type="multipart/form-data",
            )
            assert response.status_code == 201

        link = _link(client, alice, f"/groups/{group_id}/links")
        assert link["url"].startswith("https://sunny.example/download?token=")

        manifest = client.get(f"{API}/download/{link['token']}").get_json()
        assert manifest["type"] == "folder"
        assert [item["name"] for item in manifest["items"]] == ["a.txt", "photos/b.jpg"]
        assert manifest["actual_total_size"] == 5
        assert manifest["declared_total_size"] == 100

        item = client.get(manifest["items"][1]["download_url"])
        assert item.status_code == 200
        assert item.data == b"bbbb"

    def test_item_into_foreign_group(self, client, alice, bob):
        group_id = self._create_group(client, alice).get_json()["id"]
        response = client.post(
            f"{API}/groups/{group_id}/items",
            data={"file": (io.BytesIO(b"x"), "x.txt")},
            headers=bob,
            content_type="multipart/form-data",
        )
        assert response.status_code == 403

    def test_delete_group(self, client, alice):
        group_id = self._create_group(client, alice).get_json()["id"]
        link = _link(client, alice, f"/groups/{group_id}/links")

        assert client.delete(f"{API}/groups/{group_id}", headers=alice).status_code == 204
        assert client.get(f"{API}/download/{link['token']}").status_code == 404

    def test_group_expiration(self, client, alice):
        group_id = self._create_group(client, alice).get_json()["id"]
        response = client.put(
            f"{API}/groups/{group_id}/expiration", json={"expires_in_days": 1}, headers=alice
        )
        assert response.status_code == 200
        assert response.get_json()["expires_at"] is not None


class TestChunkedUploads:
    def _init(self, client, headers, **overrides):
        body = {"name": "big.bin", "size": 6, "total_chunks": 2}
        body.update(overrides)
        return client.post(f"{API}/uploads/", json=body, headers=headers)

    def _put_part(self, client, headers, session_id, number, data):
        return client.put(
            f"{API}/uploads/{session_id}/parts/{number}",
            data=data,
            headers=headers,
            content_type="application/octet-stream",
        )

    def test_out_of_order_parts_assemble_in_order(self, client, alice):
        session = self._init(client, alice).get_json()
        assert session["state"] == "created"

        second = self._put_part(client, alice, session["session_id"], 2, b"def").get_json()
        first = self._put_part(client, alice, session["session_id"], 1, b"abc").get_json()

        response = client.post(
            f"{API}/uploads/{session['session_id']}/complete",
            json={"parts": [second, first]},
            headers=alice,
        )
        result = response.get_json()
        assert response.status_code == 201
        assert result["item_ref"] == result["id"]
        assert result["size"] == 6

        link = _link(client, alice, f"/files/{result['id']}/links")
        assert client.get(link["url"]).data == b"abcdef"

    def test_incomplete_part_set(self, client, alice):
        session = self._init(client, alice).get_json()
        first = self._put_part(client, alice, session["session_id"], 1, b"abc").get_json()

        response = client.post(
            f"{API}/uploads/{session['session_id']}/complete",
            json={"parts": [first]},
            headers=alice,
        )
        assert response.status_code == 409
        assert response.get_json()["details"]["missing"] == [2]

    def test_oversized_chunk(self, client, alice, limits):
        session = self._init(client, alice).get_json()
        response = self._put_part(
            client, alice, session["session_id"], 1, b"x" * (limits.max_chunk_bytes + 1)
        )
        assert response.status_code == 413

    def test_part_number_out_of_range(self, client, alice):
        session = self._init(client, alice).get_json()
        response = self._put_part(client, alice, session["session_id"], 3, b"x")
        assert response.status_code == 400

    def test_too_many_chunks(self, client, alice, limits):
        response = self._init(client, alice, total_chunks=limits.max_total_chunks + 1)
        assert response.status_code == 400

    def test_foreign_session(self, client, alice, bob):
        session = self._init(client, alice).get_json()
        response = self._put_part(client, bob, session["session_id"], 1, b"abc")
        assert response.status_code == 403

    def test_abort(self, client, alice):
        session = self._init(client, alice).get_json()
        response = client.delete(f"{API}/uploads/{session['session_id']}", headers=alice)

        assert response.status_code == 200
        assert response.get_json()["state"] == "aborted"
        assert self._put_part(client, alice, session["session_id"], 1, b"abc").status_code == 400

    def test_unknown_session(self, client, alice):
        assert self._put_part(client, alice, "missing", 1, b"abc").status_code == 404


class TestAdmin:
    def test_cleanup_requires_key(self, client):
        assert client.post(f"{API}/admin/cleanup").status_code == 401
        response = client.post(f"{API}/admin/cleanup", headers={"X-Admin-Key": "wrong"})
        assert response.status_code == 401

    def test_cleanup_runs_sweep(self, client, alice, file_repository):
        file_id = _upload(client, alice, expires_in_days="1").get_json()["id"]
        file_repository.set_expiration(file_id, datetime(2000, 1, 1, tzinfo=timezone.utc))

        response = client.post(f"{API}/admin/cleanup", headers={"X-Admin-Key": ADMIN_KEY})
        assert response.status_code == 200
        assert response.get_json() == {
            "deletedFiles": 1,
            "deletedGroups": 0,
            "reapedUploads": 0,
            "failures": 0,
        }
        assert file_repository.get(file_id) is None

    def test_cleanup_disabled_without_configured_key(self, app, client):
        app.config["ADMIN_KEY"] = ""
        response = client.post(f"{API}/admin/cleanup", headers={"X-Admin-Key": ""})
        assert response.status_code == 401


class TestHealth:
    def test_healthy(self, client):
        with patch("app_factory.redis_health_check", return_value=True):
            response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["redis"] == "connected"

    def test_redis_down(self, client):
        with patch("app_factory.redis_health_check", return_value=False):
            response = client.get("/health")
        assert response.status_code == 503
        assert response.get_json()["status"] == "degraded"
