"""
API Namespaces - Organized endpoint groups
"""

from datetime import datetime, timezone
from urllib.parse import quote

from flask import current_app, g, request
from flask_restx import Namespace, Resource
from werkzeug.wsgi import wrap_file

from sunnycloud.api.v1.auth import require_admin, require_owner
from sunnycloud.api.v1.error_mapping import domain_error_response, unexpected_error_response
from sunnycloud.api.v1.models import (
    error_response,
    expiration_request,
    file_response,
    group_item_response,
    group_request,
    group_response,
    link_request,
    link_response,
    login_request,
    login_response,
    manifest_response,
    part_response,
    sweep_response,
    upload_complete_request,
    upload_init_request,
    upload_session_response,
)
from sunnycloud.application.auth_service import AuthService
from sunnycloud.application.download_result import FileDownload
from sunnycloud.application.download_service import DownloadResolver
from sunnycloud.application.expiration_sweeper import ExpirationSweeper
from sunnycloud.application.file_service import FileService
from sunnycloud.application.upload_service import UploadOrchestrator
from sunnycloud.domain.errors import DomainError, ValidationError
from sunnycloud.domain.file_storage.entities import format_datetime
from sunnycloud.domain.file_storage.storage_repository import DEFAULT_CONTENT_TYPE

DOWNLOAD_CACHE_CONTROL = "private, max-age=3600"

# =============================================================================
# Request helpers
# =============================================================================


def _optional_int(value, field_name: str):
    """Parse an optional integer from JSON or form input."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be an integer", e) from e


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _uploaded_file():
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError("Multipart field 'file' is required")
    return upload


def _read_limited(stream, limit: int) -> bytes:
    # One byte past the ceiling is enough to detect an oversized body
    return stream.read(limit + 1)


def _form_content_type(upload):
    mimetype = upload.mimetype
    if not mimetype or mimetype == DEFAULT_CONTENT_TYPE:
        return None
    return mimetype


def _epoch_to_iso(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()


def _content_disposition(name: str) -> str:
    fallback = name.encode("ascii", "ignore").decode("ascii").replace('"', "").replace("\\", "")
    fallback = fallback or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"


def _session_payload(session) -> dict:
    return {
        "session_id": session.session_id,
        "storage_key": session.storage_key,
        "state": session.state.value,
        "total_chunks": session.total_chunks,
        "expires_at": format_datetime(session.expires_at),
    }


# =============================================================================
# Auth Namespace - Session tokens
# =============================================================================

auth_ns = Namespace("auth", description="Owner authentication")


@auth_ns.route("/login")
class Login(Resource):
    """Exchange credentials for a session token"""

    @auth_ns.doc("login")
    @auth_ns.expect(login_request, validate=True)
    @auth_ns.response(200, "Success", login_response)
    @auth_ns.response(401, "Authentication Failed", error_response)
    def post(self):
        """
        Log in

        Returns a session token to send as ``Authorization: Bearer <token>``
        on owner endpoints.
        """
        data = request.get_json()
        auth_service = current_app.container.resolve(AuthService)
        try:
            token, expires_at = auth_service.login(data["identifier"], data["secret"])
            return {"token": token, "expires_at": _epoch_to_iso(expires_at)}, 200
        except DomainError as e:
            return domain_error_response(e, "LOGIN")
        except Exception as e:
            return unexpected_error_response(e, "LOGIN")


# =============================================================================
# Files Namespace - Standalone files
# =============================================================================

files_ns = Namespace("files", description="Standalone file operations")


@files_ns.route("/")
class Files(Resource):
    """Direct upload of a standalone file"""

    @files_ns.doc("upload_file", security="session")
    @files_ns.response(201, "Created", file_response)
    @files_ns.response(400, "Bad Request", error_response)
    @files_ns.response(413, "Payload Too Large", error_response)
    @files_ns.response(502, "Storage Unavailable", error_response)
    @require_owner
    def post(self):
        """
        Upload a file in one request

        Multipart form with field ``file`` and optional ``expires_in_days``.
        Files above the direct-upload ceiling must use chunked upload.
        """
        orchestrator = current_app.container.resolve(UploadOrchestrator)
        try:
            upload = _uploaded_file()
            expires_in_days = _optional_int(request.form.get("expires_in_days"), "expires_in_days")
            data = _read_limited(upload.stream, orchestrator.limits.max_direct_upload_bytes)
            record = orchestrator.put_direct(
                g.owner_id,
                upload.filename,
                data,
                content_type=_form_content_type(upload),
                expires_in_days=expires_in_days,
            )
            current_app.logger.info(f"[FILES] Owner {g.owner_id} uploaded file {record.id}")
            return record.to_dict(), 201
        except DomainError as e:
            return domain_error_response(e, "FILES")
        except Exception as e:
            return unexpected_error_response(e, "FILES")


@files_ns.route("/<int:file_id>")
@files_ns.param("file_id", "The file identifier")
class File(Resource):
    """Single file"""

    @files_ns.doc("delete_file", security="session")
    @files_ns.response(204, "File deleted")
    @files_ns.response(403, "Forbidden", error_response)
    @files_ns.response(404, "File Not Found", error_response)
    @require_owner
    def delete(self, file_id):
        """Delete a file and its blob"""
        file_service = current_app.container.resolve(FileService)
        try:
            file_service.delete_file(g.owner_id, file_id)
            return "", 204
        except DomainError as e:
            return domain_error_response(e, "FILES")
        except Exception as e:
            return unexpected_error_response(e, "FILES")


@files_ns.route("/<int:file_id>/expiration")
@files_ns.param("file_id", "The file identifier")
class FileExpiration(Resource):
    """File expiration"""

    @files_ns.doc("set_file_expiration", security="session")
    @files_ns.expect(expiration_request)
    @files_ns.response(200, "Success", file_response)
    @files_ns.response(403, "Forbidden", error_response)
    @files_ns.response(404, "File Not Found", error_response)
    @require_owner
    def put(self, file_id):
        """Change when a file expires (null or 0 for permanent)"""
        file_service = current_app.container.resolve(FileService)
        try:
            days = _optional_int(_json_body().get("expires_in_days"), "expires_in_days")
            record = file_service.set_file_expiration(g.owner_id, file_id, days)
            return record.to_dict(), 200
        except DomainError as e:
            return domain_error_response(e, "FILES")
        except Exception as e:
            return unexpected_error_response(e, "FILES")


@files_ns.route("/<int:file_id>/links")
@files_ns.param("file_id", "The file identifier")
class FileLinks(Resource):
    """Share links for a file"""

    @files_ns.doc("create_file_link", security="session")
    @files_ns.expect(link_request)
    @files_ns.response(201, "Created", link_response)
    @files_ns.response(403, "Forbidden", error_response)
    @files_ns.response(404, "File Not Found", error_response)
    @require_owner
    def post(self, file_id):
        """
        Issue a download link

        The link streams the file to whoever holds it. Omit ``ttl_seconds``
        for a permanent link.
        """
        resolver = current_app.container.resolve(DownloadResolver)
        try:
            ttl_seconds = _optional_int(_json_body().get("ttl_seconds"), "ttl_seconds")
            link = resolver.issue_file_link(g.owner_id, file_id, ttl_seconds)
            return link.to_dict(), 201
        except DomainError as e:
            return domain_error_response(e, "LINKS")
        except Exception as e:
            return unexpected_error_response(e, "LINKS")


# =============================================================================
# Groups Namespace - Archives and folders
# =============================================================================

groups_ns = Namespace("groups", description="File group operations")


@groups_ns.route("/")
class Groups(Resource):
    """Group creation"""

    @groups_ns.doc("create_group", security="session")
    @groups_ns.expect(group_request, validate=True)
    @groups_ns.response(201, "Created", group_response)
    @groups_ns.response(400, "Bad Request", error_response)
    @require_owner
    def post(self):
        """Register a group; items are uploaded into it afterwards"""
        orchestrator = current_app.container.resolve(UploadOrchestrator)
        data = request.get_json()
        try:
            group = orchestrator.create_group(
                g.owner_id,
                data["name"],
                data["total_size"],
                data["item_count"],
                group_type=data.get("type", "archive"),
                expires_in_days=_optional_int(data.get("expires_in_days"), "expires_in_days"),
            )
            return group.to_dict(), 201
        except DomainError as e:
            return domain_error_response(e, "GROUPS")
        except Exception as e:
            return unexpected_error_response(e, "GROUPS")


@groups_ns.route("/<int:group_id>")
@groups_ns.param("group_id", "The group identifier")
class Group(Resource):
    """Single group"""

    @groups_ns.doc("delete_group", security="session")
    @groups_ns.response(204, "Group deleted")
    @groups_ns.response(403, "Forbidden", error_response)
    @groups_ns.response(404, "Group Not Found", error_response)
    @require_owner
    def delete(self, group_id):
        """Delete a group with all of its items"""
        file_service = current_app.container.resolve(FileService)
        try:
            file_service.delete_group(g.owner_id, group_id)
            return "", 204
        except DomainError as e:
            return domain_error_response(e, "GROUPS")
        except Exception as e:
            return unexpected_error_response(e, "GROUPS")


@groups_ns.route("/<int:group_id>/items")
@groups_ns.param("group_id", "The group identifier")
class GroupItems(Resource):
    """Direct upload of a group item"""

    @groups_ns.doc("upload_group_item", security="session")
    @groups_ns.response(201, "Created", group_item_response)
    @groups_ns.response(403, "Forbidden", error_response)
    @groups_ns.response(404, "Group Not Found", error_response)
    @groups_ns.response(413, "Payload Too Large", error_response)
    @require_owner
    def post(self, group_id):
        """
        Upload one item into a group

        Multipart form with field ``file`` and optional ``name`` (a relative
        path inside a folder group; defaults to the uploaded filename).
        """
        orchestrator = current_app.container.resolve(UploadOrchestrator)
        try:
            upload = _uploaded_file()
            name = request.form.get("name") or upload.filename
            data = _read_limited(upload.stream, orchestrator.limits.max_direct_upload_bytes)
            item = orchestrator.put_group_item(
                g.owner_id, group_id, name, data, content_type=_form_content_type(upload)
            )
            return item.to_dict(), 201
        except DomainError as e:
            return domain_error_response(e, "GROUPS")
        except Exception as e:
            return unexpected_error_response(e, "GROUPS")


@groups_ns.route("/<int:group_id>/expiration")
@groups_ns.param("group_id", "The group identifier")
class GroupExpiration(Resource):
    """Group expiration"""

    @groups_ns.doc("set_group_expiration", security="session")
    @groups_ns.expect(expiration_request)
    @groups_ns.response(200, "Success", group_response)
    @groups_ns.response(403, "Forbidden", error_response)
    @groups_ns.response(404, "Group Not Found", error_response)
    @require_owner
    def put(self, group_id):
        """Change when a group expires (null or 0 for permanent)"""
        file_service = current_app.container.resolve(FileService)
        try:
            days = _optional_int(_json_body().get("expires_in_days"), "expires_in_days")
            group = file_service.set_group_expiration(g.owner_id, group_id, days)
            return group.to_dict(), 200
        except DomainError as e:
            return domain_error_response(e, "GROUPS")
        except Exception as e:
            return unexpected_error_response(e, "GROUPS")


@groups_ns.route("/<int:group_id>/links")
@groups_ns.param("group_id", "The group identifier")
class GroupLinks(Resource):
    """Share links for a group"""

    @groups_ns.doc("create_group_link", security="session")
    @groups_ns.expect(link_request)
    @groups_ns.response(201, "Created", link_response)
    @groups_ns.response(403, "Forbidden", error_response)
    @groups_ns.response(404, "Group Not Found", error_response)
    @require_owner
    def post(self, group_id):
        """Issue a download-page link for a group"""
        resolver = current_app.container.resolve(DownloadResolver)
        try:
            ttl_seconds = _optional_int(_json_body().get("ttl_seconds"), "ttl_seconds")
            link = resolver.issue_group_link(g.owner_id, group_id, ttl_seconds)
            return link.to_dict(), 201
        except DomainError as e:
            return domain_error_response(e, "LINKS")
        except Exception as e:
            return unexpected_error_response(e, "LINKS")


# =============================================================================
# Uploads Namespace - Chunked uploads
# =============================================================================

uploads_ns = Namespace("uploads", description="Chunked upload operations")


@uploads_ns.route("/")
class Uploads(Resource):
    """Chunked upload sessions"""

    @uploads_ns.doc("init_upload", security="session")
    @uploads_ns.expect(upload_init_request, validate=True)
    @uploads_ns.response(201, "Created", upload_session_response)
    @uploads_ns.response(400, "Bad Request", error_response)
    @uploads_ns.response(404, "Group Not Found", error_response)
    @require_owner
    def post(self):
        """Open a chunked upload session"""
        orchestrator = current_app.container.resolve(UploadOrchestrator)
        data = request.get_json()
        try:
            session = orchestrator.init(
                g.owner_id,
                data["name"],
                data["size"],
                data["total_chunks"],
                group_id=_optional_int(data.get("group_id"), "group_id"),
                content_type=data.get("content_type"),
                expires_in_days=_optional_int(data.get("expires_in_days"), "expires_in_days"),
            )
            return _session_payload(session), 201
        except DomainError as e:
            return domain_error_response(e, "UPLOADS")
        except Exception as e:
            return unexpected_error_response(e, "UPLOADS")


@uploads_ns.route("/<string:session_id>")
@uploads_ns.param("session_id", "The upload session identifier")
class Upload(Resource):
    """Single upload session"""

    @uploads_ns.doc("abort_upload", security="session")
    @uploads_ns.response(200, "Aborted", upload_session_response)
    @uploads_ns.response(404, "Session Not Found", error_response)
    @require_owner
    def delete(self, session_id):
        """Abort a chunked upload and discard its parts"""
        orchestrator = current_app.container.resolve(UploadOrchestrator)
        try:
            session = orchestrator.abort(session_id, owner_id=g.owner_id)
            return _session_payload(session), 200
        except DomainError as e:
            return domain_error_response(e, "UPLOADS")
        except Exception as e:
            return unexpected_error_response(e, "UPLOADS")


@uploads_ns.route("/<string:session_id>/parts/<int:part_number>")
@uploads_ns.param("session_id", "The upload session identifier")
@uploads_ns.param("part_number", "1-based part number")
class UploadPart(Resource):
    """One chunk of a chunked upload"""

    @uploads_ns.doc("upload_part", security="session")
    @uploads_ns.response(200, "Stored", part_response)
    @uploads_ns.response(400, "Bad Request", error_response)
    @uploads_ns.response(413, "Payload Too Large", error_response)
    @uploads_ns.response(502, "Storage Unavailable", error_response)
    @require_owner
    def put(self, session_id, part_number):
        """
        Upload one chunk

        The request body is the raw chunk. Parts may arrive in any order and
        re-sending a part number replaces it.
        """
        orchestrator = current_app.container.resolve(UploadOrchestrator)
        try:
            data = _read_limited(request.stream, orchestrator.limits.max_chunk_bytes)
            part = orchestrator.upload_part(session_id, part_number, data, owner_id=g.owner_id)
            return part.to_dict(), 200
        except DomainError as e:
            return domain_error_response(e, "UPLOADS")
        except Exception as e:
            return unexpected_error_response(e, "UPLOADS")


@uploads_ns.route("/<string:session_id>/complete")
@uploads_ns.param("session_id", "The upload session identifier")
class UploadComplete(Resource):
    """Completion of a chunked upload"""

    @uploads_ns.doc("complete_upload", security="session")
    @uploads_ns.expect(upload_complete_request, validate=True)
    @uploads_ns.response(201, "Completed")
    @uploads_ns.response(409, "Incomplete Part Set", error_response)
    @uploads_ns.response(502, "Storage Unavailable", error_response)
    @require_owner
    def post(self, session_id):
        """Assemble the uploaded parts into the final object"""
        orchestrator = current_app.container.resolve(UploadOrchestrator)
        data = request.get_json()
        try:
            result = orchestrator.complete(
                session_id,
                data["parts"],
                final_name=data.get("name"),
                final_size=_optional_int(data.get("size"), "size"),
                owner_id=g.owner_id,
            )
            payload = result.to_dict()
            payload["item_ref"] = result.id
            return payload, 201
        except DomainError as e:
            return domain_error_response(e, "UPLOADS")
        except Exception as e:
            return unexpected_error_response(e, "UPLOADS")


# =============================================================================
# Download Namespace - Token redemption
# =============================================================================

download_ns = Namespace("download", description="Capability link redemption")


@download_ns.route("/<string:token>")
@download_ns.param("token", "The capability token")
class Download(Resource):
    """Redeem a download link"""

    @download_ns.doc("redeem_token")
    @download_ns.response(200, "File content or group manifest", manifest_response)
    @download_ns.response(400, "Malformed Token", error_response)
    @download_ns.response(401, "Invalid Signature", error_response)
    @download_ns.response(404, "Not Found", error_response)
    @download_ns.response(410, "Link Expired", error_response)
    def get(self, token):
        """
        Download a file or list a group

        No session is required: the token alone authorizes the download.
        File tokens stream the blob as an attachment; group tokens return a
        manifest of short-lived per-item links.
        """
        resolver = current_app.container.resolve(DownloadResolver)
        try:
            result = resolver.resolve(token)
        except DomainError as e:
            return domain_error_response(e, "DOWNLOAD")
        except Exception as e:
            return unexpected_error_response(e, "DOWNLOAD")

        if isinstance(result, FileDownload):
            current_app.logger.info(
                f"[DOWNLOAD] Serving {result.name} ({result.size} bytes) for token {token[:8]}..."
            )
            response = current_app.response_class(
                wrap_file(request.environ, result.body),
                content_type=result.content_type,
                direct_passthrough=True,
            )
            response.headers["Content-Length"] = str(result.size)
            response.headers["Content-Disposition"] = _content_disposition(result.name)
            response.headers["Cache-Control"] = DOWNLOAD_CACHE_CONTROL
            return response

        return result.to_dict(), 200


# =============================================================================
# Admin Namespace - Maintenance
# =============================================================================

admin_ns = Namespace("admin", description="Maintenance operations")


@admin_ns.route("/cleanup")
class Cleanup(Resource):
    """Trigger the expiration sweep"""

    @admin_ns.doc("run_cleanup", security="admin")
    @admin_ns.response(200, "Sweep report", sweep_response)
    @admin_ns.response(401, "Invalid Admin Key", error_response)
    @require_admin
    def post(self):
        """Run the expiration sweep now and report what it removed"""
        sweeper = current_app.container.resolve(ExpirationSweeper)
        try:
            report = sweeper.sweep()
            return report.to_dict(), 200
        except Exception as e:
            return unexpected_error_response(e, "ADMIN")
