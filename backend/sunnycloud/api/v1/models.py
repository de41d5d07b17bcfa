"""
API Models for request/response validation and Swagger documentation
"""

from flask_restx import fields

from sunnycloud.api.v1 import api

# =============================================================================
# Request Models
# =============================================================================

login_request = api.model(
    "LoginRequest",
    {
        "identifier": fields.String(required=True, description="Account identifier", example="alice"),
        "secret": fields.String(required=True, description="Account secret"),
    },
)

group_request = api.model(
    "GroupRequest",
    {
        "name": fields.String(required=True, description="Display name", example="holiday-photos"),
        "total_size": fields.Integer(
            required=True, description="Declared total size in bytes", min=1
        ),
        "item_count": fields.Integer(required=True, description="Declared number of items", min=1),
        "type": fields.String(
            description="Group type", enum=["archive", "folder"], default="archive"
        ),
        "expires_in_days": fields.Integer(
            description="Days until the group expires; omit or 0 for permanent", min=0
        ),
    },
)

expiration_request = api.model(
    "ExpirationRequest",
    {
        "expires_in_days": fields.Integer(
            description="Days from now; null or 0 makes the resource permanent", min=0
        ),
    },
)

link_request = api.model(
    "LinkRequest",
    {
        "ttl_seconds": fields.Integer(
            description="Link lifetime in seconds; omit for a permanent link", min=1
        ),
    },
)

upload_init_request = api.model(
    "UploadInitRequest",
    {
        "name": fields.String(required=True, description="Final file name", example="video.mp4"),
        "size": fields.Integer(required=True, description="Declared size in bytes", min=0),
        "total_chunks": fields.Integer(required=True, description="Number of parts", min=1),
        "group_id": fields.Integer(description="Target group for a group item"),
        "content_type": fields.String(description="MIME type of the final file"),
        "expires_in_days": fields.Integer(
            description="Expiry of the resulting file (ignored for group items)", min=0
        ),
    },
)

uploaded_part = api.model(
    "UploadedPart",
    {
        "part_number": fields.Integer(required=True, description="1-based part number", min=1),
        "etag": fields.String(required=True, description="Etag returned by the part upload"),
    },
)

upload_complete_request = api.model(
    "UploadCompleteRequest",
    {
        "parts": fields.List(
            fields.Nested(uploaded_part), required=True, description="Every part 1..N"
        ),
        "name": fields.String(description="Display name override"),
        "size": fields.Integer(description="Size to record", min=0),
    },
)

# =============================================================================
# Response Models
# =============================================================================

login_response = api.model(
    "LoginResponse",
    {
        "token": fields.String(description="Session token for the Authorization header"),
        "expires_at": fields.String(description="Session expiry (ISO timestamp)"),
    },
)

file_response = api.model(
    "FileResponse",
    {
        "id": fields.Integer(description="File id"),
        "owner_id": fields.String(description="Owning principal"),
        "name": fields.String(description="Display name"),
        "size": fields.Integer(description="Size in bytes"),
        "content_type": fields.String(description="MIME type"),
        "storage_key": fields.String(description="Object store key"),
        "created_at": fields.String(description="Creation time (ISO timestamp)"),
        "expires_at": fields.String(
            description="Expiry (ISO timestamp); null when permanent", allow_null=True
        ),
    },
)

group_response = api.model(
    "GroupResponse",
    {
        "id": fields.Integer(description="Group id"),
        "owner_id": fields.String(description="Owning principal"),
        "name": fields.String(description="Display name"),
        "declared_total_size": fields.Integer(description="Declared total size"),
        "declared_item_count": fields.Integer(description="Declared number of items"),
        "group_type": fields.String(description="Group type"),
        "created_at": fields.String(description="Creation time (ISO timestamp)"),
        "expires_at": fields.String(description="Expiry (ISO timestamp)", allow_null=True),
    },
)

group_item_response = api.model(
    "GroupItemResponse",
    {
        "id": fields.Integer(description="Item id"),
        "group_id": fields.Integer(description="Owning group"),
        "name": fields.String(description="Name, possibly a relative path"),
        "size": fields.Integer(description="Size in bytes"),
        "content_type": fields.String(description="MIME type"),
        "storage_key": fields.String(description="Object store key"),
        "created_at": fields.String(description="Creation time (ISO timestamp)"),
    },
)

link_response = api.model(
    "LinkResponse",
    {
        "url": fields.String(description="Shareable URL"),
        "token": fields.String(description="Capability token embedded in the URL"),
        "expires_at": fields.String(description="Token expiry (ISO timestamp)"),
        "permanent": fields.Boolean(description="Whether the link was issued without a TTL"),
    },
)

upload_session_response = api.model(
    "UploadSessionResponse",
    {
        "session_id": fields.String(description="Upload session id"),
        "storage_key": fields.String(description="Key the assembled object will use"),
        "state": fields.String(
            description="Session state",
            enum=["created", "parts_in_progress", "completed", "aborted", "failed"],
        ),
        "total_chunks": fields.Integer(description="Number of parts expected"),
        "expires_at": fields.String(description="Abandonment deadline (ISO timestamp)"),
    },
)

part_response = api.model(
    "PartResponse",
    {
        "part_number": fields.Integer(description="1-based part number"),
        "etag": fields.String(description="Etag to pass back on completion"),
    },
)

manifest_item = api.model(
    "ManifestItem",
    {
        "name": fields.String(description="Item name"),
        "size": fields.Integer(description="Size in bytes"),
        "content_type": fields.String(description="MIME type"),
        "download_ref": fields.String(description="Short-lived file-download token"),
        "download_url": fields.String(description="URL that streams the item"),
        "expires_at": fields.Integer(description="Token expiry (Unix epoch)"),
    },
)

manifest_response = api.model(
    "ManifestResponse",
    {
        "group_id": fields.Integer(description="Group id"),
        "name": fields.String(description="Group name"),
        "type": fields.String(description="Group type"),
        "declared_total_size": fields.Integer(description="Size declared at creation"),
        "declared_item_count": fields.Integer(description="Item count declared at creation"),
        "actual_total_size": fields.Integer(description="Sum of committed item sizes"),
        "actual_item_count": fields.Integer(description="Number of committed items"),
        "items": fields.List(fields.Nested(manifest_item), description="Items sorted by name"),
    },
)

sweep_response = api.model(
    "SweepResponse",
    {
        "deletedFiles": fields.Integer(description="Expired files removed"),
        "deletedGroups": fields.Integer(description="Expired groups removed"),
        "reapedUploads": fields.Integer(description="Abandoned upload sessions removed"),
        "failures": fields.Integer(description="Candidates that could not be removed"),
    },
)

error_response = api.model(
    "ErrorResponse",
    {
        "error": fields.String(description="Error category"),
        "title": fields.String(description="Short user-facing title"),
        "message": fields.String(description="User-facing message"),
        "action": fields.String(description="Suggested next step"),
        "details": fields.Raw(description="Additional error details", allow_null=True),
    },
)
