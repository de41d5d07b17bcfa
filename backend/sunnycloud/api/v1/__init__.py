"""
API v1 - SunnyCloud REST API

This module contains the versioned API endpoints with OpenAPI/Swagger documentation.
"""

import os

from flask import Blueprint
from flask_restx import Api

# Get API version from environment
API_VERSION = os.getenv("API_VERSION", "v1")

# Create blueprint for API v1
api_v1_bp = Blueprint("api_v1", __name__, url_prefix=f"/api/{API_VERSION}")

# Initialize Flask-RESTX API with Swagger documentation
api = Api(
    api_v1_bp,
    version="1.0",
    title="SunnyCloud API",
    description="File upload and sharing with signed capability links",
    doc="/docs",  # Swagger UI will be available at /api/v1/docs
    contact="SunnyCloud Team",
    license="MIT",
    authorizations={
        "session": {"type": "apiKey", "in": "header", "name": "Authorization"},
        "admin": {"type": "apiKey", "in": "header", "name": "X-Admin-Key"},
    },
)

# Import namespaces after api is created to avoid circular imports
from .namespaces import (  # noqa: E402
    admin_ns,
    auth_ns,
    download_ns,
    files_ns,
    groups_ns,
    uploads_ns,
)

# Register namespaces
api.add_namespace(auth_ns, path="/auth")
api.add_namespace(files_ns, path="/files")
api.add_namespace(groups_ns, path="/groups")
api.add_namespace(uploads_ns, path="/uploads")
api.add_namespace(download_ns, path="/download")
api.add_namespace(admin_ns, path="/admin")
