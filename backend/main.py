"""
main.py

Flask backend for SunnyCloud file sharing.

Dependencies:
  - Python packages: Flask, flask-restx, flask-cors, redis, celery,
    google-cloud-storage (only for STORAGE_BACKEND=gcs)
  - Infrastructure: Redis server

Notes:
  - API v1 endpoints available at /api/v1/ with Swagger docs at /api/v1/docs
  - The expiration sweep runs in Celery beat; start a worker with
    `celery -A celery_app.celery_app worker -B -Q default,cleanup_queue`
"""

import os

from app_factory import create_app

app = create_app()

if __name__ == "__main__":
    host = os.getenv("FLASK_HOST", "0.0.0.0")
    port = int(os.getenv("FLASK_PORT", 8000))
    debug = os.getenv("FLASK_DEBUG", "false").lower() == "true"

    app.run(host=host, port=port, debug=debug)
