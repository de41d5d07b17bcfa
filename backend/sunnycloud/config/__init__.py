"""Configuration for logging, storage, Redis and Celery."""
