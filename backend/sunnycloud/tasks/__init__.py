"""
Celery Tasks

This module contains the Celery tasks for SunnyCloud maintenance.
"""

from .cleanup_task import sweep_expired_resources

__all__ = ['sweep_expired_resources']
