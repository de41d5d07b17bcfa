"""
Cleanup Task

Celery beat task for the periodic expiration sweep.
Thin wrapper that delegates to the ExpirationSweeper application service.
"""

import logging

from celery_app import celery_app
from sunnycloud.config.celery_config import SWEEP_TASK_NAME

# Configure logging
logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name=SWEEP_TASK_NAME)
def sweep_expired_resources(self):
    """
    Periodic task that removes expired files and groups and reaps abandoned
    upload sessions.

    The sweeper is resolved from the DependencyContainer; the task never
    touches repositories directly. Per-candidate failures are absorbed and
    counted by the sweeper itself, so anything raised here is a failure of
    the whole run (for example the metadata store being unreachable).

    Returns:
        dict: Sweep report with deletedFiles, deletedGroups, reapedUploads
        and failures
    """
    logger.info(f"Starting sweep task {self.request.id}")

    from celery_app import flask_app
    from sunnycloud.application.expiration_sweeper import ExpirationSweeper

    sweeper = flask_app.container.resolve(ExpirationSweeper)
    try:
        report = sweeper.sweep()
    except Exception as e:
        logger.error(f"Sweep task failed: {e}", exc_info=True)
        raise

    if report.failures:
        logger.warning(f"Sweep finished with {report.failures} failed candidates")
    return report.to_dict()
