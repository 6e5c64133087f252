"""
Celery tasks for key-value store maintenance.

Rebuilds the pending indices so that submissions dropped from an index
by an interrupted review become visible to admins again, and republishes
approved submissions whose payload never reached the approved index.
"""

import logging

from common.config import get_settings
from common.db import create_engine_from_url, create_session_factory, create_tables
from common.locks import create_keyed_lock
from modules.kv_store import KeyValueStore
from modules.submission_service import SubmissionService
from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="worker.tasks.reconcile_pending_indices")
def reconcile_pending_indices() -> dict[str, int]:
    """
    Repair every pending and approved index from the stored records.

    Returns:
        dict: Pending count per content type
    """
    settings = get_settings()
    if settings.lock_backend == "local":
        logger.warning(
            "LOCK_BACKEND=local does not serialize index updates with "
            "the API process; use LOCK_BACKEND=redis"
        )

    engine = create_engine_from_url(settings.database_url)
    create_tables(engine)
    locks, redis_client = create_keyed_lock(
        settings.lock_backend,
        settings.redis_url,
        timeout=settings.lock_timeout_seconds
    )

    try:
        # Reconciliation needs no identity provider
        service = SubmissionService(
            KeyValueStore(create_session_factory(engine)),
            locks
        )
        counts = service.reconcile_pending_indices()
        logger.info(f"Reconciled pending indices: {counts}")
        return counts
    except Exception as e:
        logger.error(f"Pending index reconciliation failed: {e}")
        raise
    finally:
        engine.dispose()
        if redis_client is not None:
            redis_client.close()
