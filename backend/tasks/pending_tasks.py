"""
Periodic maintenance of the pending-review queue.
"""
import logging

from celery_app import celery_app
from app.database import SessionLocal
from app.services.pending_review import delete_expired_pending

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.pending_tasks.cleanup_expired_pending")
def cleanup_expired_pending() -> dict:
    """Delete pending subscriptions nobody reviewed before they expired."""
    db = SessionLocal()
    try:
        return {"deleted_count": delete_expired_pending(db)}
    except Exception:
        db.rollback()
        logger.exception("[PENDING] Cleanup of expired pending subscriptions failed")
        raise
    finally:
        db.close()
