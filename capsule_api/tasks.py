import logging
from datetime import datetime, timezone

from .celery_app import app
from .unlock import mark_notified, sweep_due_capsules

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)


@app.task
def send_open_notification(capsule_id: str, username: str):
    message = f"Notification: Capsule {capsule_id} is now open for {username} at {datetime.now(timezone.utc)}"
    logger.info(message)
    return message


def run_sweep(session_factory, now=None):
    """Unlock due capsules and queue one open notification for each of them.

    A capsule is marked notified only after its notification has been queued,
    so a failure part way leaves the rest for the next sweep.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    db = session_factory()
    notified = []
    try:
        pending = [(capsule.id, capsule.user.username) for capsule in sweep_due_capsules(db, now)]
        for capsule_id, username in pending:
            send_open_notification.delay(capsule_id, username)
            if mark_notified(db, capsule_id, now):
                notified.append(capsule_id)
    finally:
        db.close()
    return notified


@app.task
def reconcile_due_capsules():
    from .database import get_session_factory

    logger.info("Starting periodic check of capsules")
    try:
        return run_sweep(get_session_factory())
    except Exception as e:
        logger.error(f"Error in reconcile_due_capsules: {e}")
        raise
