"""Lock state of capsules.

A capsule is a two-state machine, locked -> unlocked, with a single
transition taken once the current time reaches ``unlock_date``. The clock
alone decides the visible state. The persisted ``is_unlocked`` flag caches
that transition, is written only on the edge and is never reset.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .errors import ServerError
from .models import Capsule

logger = logging.getLogger(__name__)

MAX_TRANSITION_ATTEMPTS = 3


class LockState(str, enum.Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


@dataclass(frozen=True)
class Reconciliation:
    state: LockState
    remaining: Optional[str] = None
    transitioned: bool = False

    @property
    def is_locked(self) -> bool:
        return self.state is LockState.LOCKED


def remaining_time(unlock_date: datetime, now: datetime) -> Optional[str]:
    """Human readable time left until unlock, e.g. "3 day(s)".

    Uses fixed divisors (a month is 30 days) and reports only the largest
    non-zero unit. Returns None once the unlock date has been reached.
    """
    diff_ms = (unlock_date - now) / timedelta(milliseconds=1)
    if diff_ms <= 0:
        return None

    seconds = int(diff_ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    months = days // 30

    if months > 0:
        return f"{months} month(s)"
    if days > 0:
        return f"{days} day(s)"
    if hours > 0:
        return f"{hours} hour(s)"
    if minutes > 0:
        return f"{minutes} minute(s)"
    return f"{seconds} second(s)"


def lock_state(capsule: Capsule, now: datetime) -> LockState:
    if now < capsule.unlock_date:
        return LockState.LOCKED
    return LockState.UNLOCKED


def reconcile(db: Session, capsule: Capsule, now: datetime) -> Reconciliation:
    """Compute the visible lock state and persist the locked -> unlocked edge.

    Only the transition writes. A failed write raises ServerError so that a
    lock state is never reported without having been stored.
    """
    if lock_state(capsule, now) is LockState.LOCKED:
        return Reconciliation(LockState.LOCKED, remaining_time(capsule.unlock_date, now))
    if capsule.is_unlocked:
        return Reconciliation(LockState.UNLOCKED)

    for _ in range(MAX_TRANSITION_ATTEMPTS):
        capsule.is_unlocked = True
        try:
            db.commit()
        except StaleDataError:
            # Someone else wrote the capsule since it was loaded.
            db.rollback()
            db.refresh(capsule)
            if capsule.is_unlocked:
                return Reconciliation(LockState.UNLOCKED)
            logger.info(f"Capsule {capsule.id} changed while unlocking, retrying")
            continue
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to persist unlock of capsule {capsule.id}: {e}")
            raise ServerError("Could not update capsule state") from e
        logger.info(f"Capsule {capsule.id} unlocked")
        return Reconciliation(LockState.UNLOCKED, transitioned=True)

    raise ServerError("Could not update capsule state")


def sweep_due_capsules(db: Session, now: datetime) -> List[Capsule]:
    """Unlock due capsules and return the ones whose opening has not been announced.

    A capsule already flipped by a read is still returned until it is marked
    notified. A capsule whose unlock cannot be stored is skipped and picked up
    again by the next sweep.
    """
    due = db.execute(
        select(Capsule)
        .where(Capsule.notified_at.is_(None), Capsule.unlock_date <= now)
        .order_by(Capsule.unlock_date)
    ).scalars().all()

    pending = []
    for capsule in due:
        capsule_id = capsule.id
        try:
            reconcile(db, capsule, now)
        except ServerError as e:
            logger.warning(f"Skipping capsule {capsule_id}: {e.message}")
            continue
        pending.append(capsule)
    logger.info(f"Sweep found {len(due)} due capsule(s), {len(pending)} awaiting notification")
    return pending


def mark_notified(db: Session, capsule_id: str, now: datetime) -> bool:
    """Record that the open notification was queued. False if it already was."""
    result = db.execute(
        update(Capsule)
        .where(Capsule.id == capsule_id, Capsule.notified_at.is_(None))
        .values(notified_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount > 0
