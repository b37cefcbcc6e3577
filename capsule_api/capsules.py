"""Capsule operations: create, read and append media."""

import logging
import uuid
from datetime import datetime
from typing import List, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .admission import MediaKind, MediaLimits, admit, ensure_admitted
from .auth import ensure_owner
from .errors import BadInput, NotFound, ServerError
from .models import Capsule, User
from .schemas import CapsuleCreate
from .storage import IncomingFile, LocalStorage, StoredFile
from .unlock import Reconciliation, reconcile

logger = logging.getLogger(__name__)


def _media_items(kind: MediaKind, stored: Sequence[StoredFile]) -> List[dict]:
    return [{"kind": MediaKind(kind).value, "url": s.url, "storage_id": s.storage_id} for s in stored]


def create_capsule(
    db: Session,
    user: User,
    data: CapsuleCreate,
    images: Sequence[IncomingFile],
    now: datetime,
    limits: MediaLimits,
    storage: LocalStorage,
) -> Capsule:
    """Create a locked capsule, optionally seeded with images."""
    if data.unlock_date <= now:
        raise BadInput("unlockDate must be in the future")

    stored = []
    if images:
        ensure_admitted([], images, MediaKind.IMAGE, limits)
        stored = storage.save(MediaKind.IMAGE, images)

    capsule = Capsule(
        user_id=user.id,
        title=data.title,
        message=data.message,
        unlock_date=data.unlock_date,
        is_unlocked=False,
        media=_media_items(MediaKind.IMAGE, stored),
    )
    db.add(capsule)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        storage.delete_all(s.storage_id for s in stored)
        logger.error(f"Error creating capsule: {e}")
        raise ServerError("Could not create capsule") from e
    db.refresh(capsule)

    logger.info(f"Capsule {capsule.id} created by {user.username} with {len(stored)} image(s)")
    return capsule


def list_capsules(db: Session, user: User, now: datetime) -> List[Tuple[Capsule, Reconciliation]]:
    """The user's capsules ordered by unlock date, each with its reconciled lock state."""
    capsules = db.execute(
        select(Capsule).where(Capsule.user_id == user.id).order_by(Capsule.unlock_date.asc())
    ).scalars().all()
    return [(capsule, reconcile(db, capsule, now)) for capsule in capsules]


def get_capsule(db: Session, user: User, capsule_id: str) -> Capsule:
    """Load a capsule owned by the caller."""
    try:
        key = uuid.UUID(capsule_id).hex
    except ValueError:
        raise BadInput("Invalid capsule id")

    capsule = db.get(Capsule, key)
    if capsule is None:
        raise NotFound("Capsule not found")
    ensure_owner(capsule, user)
    return capsule


def append_media(
    db: Session,
    capsule: Capsule,
    kind: MediaKind,
    files: Sequence[IncomingFile],
    limits: MediaLimits,
    storage: LocalStorage,
    retries: int = 3,
) -> List[dict]:
    """Append a batch of uploads to a capsule and return the new media items.

    The write is conditioned on the capsule's version. When another request
    changed the capsule in the meantime, the batch is admitted again against
    the fresh media list before retrying, so concurrent appends cannot
    overshoot the limits.
    """
    kind = MediaKind(kind)
    ensure_admitted(capsule.media, files, kind, limits)
    stored = storage.save(kind, files)
    added = _media_items(kind, stored)

    for attempt in range(retries + 1):
        capsule.media = list(capsule.media) + added
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            db.refresh(capsule)
            logger.info(f"Capsule {capsule.id} changed during {kind.value} append (attempt {attempt + 1})")
            rejection = admit(capsule.media, files, kind, limits)
            if rejection is not None:
                storage.delete_all(s.storage_id for s in stored)
                logger.info(f"Rejected {len(files)} {kind.value} file(s): {rejection.reason.value}")
                raise rejection.to_error()
            continue
        except SQLAlchemyError as e:
            db.rollback()
            storage.delete_all(s.storage_id for s in stored)
            logger.error(f"Error appending {kind.value} to capsule {capsule.id}: {e}")
            raise ServerError("Could not update capsule") from e

        logger.info(f"Added {len(added)} {kind.value} file(s) to capsule {capsule.id}")
        return added

    storage.delete_all(s.storage_id for s in stored)
    logger.error(f"Giving up on {kind.value} append to capsule {capsule.id} after {retries + 1} conflicts")
    raise ServerError("Capsule is being modified concurrently, try again")
