"""Capsule API routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from . import capsules as ops
from .admission import MediaKind, ensure_admitted
from .auth import get_current_user
from .database import get_db
from .errors import BadInput
from .models import User
from .responses import describe_errors, success_response
from .schemas import CapsuleCreate, CapsuleOut, CapsuleSummary, LockedCapsule, MediaItemOut, UnlockedCapsule
from .storage import read_uploads
from .unlock import reconcile

LOCKED_NOTICE = "This memory is waiting for the right moment…"


def create_router() -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health():
        return {"status": "ok", "service": "timecapsule-api"}

    def _append(request: Request, capsule_id: str, kind: MediaKind, files, db: Session, user: User):
        settings = request.app.state.settings
        limits = settings.media_limits()
        capsule = ops.get_capsule(db, user, capsule_id)
        files = files or []
        # Count and content type are known before any bytes are read.
        ensure_admitted(capsule.media, files, kind, limits)
        incoming = read_uploads(files, settings.max_bytes[kind.value])
        added = ops.append_media(
            db,
            capsule,
            kind,
            incoming,
            limits,
            request.app.state.storage,
            retries=settings.append_retries,
        )
        return success_response(
            {"added": [MediaItemOut.model_validate(item).dump() for item in added]},
            status_code=201,
            meta={"mediaCount": len(capsule.media)},
        )

    @router.post("/capsules")
    def create_capsule(
        request: Request,
        title: Optional[str] = Form(None),
        message: Optional[str] = Form(None),
        unlock_date: Optional[str] = Form(None, alias="unlockDate"),
        media: Optional[List[UploadFile]] = File(None),
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
    ):
        """
        Create a new time capsule.
        - **title**, **message**: content revealed once the capsule unlocks.
        - **unlockDate**: ISO 8601 timestamp, must be in the future.
        - **media**: optional image files.
        """
        try:
            data = CapsuleCreate.model_validate(
                {"title": title, "message": message, "unlockDate": unlock_date}
            )
        except ValidationError as e:
            raise BadInput(describe_errors(e.errors()))

        settings = request.app.state.settings
        limits = settings.media_limits()
        media = media or []
        if media:
            ensure_admitted([], media, MediaKind.IMAGE, limits)
        images = read_uploads(media, settings.max_bytes[MediaKind.IMAGE.value])
        capsule = ops.create_capsule(
            db,
            user,
            data,
            images,
            request.app.state.clock(),
            limits,
            request.app.state.storage,
        )
        return success_response(CapsuleOut.model_validate(capsule).dump(), status_code=201)

    @router.get("/capsules")
    def list_capsules(
        request: Request,
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
    ):
        """List the caller's capsules, soonest unlock first. Locked capsules never expose their message or media."""
        entries = ops.list_capsules(db, user, request.app.state.clock())
        data = [
            CapsuleSummary(
                id=capsule.id,
                title=capsule.title,
                unlock_date=capsule.unlock_date,
                status=result.state.value,
                is_locked=result.is_locked,
            ).dump()
            for capsule, result in entries
        ]
        return success_response(data, meta={"count": len(data)})

    @router.get("/capsules/{capsule_id}")
    def get_capsule(
        request: Request,
        capsule_id: str,
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
    ):
        """
        Get a capsule by ID.
        Returns only the unlock date and remaining time while the capsule is locked.
        """
        capsule = ops.get_capsule(db, user, capsule_id)
        result = reconcile(db, capsule, request.app.state.clock())

        if result.is_locked:
            body = LockedCapsule(id=capsule.id, unlock_date=capsule.unlock_date, unlocks_in=result.remaining)
            return success_response(body.dump(), meta={"notice": LOCKED_NOTICE})

        body = UnlockedCapsule(
            id=capsule.id,
            title=capsule.title,
            message=capsule.message,
            unlock_date=capsule.unlock_date,
            media=capsule.media,
        )
        return success_response(body.dump())

    @router.post("/capsules/{capsule_id}/videos")
    def add_videos(
        request: Request,
        capsule_id: str,
        videos: Optional[List[UploadFile]] = File(None),
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
    ):
        """Attach video files to a capsule."""
        return _append(request, capsule_id, MediaKind.VIDEO, videos, db, user)

    @router.post("/capsules/{capsule_id}/audio")
    def add_audio(
        request: Request,
        capsule_id: str,
        audio: Optional[List[UploadFile]] = File(None),
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
    ):
        """Attach audio files to a capsule."""
        return _append(request, capsule_id, MediaKind.AUDIO, audio, db, user)

    return router
