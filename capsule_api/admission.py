"""Quota and content-type admission for media attached to a capsule.

The guard only looks at counts and declared content types. It never reads
file content.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence

from .errors import BadInput, LimitExceeded

logger = logging.getLogger(__name__)


class MediaKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class RejectReason(str, enum.Enum):
    EMPTY_BATCH = "EMPTY_BATCH"
    KIND_LIMIT_EXCEEDED = "KIND_LIMIT_EXCEEDED"
    TOTAL_LIMIT_EXCEEDED = "TOTAL_LIMIT_EXCEEDED"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"


@dataclass(frozen=True)
class MediaLimits:
    """Per-kind and aggregate caps. A kind missing from per_kind_max is unlimited."""

    per_kind_max: Dict[MediaKind, int] = field(default_factory=dict)
    total_max: Optional[int] = None


@dataclass(frozen=True)
class Rejection:
    reason: RejectReason
    message: str

    def to_error(self):
        if self.reason in (RejectReason.KIND_LIMIT_EXCEEDED, RejectReason.TOTAL_LIMIT_EXCEEDED):
            return LimitExceeded(self.message)
        return BadInput(self.message)


def count_kind(media: Sequence[Mapping], kind: MediaKind) -> int:
    return sum(1 for item in media if item["kind"] == kind.value)


def admit(existing: Sequence[Mapping], incoming: Sequence, kind: MediaKind, limits: MediaLimits) -> Optional[Rejection]:
    """Decide whether a batch of uploads may be appended to a capsule.

    - **existing**: media items already on the capsule (mappings with a ``kind`` key).
    - **incoming**: uploaded files, each exposing ``content_type``.

    Returns None when the batch is accepted, otherwise the first failing
    check in this order: empty batch, per-kind limit, total limit, content type.
    """
    kind = MediaKind(kind)

    if not incoming:
        return Rejection(RejectReason.EMPTY_BATCH, f"No {kind.value} files uploaded")

    kind_max = limits.per_kind_max.get(kind)
    if kind_max is not None and count_kind(existing, kind) + len(incoming) > kind_max:
        return Rejection(
            RejectReason.KIND_LIMIT_EXCEEDED,
            f"A capsule can hold at most {kind_max} {kind.value} file(s)",
        )

    if limits.total_max is not None and len(existing) + len(incoming) > limits.total_max:
        return Rejection(
            RejectReason.TOTAL_LIMIT_EXCEEDED,
            f"A capsule can hold at most {limits.total_max} media file(s)",
        )

    prefix = f"{kind.value}/"
    for upload in incoming:
        if not (upload.content_type or "").startswith(prefix):
            return Rejection(
                RejectReason.INVALID_FILE_TYPE,
                f"Expected {prefix}* content but got '{upload.content_type}'",
            )

    return None


def ensure_admitted(existing: Sequence[Mapping], incoming: Sequence, kind: MediaKind, limits: MediaLimits) -> None:
    """Raise the mapped BadInput/LimitExceeded error when the batch is rejected."""
    rejection = admit(existing, incoming, kind, limits)
    if rejection is not None:
        logger.info(f"Rejected {len(incoming)} {MediaKind(kind).value} file(s): {rejection.reason.value}")
        raise rejection.to_error()
