"""Tests for media admission rules."""

import pytest

from capsule_api.admission import MediaKind, MediaLimits, RejectReason, admit, ensure_admitted
from capsule_api.errors import BadInput, LimitExceeded
from capsule_api.storage import IncomingFile

from .conftest import video


def existing(*kinds):
    return [{"kind": k, "url": f"/media/{i}", "storage_id": str(i)} for i, k in enumerate(kinds)]


def audio(content_type="audio/mpeg"):
    return IncomingFile("voice.mp3", content_type, b"ID3")


class TestAdmit:
    def test_accepts_within_limits(self, limits):
        assert admit(existing("video"), [video()], MediaKind.VIDEO, limits) is None

    def test_accepts_up_to_kind_limit(self, limits):
        assert admit([], [video(), video()], MediaKind.VIDEO, limits) is None

    def test_empty_batch(self, limits):
        rejection = admit([], [], MediaKind.VIDEO, limits)
        assert rejection.reason is RejectReason.EMPTY_BATCH

    def test_empty_batch_wins_regardless_of_existing(self, limits):
        full = existing(*["image"] * 5, *["video"] * 2, *["audio"] * 3)
        rejection = admit(full, [], MediaKind.AUDIO, limits)
        assert rejection.reason is RejectReason.EMPTY_BATCH

    def test_kind_limit(self, limits):
        rejection = admit(existing("video"), [video(), video()], MediaKind.VIDEO, limits)
        assert rejection.reason is RejectReason.KIND_LIMIT_EXCEEDED

    def test_kind_limit_counts_only_that_kind(self, limits):
        media = existing("image", "image", "audio", "audio")
        assert admit(media, [video(), video()], MediaKind.VIDEO, limits) is None

    def test_total_limit(self):
        limits = MediaLimits(per_kind_max={MediaKind.AUDIO: 5}, total_max=4)
        rejection = admit(existing("image", "image", "video"), [audio(), audio()], MediaKind.AUDIO, limits)
        assert rejection.reason is RejectReason.TOTAL_LIMIT_EXCEEDED

    def test_invalid_file_type(self, limits):
        rejection = admit([], [audio(), audio("image/png")], MediaKind.AUDIO, limits)
        assert rejection.reason is RejectReason.INVALID_FILE_TYPE
        assert "image/png" in rejection.message

    def test_missing_content_type_is_invalid(self, limits):
        rejection = admit([], [video(content_type="")], MediaKind.VIDEO, limits)
        assert rejection.reason is RejectReason.INVALID_FILE_TYPE

    def test_unlimited_kind(self):
        limits = MediaLimits(per_kind_max={}, total_max=None)
        batch = [video() for _ in range(20)]
        assert admit(existing(*["video"] * 20), batch, MediaKind.VIDEO, limits) is None

    def test_accepts_plain_string_kind(self, limits):
        assert admit([], [video()], "video", limits) is None


class TestCheckOrder:
    def test_kind_limit_before_total_limit(self):
        limits = MediaLimits(per_kind_max={MediaKind.VIDEO: 1}, total_max=1)
        rejection = admit(existing("video"), [video()], MediaKind.VIDEO, limits)
        assert rejection.reason is RejectReason.KIND_LIMIT_EXCEEDED

    def test_quota_before_content_type(self, limits):
        batch = [video(content_type="image/png")] * 3
        rejection = admit([], batch, MediaKind.VIDEO, limits)
        assert rejection.reason is RejectReason.KIND_LIMIT_EXCEEDED

    def test_total_before_content_type(self):
        limits = MediaLimits(per_kind_max={MediaKind.AUDIO: 3}, total_max=2)
        rejection = admit(existing("image", "image"), [audio("text/plain")], MediaKind.AUDIO, limits)
        assert rejection.reason is RejectReason.TOTAL_LIMIT_EXCEEDED


class TestEnsureAdmitted:
    def test_quota_maps_to_limit_exceeded(self, limits):
        with pytest.raises(LimitExceeded):
            ensure_admitted(existing("video"), [video(), video()], MediaKind.VIDEO, limits)

    @pytest.mark.parametrize("batch", [[], [audio("image/png")]])
    def test_empty_and_wrong_type_map_to_bad_input(self, limits, batch):
        with pytest.raises(BadInput):
            ensure_admitted([], batch, MediaKind.AUDIO, limits)

    def test_passes_silently(self, limits):
        ensure_admitted([], [audio()], MediaKind.AUDIO, limits)
