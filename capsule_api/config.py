import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv

from .admission import MediaKind, MediaLimits

load_dotenv()

MB = 1024 * 1024


def _int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


@dataclass(frozen=True)
class Settings:
    secret_key: str = "change-me"
    database_url: str = "sqlite:///./timecapsule.db"
    media_root: Path = Path("./media")
    media_base_url: str = "/media"
    max_images: int = 5
    max_videos: int = 2
    max_audio: int = 3
    max_media: int = 10
    max_bytes: Dict[str, int] = field(default_factory=lambda: {
        MediaKind.IMAGE.value: 10 * MB,
        MediaKind.VIDEO.value: 100 * MB,
        MediaKind.AUDIO.value: 20 * MB,
    })
    append_retries: int = 3
    celery_broker_url: str = "redis://localhost:6379/0"
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            secret_key=os.environ.get("SECRET_KEY", "change-me"),
            database_url=os.environ.get("DATABASE_URL", "sqlite:///./timecapsule.db"),
            media_root=Path(os.environ.get("MEDIA_ROOT", "./media")),
            media_base_url=os.environ.get("MEDIA_BASE_URL", "/media"),
            max_images=_int("CAPSULE_MAX_IMAGES", 5),
            max_videos=_int("CAPSULE_MAX_VIDEOS", 2),
            max_audio=_int("CAPSULE_MAX_AUDIO", 3),
            max_media=_int("CAPSULE_MAX_MEDIA", 10),
            max_bytes={
                MediaKind.IMAGE.value: _int("MAX_IMAGE_BYTES", 10 * MB),
                MediaKind.VIDEO.value: _int("MAX_VIDEO_BYTES", 100 * MB),
                MediaKind.AUDIO.value: _int("MAX_AUDIO_BYTES", 20 * MB),
            },
            append_retries=_int("APPEND_RETRIES", 3),
            celery_broker_url=os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0"),
            host=os.environ.get("HOST", "127.0.0.1"),
            port=_int("PORT", 8000),
        )

    def media_limits(self) -> MediaLimits:
        return MediaLimits(
            per_kind_max={
                MediaKind.IMAGE: self.max_images,
                MediaKind.VIDEO: self.max_videos,
                MediaKind.AUDIO: self.max_audio,
            },
            total_max=self.max_media,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
