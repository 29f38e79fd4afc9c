"""Application configuration."""

from pydantic_settings import BaseSettings
from typing import Optional
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App info
    app_name: str = "Kizu Recap"
    version: str = "0.1.0"
    debug: bool = False

    # Supabase (only the upload sink needs these)
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    recap_bucket: str = "videos"

    # FFmpeg binaries
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Recap defaults
    recap_max_photos: int = 50
    recap_photo_duration_ms: int = 3000
    recap_width: int = 1920
    recap_height: int = 1080
    recap_fps: int = 30
    recap_fade_in: float = 0.1
    recap_fade_out: float = 0.1
    recap_music_url: Optional[str] = "static/tet-music.mp3"

    # Encoding
    recap_video_bitrate: int = 5_000_000  # 5 Mbps regardless of resolution
    recap_audio_bitrate: str = "128k"
    recap_timeout_seconds: float = 300.0

    # Image fetching
    image_fetch_timeout: float = 30.0
    max_image_dimension: int = 2400  # Pre-shrink huge photos before compositing

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
