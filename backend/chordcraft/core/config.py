from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "chordcraft"
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # jobs/<id>/ holds job records, tmp/<id>/ is per-job scratch, uploads/ is streamed input
    DATA_DIR: str = "./data"
    FRONTEND_ORIGIN: str = "http://localhost:3000"
    JOB_RETENTION_SEC: int = 24 * 60 * 60

    MAX_UPLOAD_MB: int = 50
    ALLOWED_FORMATS: str = "mp3,wav,ogg,m4a,flac"

    # When disabled, jobs run on an in-process thread pool
    CELERY_ENABLED: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    WORKER_THREADS: int = 2

    RESULT_CACHE_ENABLED: bool = True
    RESULT_CACHE_TTL_SEC: int = 3600

    # Acquisition
    YOUTUBE_API_KEY: str | None = None
    METADATA_TIMEOUT_SEC: float = 10.0
    # Tried in order, never in parallel: yt-dlp|yt-dlp-android|yt-dlp-cli
    DOWNLOAD_STRATEGIES: str = "yt-dlp,yt-dlp-android,yt-dlp-cli"
    DOWNLOAD_TIMEOUT_SEC: float = 300.0
    DOWNLOAD_SOCKET_TIMEOUT_SEC: float = 15.0
    YTDLP_BINARY: str = "yt-dlp"
    YTDLP_COOKIES_FILE: str | None = None

    # Normalization (16-bit mono PCM)
    FFMPEG_BINARY: str = "ffmpeg"
    FFMPEG_TIMEOUT_SEC: float = 300.0
    SAMPLE_RATE: int = 44100
    SAMPLE_DURATION_SEC: float = 30.0
    SAMPLE_MAX_OFFSET_SEC: float = 30.0

    # Chromagram + template matching
    CHROMA_FRAME_SIZE: int = 4096
    CHROMA_HOP_LENGTH: int = 2048
    CHROMA_MIN_FREQ: float = 80.0
    CHROMA_MAX_FREQ: float = 1000.0
    # Hand-tuned; a new segment opens when similarity drops below the threshold
    SEGMENT_SIMILARITY_THRESHOLD: float = Field(default=0.7, ge=0.0, le=1.0)
    MIN_SEGMENT_FRAMES: int = Field(default=4, ge=1)
    CHORD_CONFIDENCE_THRESHOLD: float = Field(default=0.4, ge=0.0, le=1.0)

    # Only "standard" has a fingering table
    GUITAR_TUNING: str = "standard"

    @property
    def allowed_formats(self) -> tuple[str, ...]:
        return tuple(f.strip().lower().lstrip(".") for f in self.ALLOWED_FORMATS.split(",") if f.strip())

    @property
    def max_upload_bytes(self) -> int:
        return int(self.MAX_UPLOAD_MB) * 1024 * 1024

    @property
    def download_strategies(self) -> list[str]:
        return [s.strip() for s in self.DOWNLOAD_STRATEGIES.split(",") if s.strip()]

settings = Settings()
