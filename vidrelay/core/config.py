import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load environment variables from .env file
load_dotenv()


def _split_csv(raw: str) -> List[str]:
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    # API Settings
    API_PREFIX: str = os.getenv("API_PREFIX", "/api")
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"

    # Server Settings
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "5000"))

    # Download policy
    MAX_DOWNLOAD_BYTES: int = int(os.getenv("MAX_DOWNLOAD_BYTES", str(200 * 1024 * 1024)))  # 200 MiB
    ALLOWED_EXTENSIONS: str = os.getenv("ALLOWED_EXTENSIONS", ".mp4,.webm,.mkv,.mov,.flv")
    ALLOWED_SCHEMES: str = os.getenv("ALLOWED_SCHEMES", "http,https")

    # Upstream client
    STREAM_CHUNK_SIZE: int = int(os.getenv("STREAM_CHUNK_SIZE", str(64 * 1024)))
    PROBE_TIMEOUT_SECONDS: float = float(os.getenv("PROBE_TIMEOUT_SECONDS", "15"))
    STREAM_CONNECT_TIMEOUT_SECONDS: float = float(os.getenv("STREAM_CONNECT_TIMEOUT_SECONDS", "15"))
    STREAM_READ_TIMEOUT_SECONDS: float = float(os.getenv("STREAM_READ_TIMEOUT_SECONDS", "60"))
    # 0 disables the overall deadline; per-read timeout still applies
    STREAM_TOTAL_TIMEOUT_SECONDS: float = float(os.getenv("STREAM_TOTAL_TIMEOUT_SECONDS", "0"))
    UPSTREAM_USER_AGENT: str = os.getenv("UPSTREAM_USER_AGENT", "vidrelay/1.0")

    # Rate limiting
    RATE_LIMIT_WINDOW_SECONDS: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))
    RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))

    # Prebuilt UI served from "/" when set
    STATIC_DIR: Optional[str] = os.getenv("STATIC_DIR") or None

    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")
    SECURITY_HEADERS_ENABLED: bool = os.getenv("SECURITY_HEADERS_ENABLED", "True").lower() == "true"

    @property
    def allowed_extensions(self) -> List[str]:
        return [ext if ext.startswith(".") else f".{ext}" for ext in _split_csv(self.ALLOWED_EXTENSIONS)]

    @property
    def allowed_schemes(self) -> List[str]:
        return _split_csv(self.ALLOWED_SCHEMES)

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

# Create settings instance
settings = Settings()
