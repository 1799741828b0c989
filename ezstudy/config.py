import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

# --- DEFAULTS ---
DEFAULT_CORS_ORIGINS = [f"http://localhost:{port}" for port in range(5173, 5182)]
GROQ_MODEL_NAME = "llama-3.3-70b-versatile"
TOGETHER_MODEL_NAME = "meta-llama/Llama-3.3-70B-Instruct-Turbo-Free"
GEMINI_MODEL_NAME = "gemini-2.0-flash"

# Image upload configuration
ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_optional(name: str, *fallbacks: str) -> Optional[str]:
    """First non-empty value among `name` and `fallbacks`, else None."""
    for key in (name, *fallbacks):
        value = os.getenv(key)
        if value and value.strip():
            return value.strip()
    return None


class Settings(BaseModel):
    """Runtime configuration for the EzStudy backend."""

    port: int = 3001
    log_level: str = "INFO"
    cors_origins: List[str] = DEFAULT_CORS_ORIGINS

    groq_api_key: Optional[str] = None
    groq_model: str = GROQ_MODEL_NAME
    together_api_key: Optional[str] = None
    together_model: str = TOGETHER_MODEL_NAME
    gemini_api_key: Optional[str] = None
    gemini_model: str = GEMINI_MODEL_NAME

    primary_provider: str = "gemini"
    secondary_provider: str = "groq"
    provider_timeout_seconds: float = 180.0
    max_tokens: int = 2048

    file_char_budget: int = 3000
    session_ttl_seconds: float = 6 * 60 * 60
    session_max_turns: Optional[int] = None

    upload_dir: str = "./uploads"
    image_store: str = "local"
    s3_endpoint: Optional[str] = None
    s3_bucket: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    s3_public_url: Optional[str] = None

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    contact_recipient: Optional[str] = None

    def api_key_for(self, provider: str) -> Optional[str]:
        """Credential configured for a provider name, or None."""
        return {
            "groq": self.groq_api_key,
            "together": self.together_api_key,
            "gemini": self.gemini_api_key,
        }.get(provider)

    @classmethod
    def from_env(cls) -> "Settings":
        max_turns = os.getenv("SESSION_MAX_TURNS")
        return cls(
            port=int(os.getenv("PORT", "3001")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            cors_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
            groq_api_key=_env_optional("GROQ_API_KEY"),
            groq_model=os.getenv("GROQ_MODEL", GROQ_MODEL_NAME),
            together_api_key=_env_optional("TOGETHER_API_KEY"),
            together_model=os.getenv("TOGETHER_MODEL", TOGETHER_MODEL_NAME),
            gemini_api_key=_env_optional("GEMINI_API_KEY", "GOOGLE_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", GEMINI_MODEL_NAME),
            primary_provider=os.getenv("PRIMARY_PROVIDER", "gemini").lower(),
            secondary_provider=os.getenv("SECONDARY_PROVIDER", "groq").lower(),
            provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "180")),
            max_tokens=int(os.getenv("MAX_TOKENS", "2048")),
            file_char_budget=int(os.getenv("FILE_CHAR_BUDGET", "3000")),
            session_ttl_seconds=float(os.getenv("SESSION_TTL_SECONDS", str(6 * 60 * 60))),
            session_max_turns=int(max_turns) if max_turns else None,
            upload_dir=os.getenv("UPLOAD_DIR", "./uploads"),
            image_store=os.getenv("IMAGE_STORE", "local").lower(),
            s3_endpoint=_env_optional("S3_ENDPOINT"),
            s3_bucket=_env_optional("S3_BUCKET"),
            s3_access_key=_env_optional("S3_ACCESS_KEY"),
            s3_secret_key=_env_optional("S3_SECRET_KEY"),
            s3_public_url=_env_optional("S3_PUBLIC_URL"),
            smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=_env_optional("SMTP_USER", "GMAIL_USER"),
            smtp_password=_env_optional("SMTP_PASSWORD", "GMAIL_PASS"),
            contact_recipient=_env_optional("CONTACT_RECIPIENT"),
        )


@lru_cache()
def get_settings() -> Settings:
    """Return a cached `Settings` instance built from the environment."""
    return Settings.from_env()
