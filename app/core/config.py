from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

from app.utils.env_helper import env_bool, env_list, env_none_or_str


# TODO: update origins for prod
DEFAULT_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:8080",
)


@dataclass(frozen=True)
class Settings:
    """Read-only process configuration, built once at startup and injected."""

    supabase_url: str
    supabase_key: str
    jwt_secret: Optional[str] = None
    cors_origins: Tuple[str, ...] = DEFAULT_ORIGINS
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def jwt_issuer(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/auth/v1"


def load_settings() -> Settings:
    load_dotenv()

    supabase_url = env_none_or_str("PUBLIC_SUPABASE_URL")
    supabase_key = env_none_or_str("SECRET_API_KEY")

    if not supabase_url or not supabase_key:
        raise RuntimeError("Missing PUBLIC_SUPABASE_URL/SECRET_API_KEY")

    return Settings(
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        jwt_secret=env_none_or_str("SUPABASE_JWT_SECRET"),
        cors_origins=env_list("CORS_ORIGINS", DEFAULT_ORIGINS),
        log_level=env_none_or_str("LOG_LEVEL", "INFO").upper(),
        log_json=env_bool("LOG_JSON", default=False),
    )
