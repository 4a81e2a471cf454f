import sys
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # JWT_SECRET must be set via environment variable - no default
    jwt_secret: str = ""
    # Database path - can be overridden via DATABASE_PATH env var
    database_path: str = "l2r.db"
    # ElevenLabs key (optional, voice routes answer 503 without it)
    elevenlabs_api_key: str = ""
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    # Seconds before a vendor call is abandoned
    elevenlabs_timeout: float = 30.0
    # Environment: "dev" (default) or "prod"
    env: str = "dev"
    # CORS origins (comma-separated)
    cors_origins: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


def _load_settings() -> Settings:
    """Load settings and validate critical security requirements."""
    s = Settings()

    # JWT_SECRET is required - no hardcoded development fallback
    if not s.jwt_secret:
        print("ERROR: JWT_SECRET environment variable is required but not set.", file=sys.stderr)
        print("Set JWT_SECRET to a secure random string (at least 32 characters).", file=sys.stderr)
        sys.exit(1)

    if len(s.jwt_secret) < 32:
        print("ERROR: JWT_SECRET must be at least 32 characters.", file=sys.stderr)
        sys.exit(1)

    return s


settings = _load_settings()
