import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    deploy_env: str
    database_url: str

    encryption_key: str
    openai_base_url: str
    ai_model: str
    ai_timeout_seconds: int

    cors_allowed_origins: tuple[str, ...]

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str
    storage_local_root: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    env = _getenv("ENV", "development")
    origins = tuple(o.strip() for o in _getenv("CORS_ALLOWED_ORIGINS").split(",") if o.strip())
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=env,
        deploy_env=_getenv("DEPLOY_ENV", env),
        database_url=_getenv("DATABASE_URL", "sqlite:///flock.db"),
        encryption_key=_getenv("APP_ENCRYPTION_KEY", ""),
        openai_base_url=_getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        ai_model=_getenv("AI_MODEL", "gpt-4o-mini"),
        ai_timeout_seconds=_getenv_int("AI_TIMEOUT_SECONDS", 60),
        cors_allowed_origins=origins,
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        storage_local_root=_getenv("STORAGE_LOCAL_ROOT", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DEPLOY_ENV": s.deploy_env,
        "DATABASE_URL": s.database_url,
        "APP_ENCRYPTION_KEY": s.encryption_key,
        "OPENAI_BASE_URL": s.openai_base_url,
        "AI_MODEL": s.ai_model,
        "AI_TIMEOUT_SECONDS": s.ai_timeout_seconds,
        "CORS_ALLOWED_ORIGINS": s.cors_allowed_origins,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "STORAGE_LOCAL_ROOT": s.storage_local_root,
        # session cookie
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        # manuscripts and bulk song imports stay well under this
        "MAX_CONTENT_LENGTH": 5 * 1024 * 1024,
    }
