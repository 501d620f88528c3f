import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    s3_endpoint: str
    s3_public_url: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str
    s3_use_path_style: bool

    upload_url_expires_seconds: int
    download_url_expires_seconds: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from None


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    endpoint = _getenv("S3_ENDPOINT", "")
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///policysignoff.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        s3_endpoint=endpoint,
        # Browsers reach the object store on a different host than the API does.
        s3_public_url=_getenv("S3_PUBLIC_URL", endpoint),
        s3_region=_getenv("S3_REGION", "us-east-1"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        s3_use_path_style=_getenv_bool("S3_USE_PATH_STYLE", True),
        upload_url_expires_seconds=_getenv_int("UPLOAD_URL_EXPIRES_SECONDS", 15 * 60),
        download_url_expires_seconds=_getenv_int("DOWNLOAD_URL_EXPIRES_SECONDS", 60 * 60),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_PUBLIC_URL": s.s3_public_url,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "S3_USE_PATH_STYLE": s.s3_use_path_style,
        "UPLOAD_URL_EXPIRES_SECONDS": s.upload_url_expires_seconds,
        "DOWNLOAD_URL_EXPIRES_SECONDS": s.download_url_expires_seconds,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # JSON bodies only; files go straight to the object store
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
