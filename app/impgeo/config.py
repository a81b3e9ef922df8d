import os
from dataclasses import dataclass
from urllib.parse import quote_plus


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    db_pool_size: int
    db_max_overflow: int
    db_pool_timeout: int
    db_connect_timeout: int

    jwt_secret: str
    jwt_expires_hours: int
    cors_origins: str
    frontend_url: str

    password_reset_ttl_minutes: int
    sendgrid_api_key: str
    sendgrid_from_email: str
    sendgrid_from_name: str
    sendgrid_template_id_reset: str

    storage_backend: str
    storage_local_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    activity_log_max_rows: int
    import_max_bytes: int


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


def normalize_database_url(url: str) -> str:
    url = url.strip()
    # Heroku-style URLs; SQLAlchemy 2.x only knows "postgresql".
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def _database_url() -> str:
    url = _getenv("DATABASE_URL")
    if url:
        return normalize_database_url(url)
    host = _getenv("DB_HOST")
    if host:
        user = quote_plus(_getenv("DB_USER", "postgres"))
        password = quote_plus(_getenv("DB_PASSWORD"))
        port = _getenv("DB_PORT", "5432")
        name = _getenv("DB_NAME", "impgeo")
        return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}"
    return "sqlite:///impgeo.db"


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    return Settings(
        secret_key=secret_key,
        env=_getenv("ENV", "development"),
        database_url=_database_url(),
        db_pool_size=_getenv_int("DB_POOL_SIZE", 20),
        db_max_overflow=_getenv_int("DB_MAX_OVERFLOW", 0),
        db_pool_timeout=_getenv_int("DB_POOL_TIMEOUT", 30),
        db_connect_timeout=_getenv_int("DB_CONNECT_TIMEOUT", 2),
        jwt_secret=_getenv("JWT_SECRET", secret_key),
        jwt_expires_hours=_getenv_int("JWT_EXPIRES_HOURS", 24),
        cors_origins=_getenv("CORS_ORIGINS", "*"),
        frontend_url=_getenv("FRONTEND_URL", "http://localhost:5173"),
        password_reset_ttl_minutes=_getenv_int("PASSWORD_RESET_TTL_MINUTES", 60),
        sendgrid_api_key=_getenv("SENDGRID_API_KEY", ""),
        sendgrid_from_email=_getenv("SENDGRID_FROM_EMAIL", ""),
        sendgrid_from_name=_getenv("SENDGRID_FROM_NAME", "IMPGEO"),
        sendgrid_template_id_reset=_getenv("SENDGRID_TEMPLATE_ID_RESET", ""),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_local_root=_getenv("STORAGE_LOCAL_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        activity_log_max_rows=_getenv_int("ACTIVITY_LOG_MAX_ROWS", 100000),
        import_max_bytes=_getenv_int("IMPORT_MAX_BYTES", 10 * 1024 * 1024),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "DB_POOL_SIZE": s.db_pool_size,
        "DB_MAX_OVERFLOW": s.db_max_overflow,
        "DB_POOL_TIMEOUT": s.db_pool_timeout,
        "DB_CONNECT_TIMEOUT": s.db_connect_timeout,
        "JWT_SECRET": s.jwt_secret,
        "JWT_EXPIRES_HOURS": s.jwt_expires_hours,
        "CORS_ORIGINS": s.cors_origins,
        "FRONTEND_URL": s.frontend_url,
        # reset tokens live between 5 minutes and one day
        "PASSWORD_RESET_TTL_MINUTES": min(max(s.password_reset_ttl_minutes, 5), 1440),
        "SENDGRID_API_KEY": s.sendgrid_api_key,
        "SENDGRID_FROM_EMAIL": s.sendgrid_from_email,
        "SENDGRID_FROM_NAME": s.sendgrid_from_name,
        "SENDGRID_TEMPLATE_ID_RESET": s.sendgrid_template_id_reset,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_LOCAL_ROOT": s.storage_local_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "ACTIVITY_LOG_MAX_ROWS": s.activity_log_max_rows,
        "IMPORT_MAX_BYTES": s.import_max_bytes,
        # spreadsheets (10MB) and avatars (5MB) are checked per route
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }
