import os
from typing import List, Optional


def _infer_backend(database_url: Optional[str]) -> str:
    if not database_url:
        return "file"
    if database_url.startswith("mongodb"):
        return "mongo"
    return "sql"


class Settings:
    """Runtime settings, read from the environment unless given explicitly."""

    def __init__(
        self,
        store_backend: Optional[str] = None,
        database_url: Optional[str] = None,
        database_name: Optional[str] = None,
        data_dir: Optional[str] = None,
        api_prefix: Optional[str] = None,
        jwt_secret: Optional[str] = None,
        jwt_expire_minutes: Optional[int] = None,
        admin_email_marker: Optional[str] = None,
        admin_emails: Optional[List[str]] = None,
        log_level: Optional[str] = None,
    ):
        self.database_url = database_url if database_url is not None else os.getenv("DATABASE_URL")
        self.database_name = database_name or os.getenv("DATABASE_NAME", "jewel_palace")
        self.store_backend = (
            store_backend or os.getenv("STORE_BACKEND") or _infer_backend(self.database_url)
        ).lower()
        self.data_dir = data_dir or os.getenv("DATA_DIR", "data")
        prefix = api_prefix if api_prefix is not None else os.getenv("API_PREFIX", "/make-server-ff9d2bf9")
        self.api_prefix = prefix.rstrip("/")
        self.jwt_secret = jwt_secret or os.getenv("JWT_SECRET", "devsecret")
        self.jwt_expire_minutes = (
            jwt_expire_minutes if jwt_expire_minutes is not None else int(os.getenv("JWT_EXPIRE_MINUTES", 60 * 24 * 7))
        )
        self.admin_email_marker = (
            admin_email_marker if admin_email_marker is not None else os.getenv("ADMIN_EMAIL_MARKER", "admin")
        )
        if admin_emails is None:
            admin_emails = [e for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()]
        self.admin_emails = [e.strip().lower() for e in admin_emails]
        self.log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()

    def __repr__(self):
        return f"Settings(store_backend={self.store_backend!r}, api_prefix={self.api_prefix!r})"
