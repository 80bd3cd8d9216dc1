from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    app_name: str = "parkshare"
    storage_root: Path = Path(os.getenv("PARKSHARE_STORAGE_ROOT", str(Path.home() / ".parkshare")))

    # Managed backend (PostgREST tables/RPC + GoTrue auth)
    backend_url: str = os.getenv("BACKEND_URL", "http://127.0.0.1:54321")
    backend_anon_key: str = os.getenv("BACKEND_ANON_KEY", "")
    request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))

    # Email verification
    code_length: int = int(os.getenv("VERIFICATION_CODE_LENGTH", "6"))
    resend_cooldown_seconds: int = int(os.getenv("RESEND_COOLDOWN_SECONDS", "60"))
    # Demo mode: show the dispatched code in the notice instead of relying on email delivery.
    reveal_dispatched_code: bool = os.getenv("REVEAL_DISPATCHED_CODE", "").lower() in ("1", "true", "yes")

    # Session persistence
    session_refresh_margin_seconds: int = int(os.getenv("SESSION_REFRESH_MARGIN_SECONDS", "60"))
    # Fernet key, base64 urlsafe 32 bytes. Empty stores sessions unencrypted.
    session_encryption_key: str = os.getenv("SESSION_ENCRYPTION_KEY", "")

    # Logging
    log_dir: Path = Path(os.getenv("PARKSHARE_LOG_DIR", "logs"))
    log_level: str = os.getenv("PARKSHARE_LOG_LEVEL", "INFO")

    @property
    def session_db_path(self) -> Path:
        return self.storage_root / "db" / "session.sqlite3"


settings = Settings()
