from pathlib import Path
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase settings
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_ANON_KEY: str = ""
    # Direct database URL, only needed for the change feed listener
    SUPABASE_DB_URL: str | None = None

    # HTTP transport
    REQUEST_TIMEOUT: float = 30.0
    MAX_RETRIES: int = 3

    # =================================================================
    # CHANGE FEED SETTINGS
    # =================================================================
    REALTIME_CHANNEL: str = "livelocal_changes"
    REALTIME_RECONNECT_DELAY: float = 1.0
    REALTIME_RECONNECT_MAX_DELAY: float = 30.0

    # =================================================================
    # STORE SETTINGS
    # =================================================================
    RATINGS_CACHE_TTL_SECONDS: float = 600.0  # 10 minutes
    NOTIFICATIONS_PAGE_SIZE: int = 20
    NOTIFICATION_ICON_URL: str | None = None

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def rest_url(self) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/rest/v1"

    def functions_url(self) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/functions/v1"

    def auth_url(self) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/auth/v1"

    def project_ref(self) -> str | None:
        """
        Extract the Supabase project ref from SUPABASE_URL host, e.g.
        https://ykvceus...supabase.co -> ykvceus...
        """
        try:
            host = urlparse(self.SUPABASE_URL).hostname or ""
            return host.split(".")[0]
        except Exception:
            return None

    def realtime_enabled(self) -> bool:
        """The change feed listener needs a direct database connection."""
        return bool(self.SUPABASE_DB_URL)


settings = Settings()
