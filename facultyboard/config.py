import os
from typing import Optional

from pydantic import BaseModel


class AppSettings(BaseModel):
    # Core
    environment: str = os.getenv("ENVIRONMENT", "local")
    config_version: str = os.getenv("CONFIG_VERSION", "2025-01-15")

    # Supabase REST (default record source)
    supabase_url: Optional[str] = os.getenv("SUPABASE_URL")
    supabase_anon_key: Optional[str] = os.getenv("SUPABASE_ANON_KEY")
    supabase_service_key: Optional[str] = os.getenv("SUPABASE_SERVICE_KEY")
    request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))

    # Database (Postgres)
    # Note: asyncpg expects plain 'postgresql://' or 'postgres://'. Leave empty to read through Supabase.
    database_url: str = os.getenv("DATABASE_URL", "")

    # Analytics
    monthly_bucket_limit: int = int(os.getenv("MONTHLY_BUCKET_LIMIT", "24"))
    top_dimension_limit: int = int(os.getenv("TOP_DIMENSION_LIMIT", "10"))
    recent_window_years: int = int(os.getenv("RECENT_WINDOW_YEARS", "1"))

    # Recent activity feed
    recent_per_category: int = int(os.getenv("RECENT_PER_CATEGORY", "2"))
    recent_feed_size: int = int(os.getenv("RECENT_FEED_SIZE", "5"))

    @property
    def supabase_key(self) -> Optional[str]:
        return self.supabase_service_key or self.supabase_anon_key


settings = AppSettings()
