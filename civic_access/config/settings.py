from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for role grants and notification inserts
    supabase_schema: str = "public"
    supabase_timeout_seconds: int = 10

    # App
    app_name: str = "civic-access"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    # Role requests
    role_request_limit: int = 3
    role_request_window_hours: int = 24
    notify_admins_on_request: bool = True

    # Principal cache
    principal_cache_ttl_seconds: int = 300
    principal_cache_max_size: int = 500
    principal_lookup_workers: int = 4

    # Field-level enforcement
    field_mask_token: str = "••••••"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
