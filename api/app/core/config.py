from functools import lru_cache
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

LEGACY_AUTH_COOKIE_NAMES: tuple[str, ...] = (
    "sb-access-token",
    "supabase-access-token",
    "access_token",
)


class Settings(BaseSettings):
    app_name: str = "campaign-desk-api"
    environment: str = "dev"
    log_level: str = "INFO"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    otel_enabled: bool = True
    otel_service_name: str = "campaign-desk-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0

    model_config = SettingsConfigDict(env_prefix="CD_", extra="ignore")

    @property
    def supabase_project_ref(self) -> str | None:
        if not self.supabase_url:
            return None
        host = urlparse(self.supabase_url).hostname or ""
        ref = host.split(".", maxsplit=1)[0]
        return ref or None

    @property
    def auth_cookie_names(self) -> list[str]:
        names = list(LEGACY_AUTH_COOKIE_NAMES)
        ref = self.supabase_project_ref
        if ref:
            names.extend([f"sb-{ref}-auth-token", f"sb-{ref}-access-token"])
        return names


@lru_cache
def get_settings() -> Settings:
    return Settings()
