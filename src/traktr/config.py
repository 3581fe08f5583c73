"""
Traktr Configuration Module.

Handles application settings, feature flags, and store configuration.
Uses pydantic-settings for validation and type safety.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    """Feature flags for optional session/job behaviour."""

    model_config = SettingsConfigDict(env_prefix="FEATURE_")

    employee_profile_gate: bool = True
    seed_example_job: bool = True

    def to_dict(self) -> dict[str, bool]:
        """Return feature flags as dictionary for health endpoint."""
        return {
            "employee_profile_gate": self.employee_profile_gate,
            "seed_example_job": self.seed_example_job,
        }


class SupabaseSettings(BaseSettings):
    """Supabase configuration for the remote profile store."""

    model_config = SettingsConfigDict(env_prefix="SUPABASE_")

    url: str = Field(default="https://demo.supabase.co", description="Supabase project URL")
    service_role_key: str = Field(default="demo-service-role-key", description="Supabase service role key")

    users_table: str = Field(default="users")
    companies_table: str = Field(default="companies")
    members_table: str = Field(default="company_employees", description="companies/{id}/employees roster")
    company_users_table: str = Field(default="company_users", description="companies/{id}/users profiles")
    jobs_table: str = Field(default="jobs", description="companies/{id}/jobs, keyed by company_id column")
    work_tickets_table: str = Field(
        default="work_tickets",
        description="companies/{id}/jobs/{jobId}/workTickets, keyed by (company_id, job_id, id)",
    )
    job_messages_table: str = Field(default="job_messages", description="companies/{id}/jobs/{jobId}/messages")


class RedisSettings(BaseSettings):
    """Redis configuration (local session cache)."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    key_prefix: str = Field(
        default="traktr:",
        description="Key prefix; full key = prefix + <uid>:<deviceId> + ':' + <storage key>",
    )


class AuthSettings(BaseSettings):
    """Identity provider token verification."""

    model_config = SettingsConfigDict(env_prefix="AUTH_")

    jwt_secret: str = Field(default="demo-jwt-secret-for-development-only", description="Identity provider signing secret")
    jwt_algorithm: str = Field(default="HS256")
    audience: str | None = Field(default=None, description="Expected 'aud' claim; unchecked when empty")
    insecure_dev_bypass: bool = Field(
        default=False,
        description="If true (and not production), accept unsigned 'dev:<uid>' tokens. Local development only.",
    )


class StorageKeys(BaseSettings):
    """Fixed keys used in the local session cache."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_KEY_")

    session: str = "EJT_USER_SESSION"
    jobs: str = "EJT_JOBS"
    trash: str = "EJT_TRASH"
    sort: str = "EJT_SORT_OPTION"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = False
    app_log_level: str = "INFO"

    use_in_memory_backends: bool = Field(
        default=False,
        description="Use in-process stores instead of Redis/Supabase (local development and tests).",
        validation_alias="TRAKTR_USE_IN_MEMORY_BACKENDS",
    )
    device_registry_size: int = Field(
        default=1024,
        ge=1,
        description="Most recently used (uid, device) caches and session providers kept per process.",
    )

    # Nested settings
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    storage_keys: StorageKeys = Field(default_factory=StorageKeys)

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
