from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(..., alias="DATABASE_URL")
    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(7, alias="REFRESH_TOKEN_EXPIRE_DAYS")
    bcrypt_rounds: int = Field(12, ge=4, le=31, alias="BCRYPT_ROUNDS")

    cache_ttl_seconds: int = Field(300, ge=1, alias="CACHE_TTL_SECONDS")
    cache_entity_ttl_seconds: int = Field(600, ge=1, alias="CACHE_ENTITY_TTL_SECONDS")

    rate_limit_max_requests: int = Field(100, ge=1, alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_window_seconds: int = Field(60, ge=1, alias="RATE_LIMIT_WINDOW_SECONDS")
    login_rate_limit_max: int = Field(5, ge=1, alias="LOGIN_RATE_LIMIT_MAX")
    login_rate_limit_window_seconds: int = Field(15 * 60, ge=1, alias="LOGIN_RATE_LIMIT_WINDOW_SECONDS")

    # Comma separated list of allowed origins
    cors_origins: str = Field("*", alias="CORS_ORIGINS")
    # Comma separated peer addresses allowed to set X-Forwarded-For
    trusted_proxies: str = Field("", alias="TRUSTED_PROXIES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    superadmin_username: Optional[str] = Field(None, alias="SUPERADMIN_USERNAME")
    superadmin_password: Optional[str] = Field(None, alias="SUPERADMIN_PASSWORD")

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def trusted_proxy_list(self) -> List[str]:
        return [proxy.strip() for proxy in self.trusted_proxies.split(",") if proxy.strip()]


settings = Settings()
