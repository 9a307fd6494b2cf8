from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class EnvSettings(BaseSettings):
    secret_key: str = Field(..., alias="APP_SECRET_KEY")
    cookie_secure: bool = Field(False, alias="APP_COOKIE_SECURE")
    context_max_age_seconds: int = Field(8 * 60 * 60, alias="APP_CONTEXT_MAX_AGE")

    ldap_page_size: int = Field(1000, alias="LDAP_PAGE_SIZE")
    ldap_connect_timeout: Optional[float] = Field(None, alias="LDAP_CONNECT_TIMEOUT")
    ldap_tls_validate: bool = Field(True, alias="LDAP_TLS_VALIDATE")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_dir: str = Field("data/logs", alias="LOG_DIR")
    log_retention_days: int = Field(30, alias="LOG_RETENTION_DAYS")

    class Config:
        populate_by_name = True


@lru_cache(maxsize=1)
def get_env() -> EnvSettings:
    return EnvSettings()
