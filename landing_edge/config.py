from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    affwp_parent_url: Optional[str] = Field(None, alias="AFFWP_PARENT_URL")
    affwp_public_key: Optional[str] = Field(None, alias="AFFWP_PUBLIC_KEY")
    affwp_token: Optional[str] = Field(None, alias="AFFWP_TOKEN")
    affwp_ref_var: str = Field("ref", alias="AFFWP_REF_VAR")
    affwp_cookie_days: int = Field(400, alias="AFFWP_COOKIE_DAYS")
    affwp_credit_last: bool = Field(True, alias="AFFWP_CREDIT_LAST")
    affwp_timeout_seconds: float = Field(10.0, alias="AFFWP_TIMEOUT_SECONDS")

    origin_url: Optional[str] = Field(None, alias="ORIGIN_URL")
    static_dir: str = Field("public", alias="STATIC_DIR")
    experiments_config_path: str = Field("configs/experiments.yaml", alias="EXPERIMENTS_CONFIG_PATH")

    debug: bool = Field(False, alias="DEBUG")
    env: str = Field("prod", alias="ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("affwp_parent_url", "origin_url")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip().rstrip("/") or None

    @property
    def attribution_configured(self) -> bool:
        return bool(self.affwp_parent_url and self.affwp_public_key and self.affwp_token)

    @property
    def affiliate_cookie_max_age(self) -> int:
        return self.affwp_cookie_days * 86400

    @property
    def debug_routes_enabled(self) -> bool:
        return self.debug and self.env.lower() != "prod"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
