# backend/app/core/settings.py
# Configuration applicative (pydantic-settings) : Mongo, JWT du fournisseur d'auth, Strava, politique de rôles.

from functools import lru_cache
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from rich import print


class Settings(BaseSettings):
    # === App settings ===
    app_name: str = "March Fitness"
    environment: str = "development"  # or "production"
    api_version: str = "0.1.0"
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # === MongoDB ===
    mongodb_user: str = ""
    mongodb_password: str = ""
    mongodb_uri_tpl: str = "mongodb://localhost:27017"
    mongodb_db: str = "march_fitness"

    # === JWT (émis par le fournisseur d'auth externe) ===
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"

    # === Role policy ===
    admin_emails: Annotated[list[str], NoDecode] = []
    default_role: str = "user"

    # === STRAVA ===
    strava_client_id: str = ""
    strava_client_secret: str = ""
    strava_verify_token: str = ""
    strava_api_base: str = "https://www.strava.com/api/v3"
    strava_token_url: str = "https://www.strava.com/api/v3/oauth/token"
    strava_timeout_s: float = 10.0

    # UPLOAD
    one_mb: int = 1024 * 1024
    max_upload_mb: int = 2

    # === LOGS ===
    logs_dir: str = "logs"
    logs_retention_days: int = 30

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("admin_emails", mode="before")
    @classmethod
    def parse_admin_emails(cls, v):
        if isinstance(v, str):
            if not v:
                return []
            return [e.strip().lower() for e in v.split(",") if e.strip()]
        return [e.lower() for e in v]

    @property
    def mongodb_uri(self) -> str:
        """Build the full MongoDB URI from template."""
        return self.mongodb_uri_tpl.replace("[[MONGODB_USER]]", self.mongodb_user)\
                                   .replace("[[MONGODB_PASSWORD]]", self.mongodb_password)

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * self.one_mb


@lru_cache
def get_settings() -> Settings:
    """Instance globale des settings (chargée une seule fois)."""
    settings = Settings()
    if settings.environment == "development":
        print("--- Settings loaded ---")
    return settings
