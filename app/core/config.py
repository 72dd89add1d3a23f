import os
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.paths import resolve_repo_path

DEFAULT_MAINTENANCE_EXEMPT_PATHS = "/admin,/api/admin,/auth,/health,/maintenance,/docs,/redoc,/openapi.json"


def _env_files() -> list[str]:
    base = resolve_repo_path(".env")
    env = os.getenv("ABG_ENVIRONMENT", "").strip().lower()
    files = [str(base)]
    if env and env != "development":
        files.append(str(resolve_repo_path(f".env.{env}")))
    else:
        files.append(str(resolve_repo_path(".env.local")))
    return files


def split_csv(value: str | None) -> list[str]:
    """Splits a comma-separated value, dropping blanks and stray quotes."""
    if not value:
        return []
    cleaned = value.strip().strip("'\"")
    items: list[str] = []
    for raw in cleaned.split(","):
        item = raw.strip().strip("'\"").strip()
        if item:
            items.append(item)
    return items


class Settings(BaseSettings):
    app_name: str = "ABG Recruitment Portal"
    environment: str = "development"

    database_url: str
    auto_create_tables: bool = False

    auth_mode: Literal["dev", "google"] = "dev"
    google_client_id: str = ""
    google_oauth_secrets_path: str = Field(
        default="secrets/oauth-client.json",
        validation_alias=AliasChoices("ABG_GOOGLE_OAUTH_SECRETS_PATH", "GOOGLE_OAUTH_SECRETS_PATH"),
    )
    google_hosted_domain: str = ""
    google_clock_skew_seconds: int = 180
    admin_emails: str = Field(
        default="",
        validation_alias=AliasChoices("ABG_ADMIN_EMAILS", "ADMIN_EMAILS"),
    )

    maintenance_exempt_paths: str = DEFAULT_MAINTENANCE_EXEMPT_PATHS
    maintenance_redirect_path: str = "/maintenance"

    uploads_dir: str = "local_uploads/applications"
    audio_uploads_dir: str = "local_uploads/audio"
    max_upload_mb: int = 10

    enable_scheduler: bool = True
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(env_prefix="ABG_", env_file=_env_files(), extra="ignore")

    @property
    def admin_email_list(self) -> list[str]:
        return [email.lower() for email in split_csv(self.admin_emails)]

    @property
    def maintenance_exempt_prefixes(self) -> list[str]:
        return split_csv(self.maintenance_exempt_paths)

    @property
    def cors_origin_list(self) -> list[str]:
        return split_csv(self.cors_origins)


settings = Settings()
