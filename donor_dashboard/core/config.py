from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration loaded from environment variables / .env file."""

    app_name: str = "Kiosk Donor Dashboard"
    app_env: str = "development"
    app_port: int = 8000
    frontend_url: str = "http://localhost:3000"

    # Database (MySQL/Postgres in production or SQLite for local dev)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./dashboard_dev.db",
        alias="DATABASE_URL",
    )

    # Session tokens
    jwt_secret: str = Field(
        default="your-secret-key-change-in-production",
        alias="DASHBOARD_JWT_SECRET",
    )
    super_admin_emails: str = Field(
        default="", alias="SUPER_ADMIN_EMAILS",
    )  # comma separated
    session_ttl_days: int = Field(default=30, alias="SESSION_TTL_DAYS")
    impersonation_ttl_minutes: int = Field(
        default=60, alias="IMPERSONATION_TTL_MINUTES",
    )
    session_cookie_name: str = "dashboard_session"

    # Listing defaults
    default_page_limit: int = 50
    donor_history_limit: int = 50

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }

    @property
    def super_admin_list(self) -> list[str]:
        return [e.strip() for e in self.super_admin_emails.split(",") if e.strip()]

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

settings = Settings()
