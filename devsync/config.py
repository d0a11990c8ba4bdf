"""Application configuration"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_url: str = "sqlite:///./devsync.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # "development" or "production". Production rejects some lenient paths
    # (unlinked re-sync, non super-admin status changes).
    environment: str = "development"

    # Logging
    log_level: str = "INFO"

    # Auth (optional)
    # When enabled, all routes are protected by HTTP Basic auth,
    # except for /health and the GitHub webhook (which is HMAC-signed).
    auth_enabled: bool = False
    auth_username: str | None = None
    auth_password: str | None = None
    # Comma-separated usernames holding the super_admin role (production status changes).
    super_admin_usernames: str = ""

    # GitHub
    # Without a token the integration is silently disabled.
    github_token: str | None = None
    github_repo_owner: str | None = "devsync"
    github_repo_name: str | None = "devsync"
    github_api_url: str = "https://api.github.com"
    github_timeout_seconds: float = 10.0
    github_webhook_secret: str | None = None
    # Reject every webhook delivery when no secret is configured.
    webhook_require_signature: bool = False
    # Only touch labels this service manages (bug/enhancement/priority-*/status-*).
    github_preserve_foreign_labels: bool = True
    github_comment_on_status_change: bool = True

    # Reconciliation
    reconcile_enabled: bool = True
    reconcile_interval_minutes: int = 60
    reconcile_initial_delay_seconds: int = 300
    # Pause between items to avoid bursting the GitHub API.
    reconcile_item_delay_seconds: float = 0.5

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def is_production(self) -> bool:
        return (self.environment or "").strip().lower() == "production"

    def is_super_admin(self, username: str | None) -> bool:
        if not username:
            return False
        admins = {name.strip() for name in self.super_admin_usernames.split(",") if name.strip()}
        return username in admins


settings = Settings()
