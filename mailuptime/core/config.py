"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    
    # Environment
    ENV: str = "dev"
    
    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"
    
    # Database
    DATABASE_URL: str = "sqlite:///./mailuptime.db"
    AUTO_MIGRATE: bool = True  # Upgrade schema to head on startup
    
    # Mailbox definitions (JSON file with defaults + mailboxes)
    MAILBOX_CONFIG_PATH: str = "mailboxes.json"
    
    # Mail server socket timeout for IMAP/POP3 sessions
    MAIL_TIMEOUT_SECONDS: float = 30.0
    
    # Logging
    LOG_LEVEL: str = "INFO"
    
    # API server (uvicorn)
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    
    @property
    def log_level_value(self) -> str:
        """Normalized log level name for logging.basicConfig."""
        return self.LOG_LEVEL.strip().upper() or "INFO"
    
    @property
    def docs_enabled(self) -> bool:
        """Interactive API docs only in dev."""
        return self.ENV == "dev"


settings = Settings()
