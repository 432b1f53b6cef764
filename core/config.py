"""
Application configuration using Pydantic settings.
"""
from typing import Optional
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database settings
    database_url_override: Optional[str] = Field(
        None, validation_alias=AliasChoices("DATABASE_URL", "database_url_override")
    )
    db_host: str = "localhost"
    db_port: str = "5432"
    db_user: str = "user"
    db_password: str = "password"
    db_name: str = "synapse"

    # JWT / session settings
    jwt_secret_key: str = "change-this-in-production"
    jwt_algorithm: str = "HS256"
    session_expire_days: int = 30

    # OpenAI settings
    openai_api_key: Optional[str] = None
    openai_lesson_model: str = "gpt-4o"
    openai_fast_model: str = "gpt-4o-mini"
    openai_tts_model: str = "tts-1"
    openai_tts_voice: str = "nova"
    openai_max_retries: int = 2
    openai_timeout_seconds: float = 180.0

    # Admin settings
    admin_secret: str = "dev-admin-secret-change-me"
    default_admin_username: Optional[str] = None
    default_admin_email: Optional[str] = None
    default_admin_password: Optional[str] = None
    force_reset_password_admin: bool = False

    # Sharing
    public_base_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("NEXT_PUBLIC_BASE_URL", "public_base_url")
    )

    # File upload settings
    max_file_size_mb: int = 50
    allowed_file_types: list[str] = [".pdf", ".docx", ".txt", ".md"]

    # Course material limits
    extract_text_max_chars: int = 300_000
    stored_text_max_chars: int = 200_000
    exam_history_limit: int = 20
    min_course_topics: int = 6

    # Application settings
    app_name: str = "Synapse API"
    app_version: str = "0.1.0"
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    enable_file_logging: bool = False
    log_directory: str = "logs"
    log_file_max_size_mb: int = 10
    log_file_backup_count: int = 5
    log_compression: bool = True
    app_log_file: str = "app.log"
    error_log_file: str = "error.log"
    security_log_file: str = "security.log"
    llm_log_file: str = "llm.log"
    database_log_file: str = "database.log"
    access_log_file: str = "access.log"
    enable_request_logging: bool = True
    enable_sql_logging: bool = False

    # Security settings
    enable_security_headers: bool = True
    enable_rate_limiting: bool = True
    enable_request_size_limit: bool = True
    max_request_size_bytes: int = 60 * 1024 * 1024  # 60MB
    cors_origins: list[str] = ["*"]

    @property
    def database_url(self) -> str:
        """Construct database URL from individual components."""
        if self.database_url_override:
            return self.database_url_override
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def async_database_url(self) -> str:
        """Database URL with an async driver."""
        url = self.database_url
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"


# Global settings instance
settings = Settings()
