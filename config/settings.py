from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import pydantic
from urllib.parse import quote_plus

class Settings(BaseSettings):
    """
    Manages all application settings and secrets.
    Reads from environment variables (and .env file).
    """

    # --- Core Application Configuration ---
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- HTTP server (uvicorn) ---
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # --- JWT Security ---
    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    ALGORITHM: str = "HS256"

    # The session cookie carries the same JWT as the Authorization header.
    SESSION_COOKIE_NAME: str = "token"
    COOKIE_SECURE: bool = False

    # --- Automation bypass ---
    # Pre-shared key accepted in place of a user token on the
    # "mark as fixing" endpoints. Unset disables the bypass.
    API_KEY: str | None = None

    # --- Task code allocation ---
    CODE_ALLOCATION_MAX_RETRIES: int = 3

    # --- PostgreSQL Database Configuration ---
    POSTGRES_SERVER: str = "db"
    POSTGRES_USER: str = "tasktrack"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "tasktrack"

    # Full SQLAlchemy URL; takes precedence over the POSTGRES_* parts
    # (e.g. "sqlite+aiosqlite:///./tasktrack.db" for local runs).
    DATABASE_URI: str | None = None

    # Create missing tables on startup (no migration tool is shipped).
    AUTO_CREATE_TABLES: bool = True

    @pydantic.computed_field
    @property
    def DATABASE_URL(self) -> str:
        """
        Construct the full async connection string.
        """
        if self.DATABASE_URI:
            return self.DATABASE_URI
        # Safely quote the password for the URL
        safe_password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{safe_password}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    # Pydantic-Settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        case_sensitive=False
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Returns a cached instance of the Settings object.
    Using @lru_cache ensures the .env file is read only once.
    """
    return Settings()

# Create a single, globally accessible settings instance
settings = get_settings()
