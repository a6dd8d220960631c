from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    """
    Centralized application configuration.
    Reads from environment variables or .env file.
    """
    APP_NAME: str = "TabKeeper"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Server Settings
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    # Only this extension may connect when set; otherwise any extension origin is accepted.
    EXTENSION_ID: str | None = None

    # Tab Management
    STALE_THRESHOLD_MILLIS: int = 86_400_000
    HOST_TIMEOUT_SECONDS: float = 10.0

    # LLM Configuration
    LLM_PROVIDER: str = "ollama"  # ollama, gemini, openai
    MODEL_NAME: str = "phi3:mini"
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    GEMINI_API_KEY: str | None = None
    GEMINI_SERVICE_ACCOUNT_FILE: str | None = None # Path to service account file
    OPENAI_API_KEY: str | None = None
    MAX_NEW_TOKENS: int = 512
    TEMPERATURE: float = 0.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache()
def get_settings():
    return Settings()
