from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App Info
    PROJECT_NAME: str = "FinanceAI"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "local"
    CORS_ORIGINS: List[str] = ["*"]

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./financeai.db"

    # LLM
    LLM_PROVIDER: str = "gemini"  # "gemini" | "groq"
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.1-8b-instant"
    GROQ_URL: str = "https://api.groq.com/openai/v1/chat/completions"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_OUTPUT_TOKENS: int = 1500
    LLM_TIMEOUT_SECONDS: float = 30.0
    LLM_MAX_RETRIES: int = 3
    LLM_BACKOFF_BASE_SECONDS: float = 1.0
    LLM_BACKOFF_MAX_SECONDS: float = 10.0
    LLM_RETRY_FAIL_FAST: bool = False
    SANITIZE_LLM_INPUT: bool = True

    # Auth (tokens are issued by the hosted auth provider)
    AUTH_JWT_SECRET: str = "change-me-in-production"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: Optional[str] = "authenticated"
    AUTH_COOKIE_NAME: str = "sb-access-token"

    # Chat
    CONVERSATION_STORE: str = "memory"  # "memory" | "database"
    CHAT_MAX_MESSAGE_LENGTH: int = 2000
    CHAT_TRANSACTION_LIMIT: int = 500

    @property
    def llm_api_key(self) -> Optional[str]:
        if self.LLM_PROVIDER == "groq":
            return self.GROQ_API_KEY
        return self.GEMINI_API_KEY

    @property
    def llm_model(self) -> str:
        if self.LLM_PROVIDER == "groq":
            return self.GROQ_MODEL
        return self.GEMINI_MODEL


@lru_cache()
def get_settings() -> Settings:
    return Settings()
