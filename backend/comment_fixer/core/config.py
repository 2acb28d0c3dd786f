"""
Application configuration management
"""
from pydantic import model_validator
from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """
    # Application
    APP_NAME: str = "AI PR Comment Fixer Bot"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    WEBHOOK_URL: str = "http://localhost:3000/webhook"

    # GitHub
    GITHUB_TOKEN: str
    GITHUB_WEBHOOK_SECRET: str
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_API_TIMEOUT: float = 30.0
    BOT_USERNAME: str = "ai-comment-fixer-bot"

    # LLM Configuration
    LLM_PROVIDER: str = "groq"
    GROQ_API_KEY: Optional[str] = None
    GOOGLE_API_KEY: Optional[str] = None
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    GEMINI_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 4000
    LLM_SUMMARY_TEMPERATURE: float = 0.3
    LLM_SUMMARY_MAX_TOKENS: int = 200
    LLM_TIMEOUT: float = 120.0
    LLM_MAX_RETRIES: int = 2

    # Git
    GIT_USER_NAME: str
    GIT_USER_EMAIL: str
    GIT_HOST: str = "github.com"
    GIT_TIMEOUT: float = 300.0
    WORKSPACE_PATH: str = "temp-repos"
    CLEANUP_WORKSPACE_ON_SHUTDOWN: bool = True

    # Default repository
    REPO_OWNER: str
    REPO_NAME: str

    # App Config
    MAX_CONCURRENT_PIPELINES: int = 4

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env

    @model_validator(mode="after")
    def check_llm_credentials(self):
        if self.LLM_PROVIDER not in ("groq", "gemini"):
            raise ValueError(f"Unsupported LLM_PROVIDER: {self.LLM_PROVIDER}")
        if self.LLM_PROVIDER == "groq" and not self.GROQ_API_KEY:
            raise ValueError("GROQ_API_KEY is required when LLM_PROVIDER=groq")
        if self.LLM_PROVIDER == "gemini" and not self.GOOGLE_API_KEY:
            raise ValueError("GOOGLE_API_KEY is required when LLM_PROVIDER=gemini")
        return self

# Global settings instance
settings = Settings()
