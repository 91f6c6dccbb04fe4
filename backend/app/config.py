"""
Application configuration
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "DocGen Dashboard"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    FRONTEND_BASE_URL: str = "http://localhost:3000"

    # Database (MongoDB)
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "docgen"

    # Change notifications (Redis pub/sub)
    REDIS_URL: str = "redis://localhost:6379/0"
    STORE_CHANNEL_PREFIX: str = "store:changes:"

    # GitHub
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_CLIENT_ID: Optional[str] = None
    GITHUB_CLIENT_SECRET: Optional[str] = None
    GITHUB_REDIRECT_URI: str = "http://localhost:8000/api/auth/github/callback"
    GITHUB_SCOPES: List[str] = ["read:user", "user:email", "repo", "admin:repo_hook"]
    GITHUB_REPOS_PAGE_SIZE: int = 100
    GITHUB_REPOS_MAX_PAGES: int = 10
    OAUTH_SIGN_IN_TIMEOUT_SECONDS: float = 300.0

    # Webhooks / analysis pipeline
    WEBHOOK_CALLBACK_URL: Optional[str] = None
    WEBHOOK_EVENTS: List[str] = ["push", "pull_request"]
    ANALYSIS_API_URL: Optional[str] = None

    # Onboarding
    ONBOARDING_ITEM_DELAY_SECONDS: float = 0.5
    ONBOARDING_FINISHED_TTL_SECONDS: float = 300.0
    ONBOARDING_IDLE_TTL_SECONDS: float = 1800.0

    # Live views
    JOBS_FEED_LIMIT: int = 10
    SSE_HEARTBEAT_SECONDS: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
