"""
Central configuration module for Listing Wizard
Reads and validates environment variables with strict checks for production
"""
import os
import sys
from typing import Optional, List

from dotenv import load_dotenv

# Only load .env in development
if os.getenv("ENV", "dev").lower() == "dev":
    load_dotenv()


VALID_ENVS = ["dev", "test", "staging", "prod"]
VALID_STORE_BACKENDS = ["memory", "disk", "redis", "sql"]


class Config:
    """Central configuration class with environment variable validation"""

    def __init__(self):
        """Read environment variables and validate them"""
        # Environment
        self.ENV: str = os.getenv("ENV", "dev").lower()
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.PORT: int = int(os.getenv("PORT", "8000"))

        # Persistence
        self.STORE_BACKEND: str = os.getenv("STORE_BACKEND", "memory").lower()
        self.STORE_PATH: str = os.getenv("STORE_PATH", "./data")
        self.REDIS_URL: Optional[str] = os.getenv("REDIS_URL")
        self.DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")

        # AI inference (LiteLLM model string, e.g. "openai/gpt-4o-mini" or "ollama/llama3.1")
        self.LLM_MODEL: str = os.getenv("LLM_MODEL", "openai/gpt-4o-mini")
        self.LLM_API_BASE: Optional[str] = os.getenv("LLM_API_BASE")
        self.LLM_API_KEY: Optional[str] = os.getenv("LLM_API_KEY")
        self.IMAGE_MODEL: str = os.getenv("IMAGE_MODEL", "dall-e-3")

        # Headless browser rendering
        self.CLOUDFLARE_ACCOUNT_ID: Optional[str] = os.getenv("CLOUDFLARE_ACCOUNT_ID")
        self.CLOUDFLARE_API_TOKEN: Optional[str] = os.getenv("CLOUDFLARE_API_TOKEN")
        self.BROWSER_RENDERING_BASE_URL: str = os.getenv(
            "BROWSER_RENDERING_BASE_URL",
            "https://api.cloudflare.com/client/v4"
        )

        # Wizard -> proxy calls
        self.PROXY_BASE_URL: str = os.getenv("PROXY_BASE_URL", "http://localhost:8000")
        self.REMOTE_TIMEOUT_SECONDS: float = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "30"))

        # Uploaded images
        self.UPLOAD_PATH: str = os.getenv("UPLOAD_PATH", "./uploads")
        self.PUBLIC_UPLOAD_URL: str = os.getenv("PUBLIC_UPLOAD_URL", "http://localhost:8000/uploads")

        self.CORS_ORIGINS: List[str] = []
        self._load_cors_origins()
        self._validate()

    def _load_cors_origins(self):
        """Load CORS origins from environment variable (defaults to all origins)"""
        cors_env = os.getenv("CORS_ORIGINS", "*")
        self.CORS_ORIGINS = [origin.strip() for origin in cors_env.split(",") if origin.strip()]

    def _validate(self):
        """Validate configuration based on environment"""
        errors = []

        if self.ENV not in VALID_ENVS:
            errors.append(f"Invalid ENV value: {self.ENV}. Must be one of {', '.join(VALID_ENVS)}")

        if self.STORE_BACKEND not in VALID_STORE_BACKENDS:
            errors.append(
                f"Invalid STORE_BACKEND value: {self.STORE_BACKEND}. "
                f"Must be one of {', '.join(VALID_STORE_BACKENDS)}"
            )
        elif self.STORE_BACKEND == "redis" and not self.REDIS_URL:
            errors.append("REDIS_URL is required when STORE_BACKEND=redis")
        elif self.STORE_BACKEND == "sql" and not self.DATABASE_URL:
            errors.append("DATABASE_URL is required when STORE_BACKEND=sql")

        if self.REMOTE_TIMEOUT_SECONDS <= 0:
            errors.append(f"REMOTE_TIMEOUT_SECONDS must be positive (got: {self.REMOTE_TIMEOUT_SECONDS})")

        if self.ENV in ["staging", "prod"]:
            if self.STORE_BACKEND == "memory":
                errors.append("STORE_BACKEND=memory loses all projects on restart; use disk, redis or sql")
            if not self.PROXY_BASE_URL.startswith("https://"):
                errors.append("PROXY_BASE_URL must use HTTPS in staging/production")

        # Fail fast in staging/prod
        if errors and self.ENV in ["staging", "prod"]:
            print("=" * 60, file=sys.stderr)
            print("CONFIGURATION VALIDATION FAILED", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            sys.exit(1)

        if errors:
            print("=" * 60, file=sys.stderr)
            print(f"CONFIGURATION WARNINGS ({self.ENV} mode - continuing)", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode"""
        return self.ENV == "dev"

    @property
    def is_prod(self) -> bool:
        """Check if running in production mode"""
        return self.ENV == "prod"

    @property
    def ai_configured(self) -> bool:
        """Check if an AI model is configured"""
        return bool(self.LLM_MODEL)

    @property
    def browser_configured(self) -> bool:
        """Check if browser rendering credentials are configured"""
        return bool(self.CLOUDFLARE_ACCOUNT_ID and self.CLOUDFLARE_API_TOKEN)


# Create global config instance
config = Config()
