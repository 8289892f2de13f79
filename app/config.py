"""Configuration management using environment variables"""
import os
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Development placeholder for secrets (not secure - for local testing only)
DEV_SECRET_PLACEHOLDER = "test_secret_dev"

DEFAULT_APOLOGY_TEXT = "ขออภัยค่ะ ระบบขัดข้องชั่วคราว กรุณาลองใหม่อีกครั้ง"


class Settings:
    """Application settings read from the environment"""

    def __init__(self):
        # Environment
        self.environment = os.getenv("ENVIRONMENT", "development")

        # LINE Messaging API credentials
        if self.environment == "production":
            self.line_channel_secret = self._get_required("LINE_CHANNEL_SECRET")
            self.line_channel_access_token = self._get_required("LINE_CHANNEL_ACCESS_TOKEN")

            # Reject test secrets in production
            if self.line_channel_secret == DEV_SECRET_PLACEHOLDER:
                raise ValueError(
                    f"Cannot use test secret '{DEV_SECRET_PLACEHOLDER}' in production mode. "
                    "Set a real LINE_CHANNEL_SECRET from the LINE Developers console."
                )
        else:
            # Development mode: Load from .env file (never commit secrets to git)
            self.line_channel_secret = os.getenv("LINE_CHANNEL_SECRET", DEV_SECRET_PLACEHOLDER)
            self.line_channel_access_token = os.getenv("LINE_CHANNEL_ACCESS_TOKEN", "")

            if self.line_channel_secret == DEV_SECRET_PLACEHOLDER:
                logging.getLogger(__name__).warning(
                    "⚠️  Using default LINE_CHANNEL_SECRET - signature validation will fail with real LINE webhooks"
                )

            self._warn_missing_credentials()

        self.line_api_base_url = os.getenv("LINE_API_BASE_URL", "https://api.line.me/v2/bot").rstrip("/")
        self.line_reply_timeout = float(os.getenv("LINE_REPLY_TIMEOUT", "10.0"))  # seconds

        # Language-model completion API (OpenAI-compatible).
        # Empty key disables the completion call; the fallback prompt is sent as-is.
        self.llm_api_key = os.getenv("LLM_API_KEY", "")
        self.llm_api_base_url = os.getenv("LLM_API_BASE_URL", "https://api.openai.com/v1").rstrip("/")
        self.llm_model = os.getenv("LLM_MODEL", "gpt-4o-mini")
        self.llm_timeout = float(os.getenv("LLM_TIMEOUT", "15.0"))  # seconds

        # Reply settings persisted by the admin page
        self.settings_file = os.getenv("SETTINGS_FILE", "setting.json")

        # Uploaded images served back at /uploads
        self.upload_dir = os.getenv("UPLOAD_DIR", "uploads")
        self.max_upload_size = int(os.getenv("MAX_UPLOAD_SIZE", str(10 * 1024 * 1024)))  # 10 MB

        # Sent when a single event fails
        self.apology_text = os.getenv("APOLOGY_TEXT", DEFAULT_APOLOGY_TEXT)

        # Server configuration
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", "3000"))

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

    def _get_required(self, key: str) -> str:
        """Get required environment variable or raise error."""
        value = os.getenv(key, "").strip()
        if not value:
            raise ValueError(
                f"Missing required environment variable: {key}. "
                f"Required in production mode."
            )
        return value

    def _warn_missing_credentials(self) -> None:
        """Warn about missing credentials in development mode."""
        logger = logging.getLogger(__name__)

        required_credentials = {
            "LINE_CHANNEL_ACCESS_TOKEN": "Required for sending replies. Issue one in the LINE Developers console (Messaging API tab).",
        }

        missing = [
            f"{key} - {desc}"
            for key, desc in required_credentials.items()
            if not getattr(self, key.lower(), "").strip()
        ]

        if missing:
            logger.warning(
                "⚠️  Missing configuration - replies will fail until these are set:\n" +
                "\n".join(f"  - {config}" for config in missing) +
                "\n\nCopy .env.example to .env and fill in your credentials."
            )


# Global settings instance
settings = Settings()
