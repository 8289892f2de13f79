"""
LINE Keyword Reply Bot - Main Application Entry Point
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.exceptions import RequestValidationError
from app.api import webhooks, admin
from app.config import settings
from app.services.settings_store import init_settings_store
from app.version import __version__
import logging
import re
from pathlib import Path


# Custom logging filter to redact sensitive data
class SensitiveDataFilter(logging.Filter):
    """Filter to redact sensitive data from logs"""

    def filter(self, record):
        if hasattr(record, 'msg'):
            msg = str(record.msg)

            # Redact bearer tokens (LINE channel access token, LLM API key)
            msg = re.sub(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", r"\1[REDACTED]", msg)

            # Redact OpenAI-style API keys
            msg = re.sub(r"\bsk-[A-Za-z0-9_-]{8,}\b", "[API_KEY_REDACTED]", msg)

            # Redact LINE reply tokens in JSON/dict representations
            msg = re.sub(
                r"(['\"]replyToken['\"]:\s*['\"])([^'\"]+)(['\"])",
                r"\1[REDACTED]\3",
                msg
            )

            record.msg = msg
        return True


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Add filter to all loggers
for handler in logging.root.handlers:
    handler.addFilter(SensitiveDataFilter())

# Add filter to httpx logger (logs API requests)
httpx_logger = logging.getLogger('httpx')
httpx_logger.addFilter(SensitiveDataFilter())

logger = logging.getLogger(__name__)

upload_dir = Path(settings.upload_dir)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown"""
    # Startup
    logger.info("🚀 Starting LINE Keyword Reply Bot")
    logger.info(f"📦 Version: {__version__}")
    logger.info(f"📝 Environment: {settings.environment}")

    store = init_settings_store(settings.settings_file)
    logger.info(f"✅ Reply settings ready: {len(store.snapshot.rules)} keyword rule(s)")

    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"✅ Upload directory ready: {upload_dir}")
    except OSError as e:
        logger.error(f"❌ Failed to create upload directory: {e}")
        # Non-fatal - retried on first upload

    if settings.llm_api_key:
        logger.info(f"🤖 Completion fallback enabled (model: {settings.llm_model})")
    else:
        logger.info("ℹ️ LLM_API_KEY not set - unmatched messages get the fallback prompt as-is")

    logger.info("🔗 Webhook endpoint: /webhooks/line")

    yield

    # Shutdown
    logger.info("Shutting down...")


app = FastAPI(
    title="LINE Keyword Reply Bot",
    description="Keyword-based canned replies and language-model fallback for LINE",
    version=__version__,
    lifespan=lifespan
)


# Add validation error handler for debugging
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors for debugging"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation errors: {exc.errors()}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors())}
    )


# Register webhook routes
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# Register admin routes (settings editor and uploads)
app.include_router(admin.router, tags=["admin"])

# Uploaded images must be publicly reachable for LINE to fetch them
app.mount(
    "/uploads",
    StaticFiles(directory=str(upload_dir), check_dir=False),
    name="uploads"
)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "app": "LINE Keyword Reply Bot",
        "version": __version__,
        "status": "running",
        "environment": settings.environment,
        "webhook_url": "/webhooks/line"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port)
