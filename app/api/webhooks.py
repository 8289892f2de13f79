"""LINE webhook endpoint"""
from fastapi import APIRouter, Request, HTTPException, status, Depends
from app.config import settings
from app.clients import LineClient, CompletionClient
from app.services.event_dispatcher import EventDispatcher
from app.services.settings_store import SettingsStore, get_settings_store
import logging
import httpx
import hmac
import hashlib
import base64
import json

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_http_client():
    """One outbound HTTP client per webhook request, shared by its events"""
    async with httpx.AsyncClient() as http_client:
        yield http_client


@router.post("/line")
async def handle_webhook(
    request: Request,
    http_client: httpx.AsyncClient = Depends(get_http_client),
    store: SettingsStore = Depends(get_settings_store)
):
    """
    Webhook endpoint for receiving LINE events.

    LINE sends a batch of events per POST. Every text message gets a reply:
    canned content from the keyword table, or a language-model answer when
    no keyword matches.

    Security: Validates the X-Line-Signature header against the raw body
    before anything is parsed.
    """
    # Get the raw request body for signature validation
    raw_body = await request.body()

    signature_header = request.headers.get("X-Line-Signature", "")
    if not _validate_webhook_signature(raw_body, signature_header):
        logger.warning("❌ Invalid webhook signature - potential security threat")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature"
        )

    try:
        body = json.loads(raw_body)
    except ValueError as e:
        logger.error(f"❌ JSON parse error: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON"
        )

    if not isinstance(body, dict) or not isinstance(body.get("events"), list):
        logger.warning("Invalid webhook payload: missing 'events' list")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload"
        )

    events = body["events"]

    # Log only metadata, never log message content or personal data
    logger.info(f"📨 Webhook POST request received - events: {len(events)}")

    # Every event of this batch sees the same settings snapshot
    snapshot = store.snapshot

    dispatcher = EventDispatcher(
        line_client=LineClient(http_client=http_client, settings=settings, logger_instance=logger),
        completion_client=CompletionClient(http_client=http_client, settings=settings),
        apology_text=settings.apology_text
    )

    try:
        results = await dispatcher.dispatch(events, snapshot)
    except Exception as e:
        logger.error(f"❌ Webhook error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server error"
        )

    replied = sum(1 for result in results if result is not None)
    logger.info(f"✅ Processed {replied} text message(s) from webhook")

    return {
        "status": "ok",
        "results": [result.to_dict() if result is not None else None for result in results]
    }


def _validate_webhook_signature(payload: bytes, signature_header: str) -> bool:
    """
    Validate the webhook signature from LINE.

    LINE signs every webhook request body with HMAC-SHA256 using the channel
    secret and sends the base64-encoded digest in X-Line-Signature.

    Args:
        payload: Raw request body as bytes
        signature_header: Value of X-Line-Signature header

    Returns:
        True if signature is valid, False otherwise

    Security:
        - Uses constant-time comparison to prevent timing attacks
        - Always computes the digest, even for a missing header
    """
    if not signature_header:
        logger.warning("Missing signature header")
        signature_header = "invalid"  # Will fail compare_digest below

    if not settings.line_channel_secret:
        logger.error("LINE_CHANNEL_SECRET not configured - cannot validate webhook signature")
        return False

    from app.config import DEV_SECRET_PLACEHOLDER

    if settings.line_channel_secret == DEV_SECRET_PLACEHOLDER:
        if settings.environment == "production":
            logger.error("Cannot use test secret in production - webhook validation will fail")
            return False
        logger.warning(
            "⚠️  Using test secret for webhook validation. "
            "This will fail with real LINE webhooks. "
            "Set LINE_CHANNEL_SECRET to your real channel secret."
        )

    digest = hmac.new(
        settings.line_channel_secret.encode("utf-8"),
        payload,
        hashlib.sha256
    ).digest()
    computed_signature = base64.b64encode(digest).decode("ascii")

    is_valid = hmac.compare_digest(
        computed_signature.encode("ascii"),
        signature_header.encode("utf-8")
    )

    if is_valid:
        logger.debug("✅ Webhook signature validated")
    else:
        logger.warning("❌ Invalid webhook signature")

    return is_valid
