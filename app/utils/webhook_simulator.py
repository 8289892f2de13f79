"""
Webhook Simulator Utility

Generates LINE webhook payloads with valid X-Line-Signature headers for
testing webhook processing locally without a real LINE channel.
"""

import base64
import hmac
import hashlib
import json
import time
import uuid
from typing import Any, Dict, List, Optional


class WebhookSimulator:
    """
    Generate LINE webhook payloads for local testing.

    Usage:
        simulator = WebhookSimulator(channel_secret="your_line_channel_secret")
        event = simulator.text_event("มีโปรอะไรบ้าง")
        payload_bytes, signature = simulator.sign_events([event])

        # Send to webhook endpoint
        response = httpx.post(
            "http://localhost:3000/webhooks/line",
            content=payload_bytes,
            headers={"X-Line-Signature": signature}
        )
    """

    def __init__(self, channel_secret: str):
        """
        Initialize with the LINE channel secret used for signatures.

        Args:
            channel_secret: LINE_CHANNEL_SECRET from your .env file
        """
        self.channel_secret = channel_secret

    def text_event(
        self,
        text: str,
        user_id: str = "U0123456789abcdef0123456789abcdef",
        reply_token: Optional[str] = None,
        timestamp_ms: Optional[int] = None
    ) -> Dict[str, Any]:
        """Build a text message event as LINE delivers it."""
        return self._message_event(
            {"id": uuid.uuid4().hex[:18], "type": "text", "text": text},
            user_id=user_id,
            reply_token=reply_token,
            timestamp_ms=timestamp_ms
        )

    def sticker_event(self, user_id: str = "U0123456789abcdef0123456789abcdef") -> Dict[str, Any]:
        """Build a sticker message event (not a text message)."""
        return self._message_event(
            {"id": uuid.uuid4().hex[:18], "type": "sticker", "packageId": "446", "stickerId": "1988"},
            user_id=user_id
        )

    def follow_event(self, user_id: str = "U0123456789abcdef0123456789abcdef") -> Dict[str, Any]:
        """Build a follow event (not a message event)."""
        return {
            "type": "follow",
            "mode": "active",
            "timestamp": int(time.time() * 1000),
            "source": {"type": "user", "userId": user_id},
            "replyToken": uuid.uuid4().hex,
            "webhookEventId": uuid.uuid4().hex.upper()
        }

    def sign_events(
        self,
        events: List[Dict[str, Any]],
        destination: str = "Uffffffffffffffffffffffffffffffff"
    ) -> tuple[bytes, str]:
        """
        Serialize events into a webhook body and sign it.

        Returns:
            Tuple of (payload_bytes, signature_header)
            - payload_bytes: JSON payload as bytes
            - signature_header: value for the X-Line-Signature header
        """
        payload = {"destination": destination, "events": events}
        payload_bytes = json.dumps(payload, ensure_ascii=False, separators=(',', ':')).encode('utf-8')
        return payload_bytes, self.sign(payload_bytes)

    def sign(self, payload_bytes: bytes) -> str:
        """Compute the X-Line-Signature value for a raw body."""
        digest = hmac.new(
            self.channel_secret.encode('utf-8'),
            payload_bytes,
            hashlib.sha256
        ).digest()
        return base64.b64encode(digest).decode('ascii')

    def _message_event(
        self,
        message: Dict[str, Any],
        user_id: str,
        reply_token: Optional[str] = None,
        timestamp_ms: Optional[int] = None
    ) -> Dict[str, Any]:
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        if reply_token is None:
            reply_token = uuid.uuid4().hex

        return {
            "type": "message",
            "mode": "active",
            "timestamp": timestamp_ms,
            "source": {"type": "user", "userId": user_id},
            "replyToken": reply_token,
            "webhookEventId": uuid.uuid4().hex.upper(),
            "message": message
        }
