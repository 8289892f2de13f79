"""
Tests for the LINE webhook endpoint.

Tests signature validation, payload checks, and reply routing through the
keyword table, the completion fallback and the apology message.
"""
import base64
import hashlib
import hmac
import json
import pytest
from unittest.mock import patch
from app.api.webhooks import _validate_webhook_signature
from app.config import settings, DEV_SECRET_PLACEHOLDER
from app.services.event_dispatcher import EventDispatcher
from tests.conftest import TEST_CHANNEL_SECRET, SAMPLE_SETTINGS_DOCUMENT


def _post_events(client, simulator, events):
    payload_bytes, signature = simulator.sign_events(events)
    return client.post(
        "/webhooks/line",
        content=payload_bytes,
        headers={"X-Line-Signature": signature, "Content-Type": "application/json"}
    )


def _post_signed_body(client, simulator, payload_bytes):
    return client.post(
        "/webhooks/line",
        content=payload_bytes,
        headers={"X-Line-Signature": simulator.sign(payload_bytes)}
    )


class TestSignatureValidation:
    """Unit tests for _validate_webhook_signature()"""

    def test_valid_signature(self):
        payload = b'{"events":[]}'
        signature = base64.b64encode(
            hmac.new(TEST_CHANNEL_SECRET.encode(), payload, hashlib.sha256).digest()
        ).decode()

        assert _validate_webhook_signature(payload, signature) is True

    def test_wrong_signature(self, simulator):
        assert _validate_webhook_signature(b'{"events":[]}', simulator.sign(b'{"events":[1]}')) is False

    def test_missing_signature(self):
        assert _validate_webhook_signature(b'{"events":[]}', "") is False

    def test_non_ascii_signature_header(self):
        assert _validate_webhook_signature(b'{"events":[]}', "ลายเซ็น") is False

    def test_unconfigured_secret_rejects_everything(self, monkeypatch, simulator):
        monkeypatch.setattr(settings, "line_channel_secret", "")
        payload = b'{"events":[]}'
        assert _validate_webhook_signature(payload, simulator.sign(payload)) is False

    def test_dev_placeholder_rejected_in_production(self, monkeypatch):
        from app.utils.webhook_simulator import WebhookSimulator

        monkeypatch.setattr(settings, "line_channel_secret", DEV_SECRET_PLACEHOLDER)
        monkeypatch.setattr(settings, "environment", "production")
        payload = b'{"events":[]}'
        signature = WebhookSimulator(DEV_SECRET_PLACEHOLDER).sign(payload)

        assert _validate_webhook_signature(payload, signature) is False


class TestWebhookRejections:
    """Requests that must not produce any reply"""

    def test_invalid_signature_returns_401_and_sends_nothing(self, client, outbound, simulator):
        payload_bytes, _ = simulator.sign_events([simulator.text_event("menu")])

        response = client.post(
            "/webhooks/line",
            content=payload_bytes,
            headers={"X-Line-Signature": "bm90IGEgcmVhbCBzaWduYXR1cmU="}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid signature"
        assert outbound.requests == []

    def test_missing_signature_returns_401(self, client, outbound, simulator):
        payload_bytes, _ = simulator.sign_events([simulator.text_event("menu")])

        response = client.post("/webhooks/line", content=payload_bytes)

        assert response.status_code == 401
        assert outbound.requests == []

    def test_tampered_body_returns_401(self, client, outbound, simulator):
        payload_bytes, signature = simulator.sign_events([simulator.text_event("menu")])
        tampered = payload_bytes.replace(b"menu", b"open")

        response = client.post(
            "/webhooks/line",
            content=tampered,
            headers={"X-Line-Signature": signature}
        )

        assert response.status_code == 401
        assert outbound.requests == []

    def test_invalid_json_returns_400(self, client, outbound, simulator):
        response = _post_signed_body(client, simulator, b"{not json")

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid JSON"
        assert outbound.requests == []

    @pytest.mark.parametrize("body", [
        {"destination": "U1"},
        {"events": {"type": "message"}},
        [1, 2, 3],
    ])
    def test_missing_events_list_returns_400(self, client, outbound, simulator, body):
        response = _post_signed_body(client, simulator, json.dumps(body).encode())

        assert response.status_code == 400
        assert outbound.requests == []


class TestWebhookReplies:
    """End-to-end reply routing with fake LINE and completion APIs"""

    def test_empty_batch(self, client, outbound, simulator):
        response = _post_events(client, simulator, [])

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "results": []}
        assert outbound.requests == []

    def test_keyword_match_sends_carousel(self, client, outbound, simulator):
        event = simulator.text_event("มีโปรอะไรบ้าง", reply_token="reply-token-1")

        response = _post_events(client, simulator, [event])

        assert response.status_code == 200
        result = response.json()["results"][0]
        assert result["source"] == "keyword"
        assert result["delivered"] is True

        assert len(outbound.line_replies) == 1
        reply = outbound.line_replies[0]
        assert reply["replyToken"] == "reply-token-1"
        flex = reply["messages"][0]
        assert flex["type"] == "flex"
        assert flex["contents"]["type"] == "carousel"
        assert flex["contents"]["contents"][0]["body"]["contents"][0]["text"] == "ลด 50%"
        assert outbound.completion_requests == []

    def test_reply_uses_channel_access_token(self, client, outbound, simulator):
        _post_events(client, simulator, [simulator.text_event("menu")])

        request = outbound.requests[0]
        assert request.headers["Authorization"] == "Bearer test_access_token"

    def test_no_match_without_llm_replies_with_prompt(self, client, outbound, simulator):
        response = _post_events(client, simulator, [simulator.text_event("สวัสดีครับ")])

        assert response.json()["results"][0]["source"] == "prompt"
        assert outbound.line_replies[0]["messages"] == [
            {"type": "text", "text": SAMPLE_SETTINGS_DOCUMENT["prompt"]}
        ]
        assert outbound.completion_requests == []

    def test_no_match_with_llm_replies_with_completion(self, client, outbound, simulator, monkeypatch):
        monkeypatch.setattr(settings, "llm_api_key", "sk-test-key-0000")

        response = _post_events(client, simulator, [simulator.text_event("ร้านอยู่ที่ไหน")])

        assert response.json()["results"][0]["source"] == "completion"
        assert outbound.completion_requests[0]["messages"] == [
            {"role": "system", "content": SAMPLE_SETTINGS_DOCUMENT["prompt"]},
            {"role": "user", "content": "ร้านอยู่ที่ไหน"}
        ]
        assert outbound.line_replies[0]["messages"] == [{"type": "text", "text": "คำตอบจากโมเดล"}]

    def test_completion_failure_replies_with_apology(self, client, outbound, simulator, monkeypatch):
        monkeypatch.setattr(settings, "llm_api_key", "sk-test-key-0000")
        outbound.completion_status = 503

        response = _post_events(client, simulator, [simulator.text_event("ร้านอยู่ที่ไหน")])

        assert response.status_code == 200
        assert response.json()["results"][0]["source"] == "apology"
        assert outbound.line_replies[0]["messages"] == [{"type": "text", "text": settings.apology_text}]

    def test_delivery_failure_is_reported_not_500(self, client, outbound, simulator):
        outbound.line_status = 400

        response = _post_events(client, simulator, [simulator.text_event("menu")])

        assert response.status_code == 200
        result = response.json()["results"][0]
        assert result["delivered"] is False
        assert "Invalid reply token" in result["error"]
        # Reply tokens are single-use
        assert len(outbound.line_replies) == 1

    def test_mixed_batch(self, client, outbound, simulator):
        events = [
            simulator.text_event("menu", reply_token="t-menu"),
            simulator.sticker_event(),
            simulator.follow_event(),
            simulator.text_event("open?", reply_token="t-open"),
        ]

        response = _post_events(client, simulator, events)

        results = response.json()["results"]
        assert [r["source"] if r else None for r in results] == ["keyword", None, None, "keyword"]

        replies = {reply["replyToken"]: reply["messages"] for reply in outbound.line_replies}
        assert set(replies) == {"t-menu", "t-open"}
        assert len(replies["t-menu"]) == 2
        assert replies["t-menu"][0]["type"] == "image"
        assert replies["t-open"] == [{"type": "text", "text": "เปิดทุกวัน 10:00 - 20:00 น."}]

    def test_saved_settings_apply_to_next_webhook(self, client, outbound, simulator):
        client.post("/admin/settings", json={
            "keywords": [{"keywords": ["hours"], "kind": "text", "text": "9-5"}]
        })

        _post_events(client, simulator, [simulator.text_event("what are your hours")])

        assert outbound.line_replies[0]["messages"] == [{"type": "text", "text": "9-5"}]

    def test_unexpected_dispatch_error_returns_500(self, client, outbound, simulator):
        with patch.object(EventDispatcher, "dispatch", side_effect=RuntimeError("boom")):
            response = _post_events(client, simulator, [simulator.text_event("menu")])

        assert response.status_code == 500
        assert response.json()["detail"] == "Server error"
