"""
Pytest configuration and shared fixtures.
"""
import json
import pytest
import httpx
from fastapi.testclient import TestClient
from app.main import app
from app.config import settings
from app.api.webhooks import get_http_client
from app.services.settings_store import SettingsStore, get_settings_store
from app.utils.webhook_simulator import WebhookSimulator


TEST_CHANNEL_SECRET = "test_channel_secret"

PROMO_TEMPLATE = {
    "type": "bubble",
    "hero": {"type": "image", "url": "{{image}}", "size": "full"},
    "body": {
        "type": "box",
        "layout": "vertical",
        "contents": [
            {"type": "text", "text": "{{title}}", "weight": "bold"},
            {"type": "text", "text": "{{detail}}", "size": "sm", "wrap": True}
        ]
    }
}

SAMPLE_SETTINGS_DOCUMENT = {
    "prompt": "คุณคือผู้ช่วยร้านค้า ตอบสุภาพ",
    "keywords": [
        {
            "keywords": ["โปร", "Promotion"],
            "kind": "template",
            "template": "promo",
            "text": "โปรโมชั่นประจำเดือน",
            "required_fields": ["title"],
            "responses": [
                {"data": {"title": "ลด 50%", "image": "https://cdn.example.com/p1.jpg", "detail": "ทุกเมนู"}},
                {"data": {"title": "1 แถม 1", "image": "https://cdn.example.com/p2.jpg", "detail": "เฉพาะวันศุกร์"}}
            ]
        },
        {
            "keywords": ["เมนู", "menu"],
            "kind": "image",
            "images": ["https://cdn.example.com/menu1.jpg", "https://cdn.example.com/menu2.jpg"]
        },
        {
            "keywords": ["เวลาเปิด", "open"],
            "kind": "text",
            "text": "เปิดทุกวัน 10:00 - 20:00 น."
        }
    ],
    "flex_templates": {
        "promo": PROMO_TEMPLATE
    }
}


class OutboundRecorder:
    """
    Fake LINE and completion APIs behind an httpx.MockTransport.

    Records every outbound request so tests can assert on what was sent.
    """

    def __init__(self):
        self.requests = []
        self.line_status = 200
        self.completion_status = 200
        self.completion_reply = "คำตอบจากโมเดล"

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/message/reply"):
            if self.line_status != 200:
                return httpx.Response(self.line_status, json={"message": "Invalid reply token"})
            return httpx.Response(200, json={}, headers={"x-line-request-id": "req-0001"})
        if request.url.path.endswith("/chat/completions"):
            if self.completion_status != 200:
                return httpx.Response(self.completion_status, text="upstream error")
            return httpx.Response(
                200,
                json={"choices": [{"message": {"role": "assistant", "content": self.completion_reply}}]}
            )
        return httpx.Response(404)

    @property
    def line_replies(self):
        return [
            json.loads(request.content)
            for request in self.requests
            if request.url.path.endswith("/message/reply")
        ]

    @property
    def completion_requests(self):
        return [
            json.loads(request.content)
            for request in self.requests
            if request.url.path.endswith("/chat/completions")
        ]


@pytest.fixture(autouse=True)
def test_config(monkeypatch, tmp_path):
    """Known credentials and paths for every test; no real API is reachable."""
    monkeypatch.setattr(settings, "environment", "development")
    monkeypatch.setattr(settings, "line_channel_secret", TEST_CHANNEL_SECRET)
    monkeypatch.setattr(settings, "line_channel_access_token", "test_access_token")
    monkeypatch.setattr(settings, "line_api_base_url", "https://api.line.test/v2/bot")
    monkeypatch.setattr(settings, "llm_api_key", "")
    monkeypatch.setattr(settings, "llm_api_base_url", "https://llm.test/v1")
    monkeypatch.setattr(settings, "llm_model", "test-model")
    monkeypatch.setattr(settings, "llm_timeout", 2.0)
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    return settings


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "setting.json"
    path.write_text(json.dumps(SAMPLE_SETTINGS_DOCUMENT, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def store(settings_file):
    store = SettingsStore(settings_file)
    store.load()
    return store


@pytest.fixture
def outbound():
    return OutboundRecorder()


@pytest.fixture
def client(store, outbound):
    """TestClient wired to the temp settings store and fake outbound APIs."""
    async def _mock_http_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(outbound.handler)) as http_client:
            yield http_client

    app.dependency_overrides[get_settings_store] = lambda: store
    app.dependency_overrides[get_http_client] = _mock_http_client
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def simulator():
    return WebhookSimulator(channel_secret=TEST_CHANNEL_SECRET)
