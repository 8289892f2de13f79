"""
Tests for the LINE reply client.
"""
import json
import httpx
import pytest
from app.clients.line_client import LineClient, LineAPIError, MAX_MESSAGES_PER_REPLY
from app.config import settings

TEXT = [{"type": "text", "text": "hello"}]


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestReplyMessage:
    """Tests for LineClient.reply_message()"""

    @pytest.mark.asyncio
    async def test_successful_reply(self):
        captured = []

        def handler(request):
            captured.append(request)
            return httpx.Response(200, json={}, headers={"x-line-request-id": "abc-123"})

        async with _client(handler) as http_client:
            response = await LineClient(http_client, settings).reply_message("token-1", TEXT)

        assert response.success is True
        assert response.sent_messages == 1
        assert response.request_id == "abc-123"

        request = captured[0]
        assert str(request.url) == "https://api.line.test/v2/bot/message/reply"
        assert request.headers["Authorization"] == "Bearer test_access_token"
        assert json.loads(request.content) == {"replyToken": "token-1", "messages": TEXT}

    @pytest.mark.asyncio
    async def test_api_error_raises_with_message(self):
        def handler(request):
            return httpx.Response(400, json={"message": "Invalid reply token"})

        async with _client(handler) as http_client:
            with pytest.raises(LineAPIError) as exc_info:
                await LineClient(http_client, settings).reply_message("token-1", TEXT)

        assert exc_info.value.status_code == 400
        assert "Invalid reply token" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        def handler(request):
            return httpx.Response(502, text="<html>bad gateway</html>")

        async with _client(handler) as http_client:
            with pytest.raises(LineAPIError) as exc_info:
                await LineClient(http_client, settings).reply_message("token-1", TEXT)

        assert exc_info.value.status_code == 502
        assert exc_info.value.response_body == {}

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        async with _client(handler) as http_client:
            with pytest.raises(LineAPIError, match="Request error"):
                await LineClient(http_client, settings).reply_message("token-1", TEXT)

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out")

        async with _client(handler) as http_client:
            with pytest.raises(LineAPIError, match="timeout"):
                await LineClient(http_client, settings).reply_message("token-1", TEXT)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply_token,messages", [
        ("", TEXT),
        ("   ", TEXT),
        ("token-1", []),
        ("token-1", TEXT * (MAX_MESSAGES_PER_REPLY + 1)),
    ])
    async def test_invalid_input_is_rejected_before_sending(self, reply_token, messages):
        captured = []

        def handler(request):
            captured.append(request)
            return httpx.Response(200)

        async with _client(handler) as http_client:
            with pytest.raises(ValueError):
                await LineClient(http_client, settings).reply_message(reply_token, messages)

        assert captured == []
