"""
LINE Messaging API client for sending replies.

Replies use the one-shot reply token delivered with each webhook event.
A reply token can only be used once and expires shortly after the event,
so failed deliveries are logged and never retried.
"""
import httpx
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from app.config import Settings

logger = logging.getLogger(__name__)

# LINE accepts at most 5 message objects per reply
MAX_MESSAGES_PER_REPLY = 5


@dataclass
class SendReplyResponse:
    """Response from the LINE reply endpoint"""
    success: bool
    sent_messages: int
    request_id: Optional[str] = None
    error_message: Optional[str] = None


class LineAPIError(Exception):
    """Exception raised when LINE API request fails"""
    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Optional[dict] = None):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(self.message)


class LineClient:
    """
    Client for the LINE Messaging API.

    Sends text, image and flex messages in reply to webhook events using
    the channel access token from settings.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        logger_instance: logging.Logger = logger
    ):
        """
        Initialize LINE API client.

        Args:
            http_client: httpx AsyncClient for making HTTP requests
            settings: Application settings containing the channel access token
            logger_instance: Logger for tracking API calls
        """
        self._http_client = http_client
        self._settings = settings
        self._logger = logger_instance
        self._api_base_url = settings.line_api_base_url

    async def reply_message(
        self,
        reply_token: str,
        messages: List[Dict[str, Any]]
    ) -> SendReplyResponse:
        """
        Reply to a webhook event.

        Args:
            reply_token: Reply token from the webhook event
            messages: LINE message objects (text, image, flex)

        Returns:
            SendReplyResponse with the LINE request id

        Raises:
            ValueError: If reply_token or messages are invalid
            LineAPIError: If the API request fails

        Example:
            response = await client.reply_message(
                reply_token="nHuyWiB7yP5Zw52FIkcQobQuGDXCTA",
                messages=[{"type": "text", "text": "Thanks for your message!"}]
            )
        """
        if not reply_token or not reply_token.strip():
            raise ValueError("reply_token cannot be empty")

        if not messages:
            raise ValueError("messages cannot be empty")

        if len(messages) > MAX_MESSAGES_PER_REPLY:
            raise ValueError(
                f"Too many messages for one reply (got {len(messages)}, max {MAX_MESSAGES_PER_REPLY})"
            )

        url = f"{self._api_base_url}/message/reply"
        payload = {
            "replyToken": reply_token,
            "messages": messages
        }

        self._logger.info(f"Sending reply with {len(messages)} message(s)")

        try:
            response = await self._http_client.post(
                url,
                headers={"Authorization": f"Bearer {self._settings.line_channel_access_token}"},
                json=payload,
                timeout=self._settings.line_reply_timeout
            )

            if response.status_code == 200:
                request_id = response.headers.get("x-line-request-id")
                self._logger.info(f"✅ Reply sent successfully - request_id: {request_id}")
                return SendReplyResponse(
                    success=True,
                    sent_messages=len(messages),
                    request_id=request_id
                )

            error_data = _safe_json(response)
            error_message = error_data.get("message", "Unknown error")

            self._logger.error(
                f"❌ LINE API error - "
                f"status: {response.status_code}, "
                f"message: {error_message}"
            )

            raise LineAPIError(
                message=f"LINE API error: {error_message}",
                status_code=response.status_code,
                response_body=error_data
            )

        except httpx.TimeoutException as e:
            self._logger.error(f"❌ Request timeout sending reply: {e}")
            raise LineAPIError(message=f"Request timeout: {str(e)}") from e

        except httpx.RequestError as e:
            self._logger.error(f"❌ Request error sending reply: {e}")
            raise LineAPIError(message=f"Request error: {str(e)}") from e


def _safe_json(response: httpx.Response) -> dict:
    try:
        data = response.json() if response.text else {}
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
