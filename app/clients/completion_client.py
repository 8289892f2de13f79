"""
Language-model completion client (OpenAI-compatible chat completions API).

Used for messages that match no keyword rule. Every call runs under an
explicit deadline; a slow or failing API surfaces as CompletionError so the
caller can fall back to its apology message.
"""
import asyncio
import httpx
import logging
from typing import Optional
from app.config import Settings

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """Exception raised when the completion API call fails or times out"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class CompletionClient:
    """
    Client for a hosted chat-completion API.

    The fallback prompt is sent as the system message and the user's text as
    the user message. When no API key is configured the client is disabled.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        logger_instance: logging.Logger = logger
    ):
        self._http_client = http_client
        self._settings = settings
        self._logger = logger_instance
        self._api_base_url = settings.llm_api_base_url

    @property
    def enabled(self) -> bool:
        return bool(self._settings.llm_api_key)

    async def complete(self, prompt: str, user_text: str) -> str:
        """
        Generate a reply for user_text.

        Args:
            prompt: Fallback/system prompt from the reply settings
            user_text: The user's original message

        Returns:
            The assistant's reply text

        Raises:
            CompletionError: API error, empty answer, or deadline exceeded
        """
        if not self.enabled:
            raise CompletionError("Completion API key is not configured")

        try:
            return await asyncio.wait_for(
                self._request_completion(prompt, user_text),
                timeout=self._settings.llm_timeout
            )
        except asyncio.TimeoutError as e:
            self._logger.warning(f"⚠️ Completion call exceeded {self._settings.llm_timeout}s deadline")
            raise CompletionError(
                f"Completion deadline of {self._settings.llm_timeout}s exceeded"
            ) from e

    async def _request_completion(self, prompt: str, user_text: str) -> str:
        url = f"{self._api_base_url}/chat/completions"
        payload = {
            "model": self._settings.llm_model,
            "messages": [
                {"role": "system", "content": prompt},
                {"role": "user", "content": user_text}
            ]
        }

        self._logger.info(f"Requesting completion from model {self._settings.llm_model}")

        try:
            response = await self._http_client.post(
                url,
                headers={"Authorization": f"Bearer {self._settings.llm_api_key}"},
                json=payload,
                timeout=self._settings.llm_timeout
            )
        except httpx.RequestError as e:
            self._logger.error(f"❌ Request error calling completion API: {e}")
            raise CompletionError(f"Request error: {str(e)}") from e

        if response.status_code != 200:
            detail = (response.text or "").strip()[:500]
            self._logger.error(
                f"❌ Completion API error - status: {response.status_code}, detail: {detail}"
            )
            raise CompletionError(
                f"Completion API error {response.status_code}",
                status_code=response.status_code
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CompletionError("Completion response missing choices") from e

        if not isinstance(content, str) or not content.strip():
            raise CompletionError("Completion response did not include assistant content")

        self._logger.info("✅ Completion received")
        return content.strip()
