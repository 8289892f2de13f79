"""
Inbound event dispatcher.

Runs reply handling for every text-message event of one webhook batch
concurrently. Each event goes through select -> render -> (complete) ->
deliver in order; events don't wait on or affect each other, and a failure
in one event only turns that event's reply into the apology message.
"""
import asyncio
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

from app.clients.completion_client import CompletionClient, CompletionError
from app.clients.line_client import LineClient, LineAPIError
from app.domain.reply_settings import DEFAULT_PROMPT, ReplySettings
from app.rules.reply_selector import (
    ReplySelectionError,
    build_text_message,
    select_reply,
)

logger = logging.getLogger(__name__)

# Where the reply content came from
SOURCE_KEYWORD = "keyword"
SOURCE_COMPLETION = "completion"
SOURCE_PROMPT = "prompt"
SOURCE_APOLOGY = "apology"


@dataclass
class EventResult:
    """Outcome of handling one inbound text event"""
    source: str
    messages: List[Dict[str, Any]] = field(default_factory=list)
    delivered: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def extract_text_event(event: Any) -> Optional[Tuple[str, str]]:
    """
    Return (reply_token, text) for a text message event, None otherwise.

    Follow, postback, sticker/image messages and malformed entries are
    ignored.
    """
    if not isinstance(event, dict) or event.get("type") != "message":
        return None

    message = event.get("message")
    if not isinstance(message, dict) or message.get("type") != "text":
        return None

    text = message.get("text")
    reply_token = event.get("replyToken")
    if not isinstance(text, str) or not isinstance(reply_token, str) or not reply_token:
        logger.warning("Text message event without text or reply token, skipping")
        return None

    return reply_token, text


class EventDispatcher:
    """
    Handles a webhook batch.

    Usage:
        dispatcher = EventDispatcher(line_client, completion_client, apology_text)
        results = await dispatcher.dispatch(body["events"], store.snapshot)
    """

    def __init__(
        self,
        line_client: LineClient,
        completion_client: CompletionClient,
        apology_text: str
    ):
        self.line_client = line_client
        self.completion_client = completion_client
        self.apology_text = apology_text

    async def dispatch(
        self,
        events: List[Any],
        settings: ReplySettings
    ) -> List[Optional[EventResult]]:
        """
        Handle all events concurrently and return one result per event.

        Non-text events yield None. Per-event errors are handled inside
        handle_event; an error escaping here fails the whole batch.
        """
        return list(await asyncio.gather(
            *(self.handle_event(event, settings) for event in events)
        ))

    async def handle_event(self, event: Any, settings: ReplySettings) -> Optional[EventResult]:
        extracted = extract_text_event(event)
        if extracted is None:
            logger.info("ℹ️ Skipped non-text message or unsupported event")
            return None

        reply_token, text = extracted
        messages, source = await self._build_reply(text, settings)
        result = EventResult(source=source, messages=messages)

        try:
            await self.line_client.reply_message(reply_token, messages)
            result.delivered = True
        except (LineAPIError, ValueError) as e:
            # Reply tokens are single-use, nothing to retry
            logger.error(f"❌ Failed to deliver reply ({source}): {e}")
            result.error = str(e)

        return result

    async def _build_reply(
        self,
        text: str,
        settings: ReplySettings
    ) -> Tuple[List[Dict[str, Any]], str]:
        try:
            selection = select_reply(text, settings)

            if not selection.use_completion:
                return selection.messages, SOURCE_KEYWORD

            if not self.completion_client.enabled:
                return [build_text_message(selection.prompt or DEFAULT_PROMPT)], SOURCE_PROMPT

            answer = await self.completion_client.complete(selection.prompt, text)
            return [build_text_message(answer)], SOURCE_COMPLETION

        except (ReplySelectionError, CompletionError) as e:
            logger.warning(f"⚠️ Falling back to apology message: {e}")
        except Exception as e:
            logger.error(f"❌ Unexpected error building reply: {e}", exc_info=True)

        return [build_text_message(self.apology_text)], SOURCE_APOLOGY
