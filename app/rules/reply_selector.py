"""
Keyword reply selection.

Decides what to answer for one inbound text message: canned content from the
first matching keyword rule, or a hand-off to the completion API when no rule
matches. Builds LINE message objects but never sends them.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from app.domain.reply_settings import EMPTY_CARD_TITLE, KeywordRule, ReplySettings
from app.rules.flex_templates import build_card
from app.rules.template_renderer import render

logger = logging.getLogger(__name__)

DEFAULT_ALT_TEXT = "มีข้อความใหม่"

# LINE rejects flex messages whose altText is longer than this
MAX_ALT_TEXT_LENGTH = 400

# LINE rejects text messages longer than this
MAX_TEXT_LENGTH = 5000


class ReplySelectionError(Exception):
    """Raised when a matched rule cannot produce any message"""


@dataclass
class ReplySelection:
    """
    Outcome of reply selection for one message.

    Either `messages` holds the canned reply, or `use_completion` is set and
    `prompt` carries the fallback prompt for the completion call.
    """
    messages: List[Dict[str, Any]] = field(default_factory=list)
    use_completion: bool = False
    prompt: Optional[str] = None
    rule: Optional[KeywordRule] = None


def find_matching_rule(text: str, settings: ReplySettings) -> Optional[KeywordRule]:
    """
    Find the first rule (in configured order) with a trigger contained in text.

    Matching is case-insensitive substring containment.
    """
    folded = text.casefold()
    for rule in settings.rules:
        if rule.matches(folded):
            return rule
    return None


def select_reply(text: str, settings: ReplySettings) -> ReplySelection:
    """
    Select the reply for an inbound text message.

    Args:
        text: Inbound message text (any case)
        settings: Settings snapshot captured for this request

    Returns:
        ReplySelection with canned messages, or with use_completion=True

    Raises:
        ReplySelectionError: The matched rule produced no usable message
    """
    rule = find_matching_rule(text, settings)

    if rule is None:
        logger.info("No keyword rule matched, using completion fallback")
        return ReplySelection(use_completion=True, prompt=settings.prompt)

    logger.info(f"🎯 Keyword rule matched: {list(rule.keywords)} ({rule.kind})")

    if rule.kind == "text":
        messages = [build_text_message(rule.text)]
    elif rule.kind == "image":
        messages = [build_image_message(url) for url in rule.images]
    elif rule.kind == "card":
        messages = [build_card_message(rule)]
    else:
        messages = [build_template_message(rule, settings)]

    return ReplySelection(messages=messages, rule=rule)


def build_text_message(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text[:MAX_TEXT_LENGTH]}


def build_image_message(url: str) -> Dict[str, Any]:
    return {"type": "image", "originalContentUrl": url, "previewImageUrl": url}


def build_card_message(rule: KeywordRule) -> Dict[str, Any]:
    """One generated bubble from the rule text and images."""
    bubble = build_card(rule.template, rule.text or EMPTY_CARD_TITLE, rule.images)
    return _flex_message(rule.text or DEFAULT_ALT_TEXT, bubble)


def build_template_message(rule: KeywordRule, settings: ReplySettings) -> Dict[str, Any]:
    """
    Render a template rule into one flex message.

    One usable response entry gives a single bubble; several give a carousel
    with one bubble per entry. Invalid entries are skipped one by one.
    """
    template = settings.get_template(rule.template)
    if template is None:
        raise ReplySelectionError(f"Template '{rule.template}' not found")

    bubbles = []
    for index, data in enumerate(rule.responses):
        problem = _check_response_data(data, rule.required_fields)
        if problem:
            logger.warning(
                f"⚠️ Skipping response {index} of rule {list(rule.keywords)}: {problem}"
            )
            continue
        bubbles.append(render(template, data))

    if not bubbles:
        raise ReplySelectionError(
            f"Rule {list(rule.keywords)} has no usable response entries"
        )

    if len(bubbles) == 1:
        contents = bubbles[0]
    else:
        contents = {"type": "carousel", "contents": bubbles}

    return _flex_message(rule.alt_text or rule.text or DEFAULT_ALT_TEXT, contents)


def _flex_message(alt_text: str, contents: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "flex",
        "altText": alt_text[:MAX_ALT_TEXT_LENGTH],
        "contents": contents
    }


def _check_response_data(data: Any, required_fields) -> Optional[str]:
    """Return a description of what is wrong with an entry, or None if usable."""
    if not isinstance(data, Mapping):
        return "entry is not an object"
    for key, value in data.items():
        if not isinstance(value, str):
            return f"field '{key}' is not a string"
    for name in required_fields:
        if not data.get(name, "").strip():
            return f"missing required field '{name}'"
    return None
