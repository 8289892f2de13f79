"""
Reply settings - the keyword table and fallback prompt edited on the admin page.

A ReplySettings instance is an immutable snapshot. Request handlers capture
one snapshot per webhook batch; the admin save path builds a new snapshot and
swaps the reference, it never edits one in place.

Persisted document shape:

    {
        "prompt": "fallback prompt",
        "keywords": [ {rule}, ... ],
        "flex_templates": { "name": {flex bubble}, ... }
    }

Each rule carries an explicit `kind`. Older settings files used several
other shapes; they are upgraded by `ReplySettings.from_document`:

    {"keywords": [...], "images": [...]}                       -> image
    {"keywords": [...], "type": "image", "images": [...]}      -> image
    {"keywords": [...], "type": "text", "text": "..."}         -> text
    {"keywords": [...], "type": "flex1", "text": "...", "images": [...]}
                                                              -> card
    {"keywords": [...], "type": "promo", "responses": [{"data": {...}}]}
                                                              -> template
"""
import copy
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.rules.flex_templates import (
    BUILTIN_REQUIRED_FIELDS,
    BUILTIN_TEMPLATES,
    CARD_STYLES,
    DEFAULT_TEMPLATE_NAME,
)
from app.rules.template_renderer import find_placeholders

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "สวัสดีค่ะ มีอะไรให้ช่วยไหมคะ"

# Title of card rules that have no text
EMPTY_CARD_TITLE = "ไม่มีข้อความ"

# LINE accepts at most 5 messages per reply and 12 bubbles per carousel
MAX_REPLY_MESSAGES = 5
MAX_CAROUSEL_BUBBLES = 12

RULE_KINDS = ("text", "image", "template", "card")


class SettingsValidationError(ValueError):
    """Raised when a settings document cannot be turned into a valid snapshot"""


@dataclass(frozen=True)
class KeywordRule:
    """
    One entry of the keyword table.

    `keywords` are stored case-folded. Only the fields relevant to `kind`
    are meaningful:
        text     -> text
        image    -> images
        template -> template, responses, required_fields, alt_text/text
        card     -> template (card style), text, images
    """

    keywords: Tuple[str, ...]
    kind: str
    text: Optional[str] = None
    images: Tuple[str, ...] = ()
    template: Optional[str] = None
    responses: Tuple[Any, ...] = ()
    required_fields: Tuple[str, ...] = ()
    alt_text: Optional[str] = None

    def __post_init__(self):
        if self.kind not in RULE_KINDS:
            raise SettingsValidationError(
                f"Invalid rule kind: {self.kind}. Must be one of {RULE_KINDS}"
            )
        if not self.keywords:
            raise SettingsValidationError("Rule must have at least one trigger keyword")
        if any(not keyword.strip() for keyword in self.keywords):
            # An empty trigger is a substring of every message
            raise SettingsValidationError(
                f"Rule {list(self.keywords)} has an empty trigger keyword"
            )

        if self.kind == "text" and not self.text:
            raise SettingsValidationError(f"Text rule {list(self.keywords)} has no text")

        if self.kind == "image":
            if not self.images:
                raise SettingsValidationError(f"Image rule {list(self.keywords)} has no images")
            if len(self.images) > MAX_REPLY_MESSAGES:
                raise SettingsValidationError(
                    f"Image rule {list(self.keywords)} has {len(self.images)} images, "
                    f"max {MAX_REPLY_MESSAGES} per reply"
                )

        if self.kind == "template":
            if not self.template:
                raise SettingsValidationError(
                    f"Template rule {list(self.keywords)} does not name a template"
                )
            if not self.responses:
                raise SettingsValidationError(
                    f"Template rule {list(self.keywords)} has no responses"
                )
            if len(self.responses) > MAX_CAROUSEL_BUBBLES:
                raise SettingsValidationError(
                    f"Template rule {list(self.keywords)} has {len(self.responses)} responses, "
                    f"max {MAX_CAROUSEL_BUBBLES} cards per carousel"
                )

        if self.kind == "card" and self.template not in CARD_STYLES:
            raise SettingsValidationError(
                f"Card rule {list(self.keywords)} has unknown style '{self.template}'"
            )

    def matches(self, folded_text: str) -> bool:
        """True if any trigger is a substring of the already case-folded text."""
        return any(keyword in folded_text for keyword in self.keywords)

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the canonical persisted rule shape."""
        document: Dict[str, Any] = {"keywords": list(self.keywords), "kind": self.kind}
        if self.text is not None:
            document["text"] = self.text
        if self.kind == "image":
            document["images"] = list(self.images)
        if self.kind == "card":
            document["style"] = self.template
            document["images"] = list(self.images)
        if self.kind == "template":
            document["template"] = self.template
            document["responses"] = [
                {"data": dict(data) if isinstance(data, Mapping) else data}
                for data in self.responses
            ]
            if self.required_fields:
                document["required_fields"] = list(self.required_fields)
            if self.alt_text is not None:
                document["alt_text"] = self.alt_text
        return document


@dataclass(frozen=True)
class ReplySettings:
    """Immutable settings snapshot"""

    prompt: str = DEFAULT_PROMPT
    rules: Tuple[KeywordRule, ...] = ()
    # Operator-defined templates only; built-ins are resolved in get_template()
    templates: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def get_template(self, name: str) -> Optional[Any]:
        """Look up a template by name, operator templates first."""
        if name in self.templates:
            return self.templates[name]
        return BUILTIN_TEMPLATES.get(name)

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the persisted JSON shape (always canonical)."""
        return {
            "prompt": self.prompt,
            "keywords": [rule.to_document() for rule in self.rules],
            "flex_templates": copy.deepcopy(dict(self.templates)),
        }

    @classmethod
    def from_document(cls, document: Any) -> "ReplySettings":
        """
        Validate a settings document and build a snapshot.

        Legacy rule shapes are upgraded; anything that cannot be interpreted
        unambiguously raises SettingsValidationError.
        """
        if not isinstance(document, dict):
            raise SettingsValidationError("Settings document must be a JSON object")

        prompt = document.get("prompt", DEFAULT_PROMPT)
        if prompt is None:
            prompt = DEFAULT_PROMPT
        if not isinstance(prompt, str):
            raise SettingsValidationError("'prompt' must be a string")

        templates = document.get("flex_templates") or {}
        if not isinstance(templates, dict):
            raise SettingsValidationError("'flex_templates' must be an object")
        for name, template in templates.items():
            if not isinstance(template, dict):
                raise SettingsValidationError(f"Template '{name}' must be a JSON object")

        raw_rules = document.get("keywords") or []
        if not isinstance(raw_rules, list):
            raise SettingsValidationError("'keywords' must be a list")

        rules = []
        for index, raw_rule in enumerate(raw_rules):
            try:
                rules.append(_parse_rule(raw_rule, templates))
            except SettingsValidationError as e:
                raise SettingsValidationError(f"keywords[{index}]: {e}") from e

        return cls(
            prompt=prompt,
            rules=tuple(rules),
            templates=MappingProxyType(copy.deepcopy(templates)),
        )


def _parse_rule(raw: Any, templates: Mapping[str, Any]) -> KeywordRule:
    """Turn one persisted rule (canonical or legacy) into a KeywordRule."""
    if not isinstance(raw, dict):
        raise SettingsValidationError("Rule must be a JSON object")

    keywords = _parse_keywords(raw.get("keywords"))

    if "kind" in raw:
        return _parse_canonical_rule(raw, keywords, templates)

    rule_type = raw.get("type")

    # Oldest shape: images only, no type
    if rule_type is None:
        if raw.get("images"):
            return KeywordRule(keywords=keywords, kind="image", images=_parse_urls(raw.get("images")))
        if raw.get("text"):
            return KeywordRule(keywords=keywords, kind="text", text=_parse_text(raw.get("text")))
        raise SettingsValidationError("Rule has no 'kind', 'type', images or text")

    if not isinstance(rule_type, str):
        raise SettingsValidationError("'type' must be a string")

    if rule_type == "image":
        return KeywordRule(keywords=keywords, kind="image", images=_parse_urls(raw.get("images")))

    if rule_type == "text":
        return KeywordRule(keywords=keywords, kind="text", text=_parse_text(raw.get("text")))

    # Named template with explicit card data
    if "responses" in raw:
        if rule_type not in templates and rule_type not in BUILTIN_TEMPLATES:
            raise SettingsValidationError(f"Unknown template '{rule_type}'")
        return KeywordRule(
            keywords=keywords,
            kind="template",
            text=_parse_optional_text(raw.get("text")),
            template=rule_type,
            responses=_parse_responses(raw.get("responses")),
            required_fields=_default_required_fields(rule_type, templates),
            alt_text=_parse_optional_text(raw.get("alt_text")),
        )

    # Generated flex card: title text plus images
    if rule_type.startswith("flex"):
        return _upgrade_legacy_flex(raw, rule_type, keywords)

    raise SettingsValidationError(f"Unrecognized rule type '{rule_type}'")


def _parse_canonical_rule(
    raw: Dict[str, Any],
    keywords: Tuple[str, ...],
    templates: Mapping[str, Any]
) -> KeywordRule:
    kind = raw.get("kind")

    if kind == "text":
        return KeywordRule(keywords=keywords, kind="text", text=_parse_text(raw.get("text")))

    if kind == "image":
        return KeywordRule(keywords=keywords, kind="image", images=_parse_urls(raw.get("images")))

    if kind == "template":
        name = raw.get("template")
        if not isinstance(name, str) or not name:
            raise SettingsValidationError("Template rule must name a template")
        if name not in templates and name not in BUILTIN_TEMPLATES:
            raise SettingsValidationError(f"Unknown template '{name}'")

        required = raw.get("required_fields")
        if required is None:
            required_fields = _default_required_fields(name, templates)
        elif isinstance(required, list) and all(isinstance(f, str) for f in required):
            required_fields = tuple(required)
        else:
            raise SettingsValidationError("'required_fields' must be a list of strings")

        template = templates.get(name, BUILTIN_TEMPLATES.get(name))
        unused = set(required_fields) - find_placeholders(template)
        if unused:
            logger.warning(
                f"Rule {list(keywords)} requires fields not used by template '{name}': {sorted(unused)}"
            )

        return KeywordRule(
            keywords=keywords,
            kind="template",
            text=_parse_optional_text(raw.get("text")),
            template=name,
            responses=_parse_responses(raw.get("responses")),
            required_fields=required_fields,
            alt_text=_parse_optional_text(raw.get("alt_text")),
        )

    if kind == "card":
        style = raw.get("style", DEFAULT_TEMPLATE_NAME)
        if style not in CARD_STYLES:
            raise SettingsValidationError(
                f"Unknown card style '{style}'. Must be one of {tuple(CARD_STYLES)}"
            )
        return KeywordRule(
            keywords=keywords,
            kind="card",
            text=_parse_optional_text(raw.get("text")),
            template=style,
            images=_parse_urls(raw.get("images"), allow_empty=True),
        )

    raise SettingsValidationError(f"Invalid rule kind: {kind}. Must be one of {RULE_KINDS}")


def _upgrade_legacy_flex(raw: Dict[str, Any], rule_type: str, keywords: Tuple[str, ...]) -> KeywordRule:
    """
    Upgrade a `type: flexN` rule that generated its card from text + images.

    The rule keeps producing a single bubble: first image as hero, the rest
    as thumbnails. Unknown flexN names get the default style.
    """
    style = rule_type
    if style not in CARD_STYLES:
        logger.warning(f"Unknown flex type '{rule_type}', using '{DEFAULT_TEMPLATE_NAME}' card style")
        style = DEFAULT_TEMPLATE_NAME

    return KeywordRule(
        keywords=keywords,
        kind="card",
        text=_parse_optional_text(raw.get("text")),
        template=style,
        images=_parse_urls(raw.get("images"), allow_empty=True),
    )


def _default_required_fields(name: str, templates: Mapping[str, Any]) -> Tuple[str, ...]:
    if name not in templates and name in BUILTIN_TEMPLATES:
        return BUILTIN_REQUIRED_FIELDS
    return ()


def _parse_keywords(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list) or not value:
        raise SettingsValidationError("'keywords' must be a non-empty list of strings")
    keywords = []
    for keyword in value:
        if not isinstance(keyword, str):
            raise SettingsValidationError("'keywords' must be a non-empty list of strings")
        # Surrounding spaces are part of the trigger
        keywords.append(keyword.casefold())
    return tuple(keywords)


def _parse_urls(value: Any, allow_empty: bool = False) -> Tuple[str, ...]:
    if value is None and allow_empty:
        return ()
    if not isinstance(value, list) or not all(isinstance(url, str) and url for url in value):
        raise SettingsValidationError("'images' must be a list of URLs")
    if not value and not allow_empty:
        raise SettingsValidationError("'images' must not be empty")
    return tuple(value)


def _parse_text(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise SettingsValidationError("'text' must be a non-empty string")
    return value


def _parse_optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise SettingsValidationError("Text fields must be strings")
    return value


def _parse_responses(value: Any) -> Tuple[Any, ...]:
    """
    Parse `responses: [{"data": {...}}, ...]`.

    Individual entries are kept as-is (even if incomplete) so that a bad
    entry only drops its own card at reply time.
    """
    if not isinstance(value, list) or not value:
        raise SettingsValidationError("'responses' must be a non-empty list")
    responses: List[Any] = []
    for entry in value:
        data = entry.get("data") if isinstance(entry, dict) and "data" in entry else entry
        if isinstance(data, dict):
            responses.append(MappingProxyType(copy.deepcopy(data)))
        else:
            responses.append(data)
    return tuple(responses)
