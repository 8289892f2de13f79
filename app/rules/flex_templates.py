"""
Built-in flex bubble templates and generated card styles.

Operators can reference these by name from keyword rules without defining
anything under `flex_templates`. Templates defined in the settings file with
the same name take precedence.

Placeholders:
    {{title}} - headline text of the card
    {{image}} - hero image URL
"""

import copy
from typing import Any, Dict

DEFAULT_TEMPLATE_NAME = "default"

# Fields every card rendered from a built-in template must carry
BUILTIN_REQUIRED_FIELDS = ("title", "image")


BUILTIN_TEMPLATES = {
    "default": {
        "type": "bubble",
        "hero": {
            "type": "image",
            "url": "{{image}}",
            "size": "full",
            "aspectRatio": "20:13",
            "aspectMode": "cover"
        },
        "body": {
            "type": "box",
            "layout": "vertical",
            "contents": [
                {"type": "text", "text": "{{title}}", "weight": "bold", "size": "md", "wrap": True}
            ]
        }
    },
    "flex1": {
        "type": "bubble",
        "hero": {
            "type": "image",
            "url": "{{image}}",
            "size": "full",
            "aspectRatio": "20:13",
            "aspectMode": "cover"
        },
        "body": {
            "type": "box",
            "layout": "vertical",
            "contents": [
                {"type": "text", "text": "{{title}}", "weight": "bold", "size": "lg", "color": "#ff5555", "wrap": True}
            ]
        }
    },
    "flex2": {
        "type": "bubble",
        "header": {
            "type": "box",
            "layout": "vertical",
            "contents": [
                {"type": "text", "text": "🎉 โปรโมชั่นใหม่!", "weight": "bold", "size": "lg", "color": "#00b14f"}
            ]
        },
        "hero": {
            "type": "image",
            "url": "{{image}}",
            "size": "full",
            "aspectRatio": "16:9",
            "aspectMode": "cover"
        },
        "body": {
            "type": "box",
            "layout": "vertical",
            "spacing": "md",
            "contents": [
                {"type": "text", "text": "{{title}}", "wrap": True}
            ]
        }
    },
}


# Generated cards: title text plus any number of images. The first image is
# the hero; the rest are shown as thumbnails under the title.
CARD_STYLES = {
    "default": {
        "hero_ratio": "20:13",
        "title": {"weight": "bold", "size": "md"},
        "thumbnail": {"size": "sm", "margin": "md"},
        "body": {},
    },
    "flex1": {
        "hero_ratio": "20:13",
        "title": {"weight": "bold", "size": "lg", "color": "#ff5555"},
        "thumbnail": {"size": "xs", "margin": "sm"},
        "body": {},
    },
    "flex2": {
        "header": {
            "type": "box",
            "layout": "vertical",
            "contents": [
                {"type": "text", "text": "🎉 โปรโมชั่นใหม่!", "weight": "bold", "size": "lg", "color": "#00b14f"}
            ]
        },
        "hero_ratio": "16:9",
        "title": {},
        "thumbnail": {"size": "sm", "margin": "md"},
        "body": {"spacing": "md"},
    },
}


def build_card(style: str, title: str, images) -> Dict[str, Any]:
    """
    Build one bubble in a named card style.

    The hero is left out when there are no images.
    """
    options = CARD_STYLES.get(style, CARD_STYLES[DEFAULT_TEMPLATE_NAME])

    bubble: Dict[str, Any] = {"type": "bubble"}
    if "header" in options:
        bubble["header"] = copy.deepcopy(options["header"])
    if images:
        bubble["hero"] = {
            "type": "image",
            "url": images[0],
            "size": "full",
            "aspectRatio": options["hero_ratio"],
            "aspectMode": "cover"
        }

    contents = [{"type": "text", "text": title, **options["title"], "wrap": True}]
    contents.extend(
        {"type": "image", "url": url, "aspectMode": "cover", **options["thumbnail"]}
        for url in images[1:]
    )
    bubble["body"] = {"type": "box", "layout": "vertical", **options["body"], "contents": contents}
    return bubble
