"""
Placeholder substitution for flex message templates.

Templates are parsed JSON values (dicts, lists, strings, numbers, booleans,
None) with `{{name}}` tokens inside string values. Rendering walks the tree
and only ever touches string leaves, so JSON structure and dictionary keys
are never rewritten.
"""
import re
from typing import Any, Mapping, Set

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_.-]+)\s*\}\}")


def render(template: Any, substitutions: Mapping[str, str]) -> Any:
    """
    Return a filled copy of a template.

    Args:
        template: Parsed JSON template (usually a flex bubble dict)
        substitutions: Placeholder name -> replacement value

    Returns:
        A new document; the input template is never mutated.
        Unknown placeholders are replaced with an empty string.
    """
    if isinstance(template, str):
        return _fill(template, substitutions)
    if isinstance(template, dict):
        return {key: render(value, substitutions) for key, value in template.items()}
    if isinstance(template, list):
        return [render(item, substitutions) for item in template]
    # Numbers, booleans and None are immutable
    return template


def find_placeholders(template: Any) -> Set[str]:
    """Collect every placeholder name used anywhere in a template."""
    if isinstance(template, str):
        return set(PLACEHOLDER_PATTERN.findall(template))
    names: Set[str] = set()
    if isinstance(template, dict):
        for value in template.values():
            names |= find_placeholders(value)
    elif isinstance(template, list):
        for item in template:
            names |= find_placeholders(item)
    return names


def _fill(text: str, substitutions: Mapping[str, str]) -> str:
    def replace(match: re.Match) -> str:
        value = substitutions.get(match.group(1))
        return "" if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(replace, text)
