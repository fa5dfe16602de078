"""Placeholder substitution for message templates.

Supported syntax:
- ``{{key}}``: replaced with ``variables[key]``
- ``{{dynamic_fields.sub}}``: replaced with ``variables["dynamic_fields"][sub]``
- ``{{#if field}}...{{/if}}``: kept only when ``variables[field]`` is truthy (single level, no nesting)

Missing variables render as empty strings. The function is pure.
"""

import re
from collections.abc import Mapping
from typing import Any

DYNAMIC_FIELDS_KEY = "dynamic_fields"

_TOKEN_RE = re.compile(r"{{([\w.]+)}}")
_IF_BLOCK_RE = re.compile(r"{{#if\s+(\w+)}}(.*?){{/if}}", re.DOTALL)
_LEFTOVER_RE = re.compile(r"{{[^{}]*}}")


def _to_text(value: Any) -> str:
    if value is None or value is False:
        return ""
    return str(value)


def _lookup(variables: Mapping[str, Any], key: str) -> Any:
    if key.startswith(DYNAMIC_FIELDS_KEY + "."):
        nested = variables.get(DYNAMIC_FIELDS_KEY)
        if not isinstance(nested, Mapping):
            return None
        return nested.get(key[len(DYNAMIC_FIELDS_KEY) + 1 :])
    return variables.get(key)


def render(template_text: str, variables: Mapping[str, Any]) -> str:
    """Render ``template_text`` against ``variables``."""
    result = _TOKEN_RE.sub(lambda m: _to_text(_lookup(variables, m.group(1))), template_text or "")
    result = _IF_BLOCK_RE.sub(lambda m: m.group(2) if variables.get(m.group(1)) else "", result)
    result = _LEFTOVER_RE.sub("", result)
    return result.strip()
