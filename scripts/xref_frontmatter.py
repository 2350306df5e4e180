#!/usr/bin/env python3
"""
Cross-File Analyzer - Frontmatter Parser

Splits a markdown document into its leading ``---`` delimited frontmatter
block and the body that follows. Parsing never raises: text without a
complete delimiter block, or with a block that cannot be read as a mapping,
yields an empty frontmatter dict.
"""

from __future__ import annotations

import re
from typing import Any

import yaml

FRONTMATTER_DELIMITER = "---"

# key: value lines for the lenient fallback reader
_KEY_VALUE_RE = re.compile(r"^([A-Za-z_][\w-]*)\s*:\s*(.*)$")
_LIST_ITEM_RE = re.compile(r"^\s*-\s+(.*)$")


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _parse_inline_list(value: str) -> list[str]:
    inner = value[1:-1].strip()
    if not inner:
        return []
    return [_strip_quotes(item.strip()) for item in inner.split(",") if item.strip()]


def parse_simple_frontmatter(block: str) -> dict[str, Any]:
    """Line-oriented reader for frontmatter that YAML rejects.

    Supports ``key: value`` scalars, inline ``[a, b]`` lists and block lists
    made of ``- item`` lines under an empty ``key:``. Anything else is ignored.
    """
    result: dict[str, Any] = {}
    current_key: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.rstrip()
        if not line.strip() or line.lstrip().startswith("#"):
            continue

        item = _LIST_ITEM_RE.match(line)
        if item and current_key is not None:
            existing = result.get(current_key)
            if not isinstance(existing, list):
                existing = []
                result[current_key] = existing
            existing.append(_strip_quotes(item.group(1).strip()))
            continue

        match = _KEY_VALUE_RE.match(line)
        if not match:
            continue

        key, value = match.group(1), match.group(2).strip()
        current_key = key
        if not value:
            result[key] = []
        elif value.startswith("[") and value.endswith("]"):
            result[key] = _parse_inline_list(value)
        else:
            result[key] = _strip_quotes(value)

    return result


def split_frontmatter(content: str) -> tuple[str, str] | None:
    """Find the frontmatter block.

    Returns:
        Tuple of (frontmatter_text, body) or None if the content does not
        open and close a delimiter block.
    """
    # A leading byte order mark would hide the opening delimiter
    content = content.removeprefix("\ufeff")
    lines = content.splitlines(keepends=True)
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        return None

    for index in range(1, len(lines)):
        if lines[index].strip() == FRONTMATTER_DELIMITER:
            return "".join(lines[1:index]), "".join(lines[index + 1 :])
    return None


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from markdown content.

    Args:
        content: Raw markdown file content

    Returns:
        Tuple of (frontmatter_dict, body). The dict is empty and the body is
        the full text when no frontmatter block is present.
    """
    if not isinstance(content, str):
        return {}, ""

    parts = split_frontmatter(content)
    if parts is None:
        return {}, content

    block, body = parts
    try:
        frontmatter = yaml.safe_load(block)
    except yaml.YAMLError:
        frontmatter = parse_simple_frontmatter(block)

    if not isinstance(frontmatter, dict):
        frontmatter = {}
    return frontmatter, body
