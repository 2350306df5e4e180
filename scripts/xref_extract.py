#!/usr/bin/env python3
"""
Cross-File Analyzer - Extractors

Pulls facts out of agent and skill prompt bodies:
1. Tool mentions (which known tools a prompt actually uses)
2. Agent references (subagent_type literals in Task() calls)
3. Critical instructions (MUST / NEVER / ALWAYS ... directive lines)

Extractors are pure functions over text and never raise on odd input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable

# =============================================================================
# Tool Mention Detection
# =============================================================================

# Illustrative anti-pattern content is removed before looking for tool usage:
# <bad-example>...</bad-example> blocks and fenced blocks tagged "bad"
BAD_EXAMPLE_BLOCK_PATTERN = re.compile(
    r"<bad[- ]?example>.*?</bad[- ]?example>",
    re.IGNORECASE | re.DOTALL,
)
BAD_CODE_FENCE_PATTERN = re.compile(
    r"```[^\n]*bad[^\n]*\n.*?```",
    re.IGNORECASE | re.DOTALL,
)


@dataclass(frozen=True)
class ToolMentionPolicy:
    """One family of evidence that a prompt uses a tool.

    Attributes:
        name: Short identifier of the evidence family
        description: What the pattern looks for
        build: Callable turning an escaped tool name into a compiled regex
    """

    name: str
    description: str
    build: Callable[[str], re.Pattern[str]]

    def matches(self, tool: str, content: str) -> bool:
        return self.build(re.escape(tool)).search(content) is not None


TOOL_MENTION_POLICIES = (
    ToolMentionPolicy(
        name="call-syntax",
        description="Tool invoked like a function: Read( or Write({",
        build=lambda tool: re.compile(rf"\b{tool}\s*\("),
    ),
    ToolMentionPolicy(
        name="verb-phrase",
        description='Tool named after a verb: "use the Glob", "invoke Task"',
        build=lambda tool: re.compile(rf"\b(?:use|invoke|call|with)\s+(?:the\s+)?{tool}\b", re.IGNORECASE),
    ),
    ToolMentionPolicy(
        name="noun-phrase",
        description='Tool named as a tool: "Read tool", "Bash tool"',
        build=lambda tool: re.compile(rf"\b{tool}\s+tool\b", re.IGNORECASE),
    ),
)

# Shell commands that imply the shell tool is used
SHELL_COMMAND_PATTERNS = [
    re.compile(r"\bgit\s+(?:add|commit|push|pull|branch|checkout|merge|rebase|status|diff|log)\b", re.IGNORECASE),
    re.compile(r"\bnpm\s+(?:install|test|run|build|publish)\b", re.IGNORECASE),
    re.compile(r"\bpnpm\s+", re.IGNORECASE),
    re.compile(r"\byarn\s+", re.IGNORECASE),
    re.compile(r"\bcargo\s+", re.IGNORECASE),
    re.compile(r"\bgo\s+(?:build|test|run|mod)\b", re.IGNORECASE),
]

SHELL_TOOL_NAMES = ("Bash", "Shell")


def strip_bad_examples(content: str) -> str:
    """Remove bad-example blocks and bad-tagged code fences from content."""
    content = BAD_EXAMPLE_BLOCK_PATTERN.sub("", content)
    return BAD_CODE_FENCE_PATTERN.sub("", content)


def get_shell_tool(known_tools: Iterable[str]) -> str:
    """Get the name of the shell-execution tool for a known-tools list.

    Bash unless the list only knows Shell.
    """
    tools = set(known_tools)
    if "Bash" not in tools and "Shell" in tools:
        return "Shell"
    return "Bash"


def has_shell_command(content: str) -> bool:
    """Check if content contains a recognizable shell command."""
    return any(pattern.search(content) for pattern in SHELL_COMMAND_PATTERNS)


def extract_tool_mentions(content: str, known_tools: Iterable[str]) -> set[str]:
    """Extract the known tools a prompt body uses.

    Args:
        content: Prompt body text
        known_tools: Tool names to look for

    Returns:
        Set of tool names found (empty for empty or non-string content)
    """
    if not content or not isinstance(content, str):
        return set()

    known = list(known_tools)
    clean_content = strip_bad_examples(content)
    found: set[str] = set()

    for tool in known:
        if any(policy.matches(tool, clean_content) for policy in TOOL_MENTION_POLICIES):
            found.add(tool)

    if not found.intersection(SHELL_TOOL_NAMES) and has_shell_command(clean_content):
        found.add(get_shell_tool(known))

    return found


# =============================================================================
# Agent Reference Detection
# =============================================================================

# Matches: subagent_type: "plugin:agent" or subagent_type='plugin:agent'
SUBAGENT_TYPE_PATTERN = re.compile(r"""subagent_type\s*[=:]\s*["']([^"']+)["']""")


def extract_agent_references(content: str) -> list[str]:
    """Extract subagent_type references from content.

    Returns:
        Unique referenced agent identifiers in first-seen order; an empty list
        when there are none.
    """
    if not content or not isinstance(content, str):
        return []
    return list(dict.fromkeys(SUBAGENT_TYPE_PATTERN.findall(content)))


# =============================================================================
# Critical Instruction Detection
# =============================================================================

# MUST and NEVER only count in capitals; the rest in any case
CRITICAL_PATTERNS = [
    re.compile(r"\bMUST\b"),
    re.compile(r"\bNEVER\b"),
    re.compile(r"\bALWAYS\b", re.IGNORECASE),
    re.compile(r"\bREQUIRED\b", re.IGNORECASE),
    re.compile(r"\bFORBIDDEN\b", re.IGNORECASE),
    re.compile(r"\bCRITICAL\b", re.IGNORECASE),
    re.compile(r"\bDO NOT\b", re.IGNORECASE),
    re.compile(r"\bdon't\b", re.IGNORECASE),
]

CODE_FENCE = "```"


@dataclass(frozen=True)
class CriticalInstruction:
    """A directive line and its 1-based line number in the body."""

    line: str
    line_number: int


def is_critical_line(line: str) -> bool:
    """Check if a line contains a directive keyword."""
    return any(pattern.search(line) for pattern in CRITICAL_PATTERNS)


def extract_critical_instructions(content: str) -> list[CriticalInstruction]:
    """Extract directive lines, skipping headers and fenced code.

    Args:
        content: Prompt body text

    Returns:
        One CriticalInstruction per matching line, in line order
    """
    if not content or not isinstance(content, str):
        return []

    instructions: list[CriticalInstruction] = []
    in_code_block = False

    for index, raw_line in enumerate(content.split("\n")):
        line = raw_line.strip()

        if line.startswith(CODE_FENCE):
            in_code_block = not in_code_block
            continue

        if not line or line.startswith("#") or in_code_block:
            continue

        if is_critical_line(line):
            instructions.append(CriticalInstruction(line=line, line_number=index + 1))

    return instructions
