#!/usr/bin/env python3
"""
Cross-File Analyzer - Pattern Registry

Named rules that turn extracted facts into findings. Each pattern is a
CrossFilePattern with an id, category, certainty and a pure check()
function: check(facts) returns None when there is no issue, or a dict with
"issue" (and usually "fix") text.

Patterns:
1. tool_not_in_allowed_list  (tool-consistency, HIGH)
2. missing_workflow_agent    (workflow, HIGH)
3. duplicate_instructions    (consistency, MEDIUM)
4. contradictory_rules       (consistency, MEDIUM)
5. orphaned_prompt           (consistency, LOW)
6. skill_tool_mismatch       (skill-alignment, HIGH)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from xref_common import (
    CATEGORY_CONSISTENCY,
    CATEGORY_SKILL_ALIGNMENT,
    CATEGORY_TOOL_CONSISTENCY,
    CATEGORY_WORKFLOW,
    Certainty,
)

PatternResult = dict[str, str]
CheckFunction = Callable[[dict[str, Any]], "PatternResult | None"]

# An instruction must appear in this many files to count as duplicated
DUPLICATE_FILE_THRESHOLD = 3

# ALWAYS/NEVER action similarity above which two rules contradict
CONTRADICTION_SIMILARITY_THRESHOLD = 0.6

# Characters after the keyword compared between ALWAYS and NEVER rules
RULE_ACTION_LENGTH = 30

# Agent types provided by the host runtime rather than by a plugin
BUILTIN_AGENT_TYPES = {"Explore", "Plan", "general-purpose"}

# Agent names treated as workflow entry points (never reported as orphans)
ENTRY_POINT_PATTERN = re.compile(r"orchestrator|discoverer|validator|monitor", re.IGNORECASE)

ALWAYS_PATTERN = re.compile(r"\bALWAYS\b", re.IGNORECASE)
NEVER_PATTERN = re.compile(r"\bNEVER\b|\bDO NOT\b", re.IGNORECASE)
_ALWAYS_PREFIX = re.compile(r".*\bALWAYS\b\s*", re.IGNORECASE)
_NEVER_PREFIX = re.compile(r".*\b(?:NEVER|DO NOT)\b\s*", re.IGNORECASE)

# Scoped declarations like Bash(git:*) or Bash(npm test)
_SCOPED_TOOL_PATTERN = re.compile(r"^([^()\s]+)\s*\(.*\)$")


# =============================================================================
# Helpers
# =============================================================================


def normalize_tool_name(declaration: str) -> str:
    """Strip a scope from a tool declaration: Bash(git:*) -> Bash."""
    declaration = declaration.strip()
    match = _SCOPED_TOOL_PATTERN.match(declaration)
    return match.group(1) if match else declaration


def parse_tool_list(value: Any) -> list[str]:
    """Normalize a frontmatter tools field to a list of declarations.

    Accepts a YAML list or a comma-separated string. Commas inside a scope
    such as ``Bash(git add, git commit)`` do not split the declaration.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    if not isinstance(value, str):
        return []

    tools: list[str] = []
    depth = 0
    current: list[str] = []
    for char in value:
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(0, depth - 1)
        if char == "," and depth == 0:
            tools.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    tools.append("".join(current).strip())
    return [t for t in tools if t]


def find_undeclared_tools(declared: Iterable[str], used: Iterable[str]) -> list[str]:
    """Get used tools with no matching declaration, sorted by name.

    Comparison is on scope-normalized, case-insensitive names.
    """
    allowed = {normalize_tool_name(d).lower() for d in declared}
    return sorted({tool for tool in used if normalize_tool_name(tool).lower() not in allowed})


def calculate_similarity(a: str, b: str) -> float:
    """Jaccard index over the words longer than 2 characters.

    Returns:
        Similarity between 0 and 1; 0 when either side has no such words
    """
    words_a = {w for w in a.split() if len(w) > 2}
    words_b = {w for w in b.split() if len(w) > 2}
    if not words_a or not words_b:
        return 0.0
    intersection = len(words_a & words_b)
    union = len(words_a) + len(words_b) - intersection
    return intersection / union


def extract_rule_action(line: str, negative: bool = False) -> str:
    """Get the lowercase action text following ALWAYS (or NEVER / DO NOT)."""
    prefix = _NEVER_PREFIX if negative else _ALWAYS_PREFIX
    return prefix.sub("", line, count=1)[:RULE_ACTION_LENGTH].lower()


def is_entry_point(agent_name: str) -> bool:
    """Check if an agent name follows the entry-point naming convention."""
    return ENTRY_POINT_PATTERN.search(agent_name) is not None


def _shorten(text: str, limit: int = 80) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


# =============================================================================
# Checks
# =============================================================================


def check_tool_not_in_allowed_list(facts: dict[str, Any]) -> PatternResult | None:
    """Facts: declaredTools, usedTools, agentName."""
    declared = facts.get("declaredTools") or []
    if not declared:
        return None

    missing = find_undeclared_tools(declared, facts.get("usedTools") or [])
    if not missing:
        return None

    tools = ", ".join(missing)
    return {
        "issue": f"Agent '{facts.get('agentName', '')}' uses tools not declared in frontmatter: {tools}",
        "fix": f"Add {tools} to the tools field or remove the usage from the prompt",
    }


def check_missing_workflow_agent(facts: dict[str, Any]) -> PatternResult | None:
    """Facts: referencedAgent, existingAgents ({plugin, name}), sourceFile."""
    reference = str(facts.get("referencedAgent", "")).strip()
    if not reference:
        return None

    existing = facts.get("existingAgents") or []
    if ":" in reference:
        plugin, _, name = reference.partition(":")
        found = any(a.get("plugin") == plugin and a.get("name") == name for a in existing)
    else:
        found = reference in BUILTIN_AGENT_TYPES or any(a.get("name") == reference for a in existing)

    if found:
        return None

    return {
        "issue": f"Referenced agent '{reference}' does not exist (referenced in {facts.get('sourceFile', '')})",
        "fix": f"Create the agent '{reference}' or fix the subagent_type value",
    }


def check_duplicate_instructions(facts: dict[str, Any]) -> PatternResult | None:
    """Facts: instruction, files."""
    files = list(dict.fromkeys(facts.get("files") or []))
    if len(files) < DUPLICATE_FILE_THRESHOLD:
        return None

    return {
        "issue": f"Instruction duplicated in {len(files)} files: \"{_shorten(str(facts.get('instruction', '')))}\"",
        "fix": "Move the shared instruction into a skill or common reference and link to it",
    }


def check_contradictory_rules(facts: dict[str, Any]) -> PatternResult | None:
    """Facts: rule1, rule2, file1, file2."""
    rule1 = facts.get("rule1")
    rule2 = facts.get("rule2")
    if not rule1 or not rule2:
        return None

    return {
        "issue": (
            f"Contradictory rules: \"{_shorten(rule1)}\" ({facts.get('file1', '')}) "
            f"vs \"{_shorten(rule2)}\" ({facts.get('file2', '')})"
        ),
        "fix": "Reconcile the rules or scope each one to the situation it covers",
    }


def check_orphaned_prompt(facts: dict[str, Any]) -> PatternResult | None:
    """Facts: promptFile, referencedBy."""
    if facts.get("referencedBy"):
        return None

    return {
        "issue": f"Orphaned prompt: {facts.get('promptFile', '')} is not referenced by any agent or skill",
        "fix": "Reference the agent from a workflow, or remove it if unused",
    }


def check_skill_tool_mismatch(facts: dict[str, Any]) -> PatternResult | None:
    """Facts: skillName, skillAllowedTools, promptUsedTools."""
    allowed = facts.get("skillAllowedTools") or []
    if not allowed:
        return None

    missing = find_undeclared_tools(allowed, facts.get("promptUsedTools") or [])
    if not missing:
        return None

    tools = ", ".join(missing)
    return {
        "issue": f"Skill '{facts.get('skillName', '')}' uses tools not in allowed-tools: {tools}",
        "fix": f"Add {tools} to allowed-tools or remove the usage from the skill",
    }


# =============================================================================
# Registry
# =============================================================================


@dataclass(frozen=True)
class CrossFilePattern:
    """A named cross-file rule."""

    id: str
    category: str
    certainty: Certainty
    description: str
    check: CheckFunction


CROSS_FILE_PATTERNS: dict[str, CrossFilePattern] = {
    pattern.id: pattern
    for pattern in (
        CrossFilePattern(
            id="tool_not_in_allowed_list",
            category=CATEGORY_TOOL_CONSISTENCY,
            certainty="HIGH",
            description="Agent body uses a tool its frontmatter does not declare",
            check=check_tool_not_in_allowed_list,
        ),
        CrossFilePattern(
            id="missing_workflow_agent",
            category=CATEGORY_WORKFLOW,
            certainty="HIGH",
            description="subagent_type references an agent that does not exist",
            check=check_missing_workflow_agent,
        ),
        CrossFilePattern(
            id="duplicate_instructions",
            category=CATEGORY_CONSISTENCY,
            certainty="MEDIUM",
            description="Same critical instruction repeated across many files",
            check=check_duplicate_instructions,
        ),
        CrossFilePattern(
            id="contradictory_rules",
            category=CATEGORY_CONSISTENCY,
            certainty="MEDIUM",
            description="ALWAYS rule in one file contradicts a NEVER rule in another",
            check=check_contradictory_rules,
        ),
        CrossFilePattern(
            id="orphaned_prompt",
            category=CATEGORY_CONSISTENCY,
            certainty="LOW",
            description="Agent is never referenced by another agent or skill",
            check=check_orphaned_prompt,
        ),
        CrossFilePattern(
            id="skill_tool_mismatch",
            category=CATEGORY_SKILL_ALIGNMENT,
            certainty="HIGH",
            description="Skill body uses a tool missing from allowed-tools",
            check=check_skill_tool_mismatch,
        ),
    )
}


def get_all_patterns() -> dict[str, CrossFilePattern]:
    """Get every registered pattern keyed by id."""
    return dict(CROSS_FILE_PATTERNS)


def get_patterns_by_category(category: str) -> dict[str, CrossFilePattern]:
    """Get the patterns belonging to one category."""
    return {pid: p for pid, p in CROSS_FILE_PATTERNS.items() if p.category == category}


def get_patterns_by_certainty(certainty: str) -> dict[str, CrossFilePattern]:
    """Get the patterns with one certainty level."""
    return {pid: p for pid, p in CROSS_FILE_PATTERNS.items() if p.certainty == certainty}
