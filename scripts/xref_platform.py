#!/usr/bin/env python3
"""
Cross-File Analyzer - Platform Detection

Detects which AI assistant host a repository targets (Claude Code, OpenCode
or Codex) and provides the built-in tool list for each. Detection is done
fresh on every call; nothing is cached.

Detection order:
1. OPENCODE_CONFIG / OPENCODE_CONFIG_DIR environment variables -> opencode
2. CODEX_HOME environment variable -> codex
3. A .opencode/ directory in the root -> opencode
4. A .codex/ directory in the root -> codex
5. Otherwise -> claude
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from xref_config import load_config

PLATFORM_CLAUDE = "claude"
PLATFORM_OPENCODE = "opencode"
PLATFORM_CODEX = "codex"

# State directory per platform
STATE_DIRS = {
    PLATFORM_CLAUDE: ".claude",
    PLATFORM_OPENCODE: ".opencode",
    PLATFORM_CODEX: ".codex",
}

# Built-in tool names per platform
CLAUDE_CODE_TOOLS = [
    "Task",
    "Read",
    "Write",
    "Edit",
    "MultiEdit",
    "Glob",
    "Grep",
    "Bash",
    "LS",
    "WebFetch",
    "WebSearch",
    "NotebookEdit",
    "TodoWrite",
    "Skill",
    "AskUserQuestion",
]

OPENCODE_TOOLS = [
    "Task",
    "Read",
    "Write",
    "Edit",
    "Glob",
    "Grep",
    "Bash",
    "List",
    "Patch",
    "WebFetch",
    "TodoWrite",
    "TodoRead",
    "Skill",
]

CODEX_TOOLS = [
    "Shell",
    "Read",
    "Write",
    "Edit",
    "ApplyPatch",
    "UpdatePlan",
    "WebSearch",
]

PLATFORM_TOOLS = {
    PLATFORM_CLAUDE: CLAUDE_CODE_TOOLS,
    PLATFORM_OPENCODE: OPENCODE_TOOLS,
    PLATFORM_CODEX: CODEX_TOOLS,
}


def detect_platform(root_dir: str | Path) -> str:
    """Detect the target platform for a repository root."""
    if os.environ.get("OPENCODE_CONFIG") or os.environ.get("OPENCODE_CONFIG_DIR"):
        return PLATFORM_OPENCODE
    if os.environ.get("CODEX_HOME"):
        return PLATFORM_CODEX

    root = Path(root_dir)
    if (root / STATE_DIRS[PLATFORM_OPENCODE]).is_dir():
        return PLATFORM_OPENCODE
    if (root / STATE_DIRS[PLATFORM_CODEX]).is_dir():
        return PLATFORM_CODEX
    return PLATFORM_CLAUDE


def get_state_dir(root_dir: str | Path) -> str:
    """Get the state directory name, honoring the AI_STATE_DIR override."""
    override = os.environ.get("AI_STATE_DIR")
    if override:
        return override
    return STATE_DIRS[detect_platform(root_dir)]


def get_platform_tools(platform: str) -> list[str]:
    """Get the built-in tool list for a platform (Claude Code when unknown)."""
    return list(PLATFORM_TOOLS.get(platform, CLAUDE_CODE_TOOLS))


def load_known_tools(root_dir: str | Path, config: dict[str, Any] | None = None) -> list[str]:
    """Load the list of recognized tool names.

    Uses the ``knownTools`` list from the analyzer config when it is a
    non-empty list of strings, otherwise the detected platform's defaults.

    Args:
        root_dir: Repository root
        config: Already loaded config; loaded from root_dir when None

    Returns:
        List of tool names (never empty)
    """
    if config is None:
        config = load_config(root_dir)

    configured = config.get("knownTools")
    if isinstance(configured, list):
        tools = [t.strip() for t in configured if isinstance(t, str) and t.strip()]
        if tools:
            return tools

    return get_platform_tools(detect_platform(root_dir))
