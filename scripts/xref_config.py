#!/usr/bin/env python3
"""
Cross-File Analyzer - Configuration

Loads the analyzer config from the repository root. The first existing file
in CONFIG_FILENAMES wins; its JSON object is merged over DEFAULT_CONFIG one
section at a time. Missing, unreadable or invalid files fall back to the
defaults.

Config format:
    {
      "ignore": {
        "patterns": ["orphaned_prompt"],
        "files": ["plugins/legacy/**"],
        "rules": {"duplicate_instructions": "off",
                  "contradictory_rules": {"severity": "LOW", "reason": "..."}}
      },
      "severity": {"missing_workflow_agent": "MEDIUM"},
      "knownTools": ["Read", "Write", "Bash"]
    }
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Searched in priority order
CONFIG_FILENAMES = (".enhancerc.json", ".enhancerc", "enhance.config.json")

DEFAULT_CONFIG: dict[str, Any] = {
    "ignore": {
        "patterns": [],
        "files": [],
        "rules": {},
    },
    "severity": {},
    "knownTools": [],
}


def default_config() -> dict[str, Any]:
    """Get a fresh copy of the default config."""
    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(user_config: dict[str, Any]) -> dict[str, Any]:
    """Merge a user config over the defaults.

    Dict sections are merged key by key; other values replace the default
    when they have the same type.
    """
    config = default_config()

    user_ignore = user_config.get("ignore")
    if isinstance(user_ignore, dict):
        for key, default_value in config["ignore"].items():
            value = user_ignore.get(key)
            if isinstance(value, type(default_value)):
                config["ignore"][key] = value

    user_severity = user_config.get("severity")
    if isinstance(user_severity, dict):
        config["severity"].update(user_severity)

    known_tools = user_config.get("knownTools")
    if isinstance(known_tools, list):
        config["knownTools"] = known_tools

    return config


def find_config_file(root_dir: str | Path) -> Path | None:
    """Get the highest-priority config file present in root_dir."""
    root = Path(root_dir)
    for filename in CONFIG_FILENAMES:
        candidate = root / filename
        if candidate.is_file():
            return candidate
    return None


def load_config(root_dir: str | Path) -> dict[str, Any]:
    """Load the analyzer config for a repository root.

    Args:
        root_dir: Repository root to search

    Returns:
        Merged config dict (defaults when no usable file exists)
    """
    config_path = find_config_file(root_dir)
    if config_path is None:
        return default_config()

    try:
        user_config = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", config_path, e)
        return default_config()
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in %s: %s", config_path, e)
        return default_config()

    if not isinstance(user_config, dict):
        logger.warning("Ignoring %s: top level must be a JSON object", config_path)
        return default_config()

    return merge_config(user_config)
