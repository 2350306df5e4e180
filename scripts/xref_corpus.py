#!/usr/bin/env python3
"""
Cross-File Analyzer - Corpus Loader

Loads every agent and skill definition under a repository's plugins/ tree:
    plugins/<plugin>/agents/<name>.md        (README.md excluded)
    plugins/<plugin>/skills/<name>/SKILL.md

Files that cannot be read are skipped; a missing plugins/ directory yields
an empty corpus. Plugins and files are visited in sorted order so repeated
runs over an unchanged tree load identical records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from xref_common import should_skip_dir
from xref_frontmatter import parse_frontmatter

logger = logging.getLogger(__name__)

PLUGINS_DIRNAME = "plugins"
AGENTS_DIRNAME = "agents"
SKILLS_DIRNAME = "skills"
SKILL_FILENAME = "SKILL.md"
AGENT_README = "README.md"


@dataclass(frozen=True)
class AgentRecord:
    """One parsed agent definition.

    Attributes:
        plugin: Name of the plugin directory the agent lives in
        name: Agent name (file stem)
        path: Path to the agent markdown file
        frontmatter: Parsed frontmatter mapping (empty when absent)
        body: Markdown body after the frontmatter
        content: Full raw file text
    """

    plugin: str
    name: str
    path: str
    frontmatter: dict[str, Any] = field(default_factory=dict, hash=False)
    body: str = ""
    content: str = ""

    @property
    def full_name(self) -> str:
        """Qualified plugin:name identifier."""
        return f"{self.plugin}:{self.name}"


@dataclass(frozen=True)
class SkillRecord(AgentRecord):
    """One parsed skill definition (skills/<name>/SKILL.md)."""


def read_text(path: Path) -> str | None:
    """Read a UTF-8 file, returning None when it cannot be read."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Skipping unreadable file %s: %s", path, e)
        return None


def iter_plugin_dirs(root_dir: str | Path) -> Iterator[Path]:
    """Yield plugin directories under root_dir/plugins in sorted order."""
    plugins_dir = Path(root_dir) / PLUGINS_DIRNAME
    if not plugins_dir.is_dir():
        return

    try:
        entries = sorted(plugins_dir.iterdir())
    except OSError as e:
        logger.debug("Cannot list %s: %s", plugins_dir, e)
        return

    for entry in entries:
        if entry.is_dir() and not should_skip_dir(entry.name):
            yield entry


def _sorted_entries(directory: Path) -> list[Path]:
    try:
        return sorted(directory.iterdir())
    except OSError as e:
        logger.debug("Cannot list %s: %s", directory, e)
        return []


def load_all_agents(root_dir: str | Path) -> list[AgentRecord]:
    """Load all agent files from a repository.

    Args:
        root_dir: Repository root containing plugins/

    Returns:
        List of AgentRecord, empty when plugins/ does not exist
    """
    agents: list[AgentRecord] = []

    for plugin_dir in iter_plugin_dirs(root_dir):
        agents_dir = plugin_dir / AGENTS_DIRNAME
        if not agents_dir.is_dir():
            continue

        for agent_file in _sorted_entries(agents_dir):
            if agent_file.suffix != ".md" or agent_file.name == AGENT_README:
                continue
            if not agent_file.is_file():
                continue

            content = read_text(agent_file)
            if content is None:
                continue

            frontmatter, body = parse_frontmatter(content)
            agents.append(
                AgentRecord(
                    plugin=plugin_dir.name,
                    name=agent_file.stem,
                    path=str(agent_file),
                    frontmatter=frontmatter,
                    body=body,
                    content=content,
                )
            )

    logger.debug("Loaded %d agent(s) from %s", len(agents), root_dir)
    return agents


def load_all_skills(root_dir: str | Path) -> list[SkillRecord]:
    """Load all skill files from a repository.

    Args:
        root_dir: Repository root containing plugins/

    Returns:
        List of SkillRecord, empty when plugins/ does not exist
    """
    skills: list[SkillRecord] = []

    for plugin_dir in iter_plugin_dirs(root_dir):
        skills_dir = plugin_dir / SKILLS_DIRNAME
        if not skills_dir.is_dir():
            continue

        for skill_dir in _sorted_entries(skills_dir):
            if not skill_dir.is_dir() or should_skip_dir(skill_dir.name):
                continue

            skill_file = skill_dir / SKILL_FILENAME
            if not skill_file.is_file():
                continue

            content = read_text(skill_file)
            if content is None:
                continue

            frontmatter, body = parse_frontmatter(content)
            skills.append(
                SkillRecord(
                    plugin=plugin_dir.name,
                    name=skill_dir.name,
                    path=str(skill_file),
                    frontmatter=frontmatter,
                    body=body,
                    content=content,
                )
            )

    logger.debug("Loaded %d skill(s) from %s", len(skills), root_dir)
    return skills
