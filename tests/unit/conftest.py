"""Shared fixtures for the cross-file analyzer tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

PLATFORM_ENV_VARS = ("OPENCODE_CONFIG", "OPENCODE_CONFIG_DIR", "CODEX_HOME", "AI_STATE_DIR")


@pytest.fixture(autouse=True)
def clean_platform_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment variables from changing platform detection."""
    for name in PLATFORM_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def render_markdown(body: str, frontmatter: dict[str, Any] | str | None = None) -> str:
    """Build markdown text with an optional frontmatter block."""
    if frontmatter is None:
        return body
    if isinstance(frontmatter, dict):
        frontmatter = yaml.safe_dump(frontmatter, sort_keys=False)
    if not frontmatter.endswith("\n"):
        frontmatter += "\n"
    return f"---\n{frontmatter}---\n{body}"


def write_agent(
    root: Path,
    plugin: str,
    name: str,
    body: str,
    frontmatter: dict[str, Any] | str | None = None,
) -> Path:
    """Write plugins/<plugin>/agents/<name>.md and return its path."""
    agent_path = root / "plugins" / plugin / "agents" / f"{name}.md"
    agent_path.parent.mkdir(parents=True, exist_ok=True)
    agent_path.write_text(render_markdown(body, frontmatter), encoding="utf-8")
    return agent_path


def write_skill(
    root: Path,
    plugin: str,
    name: str,
    body: str,
    frontmatter: dict[str, Any] | str | None = None,
) -> Path:
    """Write plugins/<plugin>/skills/<name>/SKILL.md and return its path."""
    skill_path = root / "plugins" / plugin / "skills" / name / "SKILL.md"
    skill_path.parent.mkdir(parents=True, exist_ok=True)
    skill_path.write_text(render_markdown(body, frontmatter), encoding="utf-8")
    return skill_path
