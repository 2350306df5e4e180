#!/usr/bin/env python3
"""
Cross-File Analyzer - Suppression

Lets repository owners silence or re-grade findings:
1. Inline comments in the offending file:
       <!-- enhance:ignore orphaned_prompt -->
       // enhance:ignore orphaned_prompt
       # enhance:ignore orphaned_prompt
2. Config ignore.patterns: pattern ids suppressed everywhere
3. Config ignore.rules: {"id": "off"} or {"id": {"severity": "off", "reason": "..."}}
4. Config ignore.files: glob patterns matched against root-relative paths
5. Config severity / ignore.rules[id].severity: certainty overrides
"""

from __future__ import annotations

import re
from collections import Counter
from pathlib import Path
from typing import Any, Iterable, Mapping

from xref_common import VALID_CERTAINTIES, Certainty, Finding, SuppressedFinding, Suppression
from xref_corpus import read_text

INLINE_SUPPRESSION_PATTERN = re.compile(
    r"(?:<!--|//|#)\s*enhance:ignore\s+([\w-]+)",
    re.IGNORECASE,
)

RULE_OFF = "off"


def extract_inline_suppressions(content: str | None) -> set[str]:
    """Collect lowercase pattern ids named in enhance:ignore comments."""
    if not content or not isinstance(content, str):
        return set()
    return {match.lower() for match in INLINE_SUPPRESSION_PATTERN.findall(content)}


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a glob into a regex over POSIX paths.

    ``*`` and ``?`` stay within one path segment, ``**`` spans segments and
    ``**/`` also matches zero directories.
    """
    parts: list[str] = []
    index = 0
    while index < len(pattern):
        if pattern.startswith("**/", index):
            parts.append("(?:.*/)?")
            index += 3
        elif pattern.startswith("**", index):
            parts.append(".*")
            index += 2
        elif pattern[index] == "*":
            parts.append("[^/]*")
            index += 1
        elif pattern[index] == "?":
            parts.append("[^/]")
            index += 1
        else:
            parts.append(re.escape(pattern[index]))
            index += 1
    return re.compile("".join(parts))


def match_glob(path: str, pattern: str) -> bool:
    """Match a POSIX-style path against a glob pattern (case-sensitive)."""
    path = path.replace("\\", "/")
    pattern = pattern.replace("\\", "/")
    return glob_to_regex(pattern).fullmatch(path) is not None


def relative_posix(file_path: str, root_dir: str | Path) -> str:
    """Get file_path relative to root_dir with forward slashes."""
    if not file_path:
        return ""
    if not root_dir:
        return Path(file_path).as_posix()
    try:
        return Path(file_path).resolve().relative_to(Path(root_dir).resolve()).as_posix()
    except ValueError:
        return Path(file_path).as_posix()


def _lookup(section: Any, pattern_id: str) -> Any:
    """Get the entry for pattern_id from a config section, ignoring key case."""
    if not isinstance(section, Mapping):
        return None
    pattern_id = pattern_id.lower()
    for key, value in section.items():
        if str(key).lower() == pattern_id:
            return value
    return None


def _rule_setting(config: Mapping[str, Any], pattern_id: str) -> Any:
    return _lookup(config.get("ignore", {}).get("rules", {}), pattern_id)


def should_suppress(
    finding: Finding,
    config: Mapping[str, Any],
    inline_suppressions: set[str],
    file_path: str,
    root_dir: str | Path,
) -> Suppression | None:
    """Decide whether a finding is suppressed.

    Args:
        finding: The finding to test
        config: Loaded analyzer config
        inline_suppressions: Ids collected from the finding's file
        file_path: Path of the finding's file
        root_dir: Repository root, for relative file globs

    Returns:
        Suppression describing the first matching rule, or None
    """
    pattern_id = finding.pattern_id.lower()
    ignore = config.get("ignore", {}) or {}

    if pattern_id in inline_suppressions:
        return Suppression(reason="inline", source="inline comment", pattern_id=pattern_id)

    if pattern_id in {str(p).lower() for p in ignore.get("patterns", []) or []}:
        return Suppression(reason="config", source="ignore.patterns", pattern_id=pattern_id)

    rule = _rule_setting(config, pattern_id)
    if isinstance(rule, str) and rule.lower() == RULE_OFF:
        return Suppression(reason="rule", source=f"ignore.rules.{pattern_id}", pattern_id=pattern_id)
    if isinstance(rule, dict) and str(rule.get("severity", "")).lower() == RULE_OFF:
        return Suppression(
            reason="rule",
            source=f"ignore.rules.{pattern_id}",
            pattern_id=pattern_id,
            user_reason=rule.get("reason"),
        )

    if file_path:
        rel_path = relative_posix(file_path, root_dir)
        for glob in ignore.get("files", []) or []:
            if match_glob(rel_path, str(glob)):
                return Suppression(reason="file", source=f"ignore.files: {glob}", pattern_id=pattern_id)

    return None


def apply_severity_override(finding: Finding, config: Mapping[str, Any]) -> Certainty:
    """Get the certainty a finding should carry after config overrides.

    ``severity[id]`` takes precedence over ``ignore.rules[id].severity``.
    Values other than HIGH, MEDIUM and LOW are ignored.
    """
    override = _lookup(config.get("severity", {}), finding.pattern_id)
    if isinstance(override, str) and override.upper() in VALID_CERTAINTIES:
        return override.upper()  # type: ignore[return-value]

    rule = _rule_setting(config, finding.pattern_id.lower())
    if isinstance(rule, dict):
        rule_severity = rule.get("severity")
        if isinstance(rule_severity, str) and rule_severity.upper() in VALID_CERTAINTIES:
            return rule_severity.upper()  # type: ignore[return-value]

    return finding.certainty


def filter_findings(
    findings: Iterable[Finding],
    config: Mapping[str, Any],
    root_dir: str | Path,
    file_contents: Mapping[str, str] | None = None,
) -> tuple[list[Finding], list[SuppressedFinding]]:
    """Split findings into active and suppressed.

    Active findings get severity overrides applied. Inline suppressions are
    read once per file, from file_contents when provided, else from disk.

    Returns:
        Tuple of (active, suppressed)
    """
    active: list[Finding] = []
    suppressed: list[SuppressedFinding] = []
    inline_cache: dict[str, set[str]] = {}

    for finding in findings:
        file_path = finding.file or ""
        if file_path not in inline_cache:
            if file_contents is not None and file_path in file_contents:
                content = file_contents[file_path]
            elif file_path:
                content = read_text(Path(file_path))
            else:
                content = None
            inline_cache[file_path] = extract_inline_suppressions(content)

        suppression = should_suppress(finding, config, inline_cache[file_path], file_path, root_dir)
        if suppression is not None:
            suppressed.append(SuppressedFinding(finding=finding, suppression=suppression))
            continue

        active.append(finding.with_certainty(apply_severity_override(finding, config)))

    return active, suppressed


def generate_suppression_summary(suppressed: Iterable[SuppressedFinding] | None) -> str:
    """Render a markdown section describing suppressed findings.

    Returns:
        Markdown text, or an empty string when nothing was suppressed
    """
    items = list(suppressed or [])
    if not items:
        return ""

    groups = Counter((item.suppression.source, item.suppression.pattern_id) for item in items)
    noun = "finding" if len(items) == 1 else "findings"

    lines = [
        "## Suppressed Findings",
        "",
        f"{len(items)} {noun} suppressed.",
        "",
        "| Source | Pattern | Count |",
        "|--------|---------|-------|",
    ]
    for (source, pattern_id), count in sorted(groups.items()):
        lines.append(f"| {source} | {pattern_id} | {count} |")
    return "\n".join(lines) + "\n"
