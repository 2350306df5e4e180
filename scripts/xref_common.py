#!/usr/bin/env python3
"""
Cross-File Analyzer - Common Module

Shared infrastructure for the cross-file analyzer modules.
This module contains:
- Type definitions (Certainty, Finding, AnalysisSummary, AnalysisResult)
- Common constants (categories, skip directories, exit codes)
- Terminal formatting helpers (colors, summaries, grouped findings)

All analyzer modules should import from this module to ensure consistency.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Literal

# =============================================================================
# Type Definitions
# =============================================================================

# Confidence that a finding is a real issue requiring action
# Hierarchy: HIGH > MEDIUM > LOW
Certainty = Literal["HIGH", "MEDIUM", "LOW"]

VALID_CERTAINTIES = ("HIGH", "MEDIUM", "LOW")

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_OK = 0  # No findings
EXIT_HIGH = 1  # HIGH certainty findings present
EXIT_MEDIUM = 2  # MEDIUM is the highest certainty found
EXIT_LOW = 3  # Only LOW certainty findings

# =============================================================================
# Common Constants
# =============================================================================

# Analysis categories, in the order the analyzer runs them
CATEGORY_TOOL_CONSISTENCY = "tool-consistency"
CATEGORY_WORKFLOW = "workflow"
CATEGORY_CONSISTENCY = "consistency"
CATEGORY_SKILL_ALIGNMENT = "skill-alignment"

ALL_CATEGORIES = (
    CATEGORY_TOOL_CONSISTENCY,
    CATEGORY_WORKFLOW,
    CATEGORY_CONSISTENCY,
    CATEGORY_SKILL_ALIGNMENT,
)

# Every finding produced by this analyzer carries this source tag
FINDING_SOURCE = "cross-file"

# Directories never descended into while walking a corpus
SKIP_DIRS = {
    "node_modules",
    ".git",
    "dist",
    "build",
    "out",
    "target",
    "__pycache__",
    ".venv",
}


def should_skip_dir(name: str) -> bool:
    """Check if a directory name should be skipped during scanning."""
    return name in SKIP_DIRS or name.startswith(".")


# =============================================================================
# Findings
# =============================================================================


@dataclass(frozen=True)
class Finding:
    """Single cross-file finding.

    Attributes:
        pattern_id: Identifier of the pattern check that produced the finding
        certainty: HIGH, MEDIUM or LOW
        file: Path of the agent or skill file the finding is about
        issue: Human-readable description of the problem
        fix: Suggested remedy, if the pattern provides one
        category: Analysis category the pattern belongs to
        source: Producer tag (always "cross-file")
        original_certainty: Certainty before a severity override, if any
    """

    pattern_id: str
    certainty: Certainty
    file: str
    issue: str
    fix: str | None = None
    category: str | None = None
    source: str = FINDING_SOURCE
    original_certainty: Certainty | None = None

    def with_certainty(self, certainty: Certainty) -> Finding:
        """Return a copy carrying an overridden certainty."""
        if certainty == self.certainty:
            return self
        return replace(self, certainty=certainty, original_certainty=self.certainty)

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, str] = {
            "patternId": self.pattern_id,
            "certainty": self.certainty,
            "file": self.file,
            "issue": self.issue,
            "source": self.source,
        }
        if self.fix is not None:
            result["fix"] = self.fix
        if self.category is not None:
            result["category"] = self.category
        if self.original_certainty is not None:
            result["originalCertainty"] = self.original_certainty
        return result


@dataclass(frozen=True)
class Suppression:
    """Why a finding was suppressed.

    Attributes:
        reason: inline, config, rule or file
        source: Human-readable origin (e.g. "inline comment", "ignore.files: docs/**")
        pattern_id: Pattern id the suppression applied to
        user_reason: Free-text reason given in the config, if any
    """

    reason: str
    source: str
    pattern_id: str
    user_reason: str | None = None

    def to_dict(self) -> dict[str, str]:
        result = {"reason": self.reason, "source": self.source, "patternId": self.pattern_id}
        if self.user_reason:
            result["userReason"] = self.user_reason
        return result


@dataclass(frozen=True)
class SuppressedFinding:
    """A finding together with the suppression that hid it."""

    finding: Finding
    suppression: Suppression

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = dict(self.finding.to_dict())
        result["suppression"] = self.suppression.to_dict()
        return result


@dataclass
class AnalysisSummary:
    """Counts describing one analysis run."""

    agents_analyzed: int = 0
    skills_analyzed: int = 0
    total_findings: int = 0
    by_category: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "agentsAnalyzed": self.agents_analyzed,
            "skillsAnalyzed": self.skills_analyzed,
            "totalFindings": self.total_findings,
            "byCategory": dict(self.by_category),
        }


@dataclass
class AnalysisResult:
    """Complete result of one analyze() call.

    Built once per invocation and returned to the caller; nothing is
    persisted between runs.
    """

    root_dir: str = ""
    findings: list[Finding] = field(default_factory=list)
    summary: AnalysisSummary = field(default_factory=AnalysisSummary)
    suppressed: list[SuppressedFinding] = field(default_factory=list)

    def count_by_certainty(self) -> dict[str, int]:
        """Get count of findings by certainty."""
        counts: dict[str, int] = {c: 0 for c in VALID_CERTAINTIES}
        for finding in self.findings:
            counts[finding.certainty] += 1
        return counts

    @property
    def exit_code(self) -> int:
        """Get appropriate exit code based on the highest certainty found."""
        counts = self.count_by_certainty()
        if counts["HIGH"]:
            return EXIT_HIGH
        if counts["MEDIUM"]:
            return EXIT_MEDIUM
        if counts["LOW"]:
            return EXIT_LOW
        return EXIT_OK

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "rootDir": self.root_dir,
            "findings": [f.to_dict() for f in self.findings],
            "summary": self.summary.to_dict(),
            "suppressed": [f.to_dict() for f in self.suppressed],
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert the result to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


# =============================================================================
# Output Formatting
# =============================================================================

# ANSI color codes
COLORS = {
    "HIGH": "\033[91m",  # Red
    "MEDIUM": "\033[93m",  # Yellow
    "LOW": "\033[94m",  # Blue
    "INFO": "\033[90m",  # Gray
    "PASSED": "\033[92m",  # Green
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
}


def colorize(text: str, level: str) -> str:
    """Apply color to text based on level."""
    color = COLORS.get(level, "")
    return f"{color}{text}{COLORS['RESET']}"


def format_finding(finding: Finding, show_file: bool = True) -> str:
    """Format a single finding for terminal output."""
    color = COLORS.get(finding.certainty, "")
    reset = COLORS["RESET"]

    parts = [f"{color}[{finding.certainty}]{reset} {finding.pattern_id}: {finding.issue}"]
    if show_file:
        parts.append(f" ({finding.file})")
    return "".join(parts)


def print_report_summary(result: AnalysisResult, title: str = "Cross-File Analysis Report") -> None:
    """Print a formatted summary of an analysis result."""
    counts = result.count_by_certainty()
    summary = result.summary

    print(f"\n{'=' * 60}")
    print(f"{COLORS['BOLD']}{title}{COLORS['RESET']}")
    print(f"{'=' * 60}")

    print(f"\nAgents analyzed: {summary.agents_analyzed}")
    print(f"Skills analyzed: {summary.skills_analyzed}")
    for category, count in summary.by_category.items():
        print(f"  {category}: {count}")

    print(f"\n{COLORS['HIGH']}HIGH:   {counts['HIGH']}{COLORS['RESET']}")
    print(f"{COLORS['MEDIUM']}MEDIUM: {counts['MEDIUM']}{COLORS['RESET']}")
    print(f"{COLORS['LOW']}LOW:    {counts['LOW']}{COLORS['RESET']}")
    if result.suppressed:
        print(f"{COLORS['INFO']}Suppressed: {len(result.suppressed)}{COLORS['RESET']}")

    exit_code = result.exit_code
    if exit_code == EXIT_OK:
        print("\n" + colorize("✓ No cross-file issues found", "PASSED"))
    elif exit_code == EXIT_HIGH:
        print("\n" + colorize("✗ High-certainty issues found - should fix", "HIGH"))
    elif exit_code == EXIT_MEDIUM:
        print("\n" + colorize("! Medium-certainty issues found - review recommended", "MEDIUM"))
    else:
        print("\n" + colorize("~ Low-certainty issues found", "LOW"))


def print_findings_by_certainty(result: AnalysisResult, verbose: bool = False) -> None:
    """Print findings grouped by certainty level."""
    by_certainty: dict[str, list[Finding]] = {c: [] for c in VALID_CERTAINTIES}
    for finding in result.findings:
        by_certainty[finding.certainty].append(finding)

    for certainty in VALID_CERTAINTIES:
        findings = by_certainty[certainty]
        if findings:
            print(f"\n{COLORS[certainty]}--- {certainty} ({len(findings)}) ---{COLORS['RESET']}")
            for finding in findings:
                print(f"  {format_finding(finding)}")
                if verbose and finding.fix:
                    print(f"    {COLORS['DIM']}fix: {finding.fix}{COLORS['RESET']}")
