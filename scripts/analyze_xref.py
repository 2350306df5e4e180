#!/usr/bin/env python3
"""
Cross-File Analyzer - Analyzer and CLI

Analyzes relationships between the agents and skills of every plugin under
<root>/plugins/:
1. tool-consistency: agent bodies only use tools their frontmatter declares
2. workflow: subagent_type references point at existing agents
3. consistency: duplicated and contradictory critical instructions, and
   agents nothing references
4. skill-alignment: skill bodies only use tools in allowed-tools

Usage:
    uv run python scripts/analyze_xref.py /path/to/repo
    uv run python scripts/analyze_xref.py /path/to/repo --verbose
    uv run python scripts/analyze_xref.py /path/to/repo --json
    uv run python scripts/analyze_xref.py /path/to/repo --category workflow

Exit codes:
    0 - No findings
    1 - HIGH certainty findings
    2 - MEDIUM certainty findings (no HIGH)
    3 - LOW certainty findings only
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Iterable, Sequence

from xref_common import (
    ALL_CATEGORIES,
    CATEGORY_CONSISTENCY,
    CATEGORY_SKILL_ALIGNMENT,
    CATEGORY_TOOL_CONSISTENCY,
    CATEGORY_WORKFLOW,
    AnalysisResult,
    AnalysisSummary,
    Finding,
    print_findings_by_certainty,
    print_report_summary,
)
from xref_config import load_config
from xref_corpus import AgentRecord, SkillRecord, load_all_agents, load_all_skills
from xref_extract import extract_agent_references, extract_critical_instructions, extract_tool_mentions
from xref_patterns import (
    ALWAYS_PATTERN,
    CONTRADICTION_SIMILARITY_THRESHOLD,
    CROSS_FILE_PATTERNS,
    DUPLICATE_FILE_THRESHOLD,
    NEVER_PATTERN,
    CrossFilePattern,
    PatternResult,
    calculate_similarity,
    extract_rule_action,
    is_entry_point,
    parse_tool_list,
)
from xref_platform import load_known_tools
from xref_suppression import filter_findings, generate_suppression_summary

logger = logging.getLogger(__name__)

# Normalized instructions shorter than this are too generic to compare
MIN_DUPLICATE_INSTRUCTION_LENGTH = 20

# Frontmatter keys holding a skill's tool allowance, in lookup order
SKILL_TOOLS_KEYS = ("allowed-tools", "allowedTools", "tools")


# =============================================================================
# Helper Functions
# =============================================================================


def make_finding(pattern: CrossFilePattern, result: PatternResult, file: str) -> Finding:
    """Build a Finding from a pattern hit."""
    return Finding(
        pattern_id=pattern.id,
        certainty=pattern.certainty,
        file=file,
        issue=result["issue"],
        fix=result.get("fix"),
        category=pattern.category,
    )


def get_declared_tools(frontmatter: dict[str, Any], keys: Sequence[str] = ("tools",)) -> list[str]:
    """Get tool declarations from the first present frontmatter key."""
    for key in keys:
        value = frontmatter.get(key)
        if value:
            return parse_tool_list(value)
    return []


# =============================================================================
# Category: tool-consistency
# =============================================================================


def analyze_tool_consistency(agents: Iterable[AgentRecord], known_tools: Sequence[str]) -> list[Finding]:
    """Check that agent bodies only use tools their frontmatter declares.

    Agents without a tools field are unrestricted and never flagged.
    """
    findings: list[Finding] = []
    pattern = CROSS_FILE_PATTERNS["tool_not_in_allowed_list"]

    for agent in agents:
        declared_tools = get_declared_tools(agent.frontmatter)
        if not declared_tools:
            continue

        result = pattern.check(
            {
                "declaredTools": declared_tools,
                "usedTools": sorted(extract_tool_mentions(agent.body, known_tools)),
                "agentName": agent.name,
            }
        )
        if result:
            findings.append(make_finding(pattern, result, agent.path))

    return findings


# =============================================================================
# Category: workflow
# =============================================================================


def analyze_workflow_completeness(agents: Sequence[AgentRecord]) -> list[Finding]:
    """Check that every subagent_type reference names an existing agent."""
    findings: list[Finding] = []
    pattern = CROSS_FILE_PATTERNS["missing_workflow_agent"]
    existing_agents = [{"plugin": a.plugin, "name": a.name} for a in agents]

    for agent in agents:
        for reference in extract_agent_references(agent.body):
            result = pattern.check(
                {
                    "referencedAgent": reference,
                    "existingAgents": existing_agents,
                    "sourceFile": Path(agent.path).name,
                }
            )
            if result:
                findings.append(make_finding(pattern, result, agent.path))

    return findings


# =============================================================================
# Category: consistency
# =============================================================================


def find_duplicate_instructions(agents: Iterable[AgentRecord]) -> list[Finding]:
    """Report critical instructions repeated verbatim across 3+ files."""
    findings: list[Finding] = []
    pattern = CROSS_FILE_PATTERNS["duplicate_instructions"]
    instruction_files: dict[str, list[str]] = {}

    for agent in agents:
        for instruction in extract_critical_instructions(agent.body):
            normalized = instruction.line.lower().strip()
            if len(normalized) < MIN_DUPLICATE_INSTRUCTION_LENGTH:
                continue
            files = instruction_files.setdefault(normalized, [])
            if agent.path not in files:
                files.append(agent.path)

    for instruction, files in instruction_files.items():
        if len(files) < DUPLICATE_FILE_THRESHOLD:
            continue
        result = pattern.check({"instruction": instruction, "files": files})
        if result:
            findings.append(make_finding(pattern, result, files[0]))

    return findings


def find_contradictory_rules(agents: Iterable[AgentRecord]) -> list[Finding]:
    """Report ALWAYS rules whose action closely matches a NEVER rule elsewhere."""
    findings: list[Finding] = []
    pattern = CROSS_FILE_PATTERNS["contradictory_rules"]
    always_rules: list[tuple[str, str]] = []
    never_rules: list[tuple[str, str]] = []

    for agent in agents:
        for instruction in extract_critical_instructions(agent.body):
            if ALWAYS_PATTERN.search(instruction.line):
                always_rules.append((instruction.line, agent.path))
            if NEVER_PATTERN.search(instruction.line):
                never_rules.append((instruction.line, agent.path))

    seen: set[tuple[str, str, str, str]] = set()
    for always_line, always_file in always_rules:
        always_action = extract_rule_action(always_line)
        for never_line, never_file in never_rules:
            if always_file == never_file:
                continue

            key = (always_line, always_file, never_line, never_file)
            if key in seen:
                continue
            seen.add(key)

            never_action = extract_rule_action(never_line, negative=True)
            if calculate_similarity(always_action, never_action) <= CONTRADICTION_SIMILARITY_THRESHOLD:
                continue

            result = pattern.check(
                {
                    "rule1": always_line,
                    "rule2": never_line,
                    "file1": Path(always_file).name,
                    "file2": Path(never_file).name,
                }
            )
            if result:
                findings.append(make_finding(pattern, result, always_file))

    return findings


def analyze_prompt_consistency(agents: Sequence[AgentRecord]) -> list[Finding]:
    """Check agents for duplicated and contradictory critical instructions."""
    return find_duplicate_instructions(agents) + find_contradictory_rules(agents)


def analyze_orphaned_prompts(agents: Sequence[AgentRecord], skills: Sequence[SkillRecord]) -> list[Finding]:
    """Report agents that no agent or skill references.

    Agents named like entry points (orchestrator, discoverer, validator,
    monitor) are assumed to be invoked directly and are never reported.
    """
    findings: list[Finding] = []
    pattern = CROSS_FILE_PATTERNS["orphaned_prompt"]

    references: dict[str, list[str]] = {}
    for record in [*agents, *skills]:
        for reference in extract_agent_references(record.body):
            references.setdefault(reference, []).append(record.path)

    for agent in agents:
        if is_entry_point(agent.name):
            continue

        referenced_by = references.get(agent.full_name, []) + references.get(agent.name, [])
        result = pattern.check(
            {
                "promptFile": Path(agent.path).name,
                "referencedBy": referenced_by,
            }
        )
        if result:
            findings.append(make_finding(pattern, result, agent.path))

    return findings


# =============================================================================
# Category: skill-alignment
# =============================================================================


def analyze_skill_alignment(skills: Iterable[SkillRecord], known_tools: Sequence[str]) -> list[Finding]:
    """Check that skill bodies only use tools listed in allowed-tools."""
    findings: list[Finding] = []
    pattern = CROSS_FILE_PATTERNS["skill_tool_mismatch"]

    for skill in skills:
        allowed_tools = get_declared_tools(skill.frontmatter, SKILL_TOOLS_KEYS)
        if not allowed_tools:
            continue

        result = pattern.check(
            {
                "skillName": skill.name,
                "skillAllowedTools": allowed_tools,
                "promptUsedTools": sorted(extract_tool_mentions(skill.body, known_tools)),
            }
        )
        if result:
            findings.append(make_finding(pattern, result, skill.path))

    return findings


# =============================================================================
# Main Analysis Function
# =============================================================================


def analyze(
    root_dir: str | Path,
    verbose: bool = False,
    categories: Iterable[str] | None = None,
    known_tools: Sequence[str] | None = None,
    config: dict[str, Any] | None = None,
    apply_suppressions: bool = False,
) -> AnalysisResult:
    """Run the cross-file analysis over a repository.

    Args:
        root_dir: Repository root containing plugins/
        verbose: Log per-stage progress at INFO level
        categories: Categories to run (default: all four); a single name
            may be passed as a string
        known_tools: Tool names to detect; defaults to config knownTools or
            the detected platform's built-in list
        config: Analyzer config; loaded from root_dir when None
        apply_suppressions: Filter findings through inline comments and the
            config ignore/severity sections

    Returns:
        AnalysisResult with findings in category order and summary counts
    """
    log = logger.info if verbose else logger.debug
    if isinstance(categories, str):
        categories = (categories,)
    requested = set(ALL_CATEGORIES if categories is None else categories)

    if config is None:
        config = load_config(root_dir)
    if known_tools is None:
        known_tools = load_known_tools(root_dir, config)

    agents = load_all_agents(root_dir)
    skills = load_all_skills(root_dir)
    log("Loaded %d agent(s) and %d skill(s) from %s", len(agents), len(skills), root_dir)

    findings: list[Finding] = []
    by_category: dict[str, int] = {}

    if CATEGORY_TOOL_CONSISTENCY in requested:
        found = analyze_tool_consistency(agents, known_tools)
        findings.extend(found)
        by_category[CATEGORY_TOOL_CONSISTENCY] = len(found)

    if CATEGORY_WORKFLOW in requested:
        found = analyze_workflow_completeness(agents)
        findings.extend(found)
        by_category[CATEGORY_WORKFLOW] = len(found)

    if CATEGORY_CONSISTENCY in requested:
        found = analyze_prompt_consistency(agents) + analyze_orphaned_prompts(agents, skills)
        findings.extend(found)
        by_category[CATEGORY_CONSISTENCY] = len(found)

    if CATEGORY_SKILL_ALIGNMENT in requested:
        found = analyze_skill_alignment(skills, known_tools)
        findings.extend(found)
        by_category[CATEGORY_SKILL_ALIGNMENT] = len(found)

    for category, count in by_category.items():
        log("%s: %d finding(s)", category, count)

    result = AnalysisResult(root_dir=str(root_dir))

    if apply_suppressions:
        contents = {record.path: record.content for record in [*agents, *skills]}
        findings, result.suppressed = filter_findings(findings, config, root_dir, contents)
        for category in by_category:
            by_category[category] = sum(1 for f in findings if f.category == category)
        log("Suppressed %d finding(s)", len(result.suppressed))

    result.findings = findings
    result.summary = AnalysisSummary(
        agents_analyzed=len(agents),
        skills_analyzed=len(skills),
        total_findings=len(findings),
        by_category=by_category,
    )
    return result


# =============================================================================
# CLI Entry Point
# =============================================================================


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point for cross-file analysis.

    Returns:
        Exit code (0=no findings, 1=HIGH, 2=MEDIUM, 3=LOW)
    """
    parser = argparse.ArgumentParser(
        description="Analyze cross-file consistency of plugin agents and skills",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    uv run python scripts/analyze_xref.py /path/to/repo
    uv run python scripts/analyze_xref.py /path/to/repo --verbose
    uv run python scripts/analyze_xref.py /path/to/repo --json
    uv run python scripts/analyze_xref.py . --category workflow --category consistency

Exit codes:
    0 - No findings
    1 - HIGH certainty findings
    2 - MEDIUM certainty findings
    3 - LOW certainty findings only
        """,
    )
    parser.add_argument(
        "root_dir",
        nargs="?",
        default=".",
        help="Repository root containing plugins/ (default: current directory)",
    )
    parser.add_argument(
        "--category",
        "-c",
        action="append",
        choices=ALL_CATEGORIES,
        dest="categories",
        help="Category to analyze (repeatable, default: all)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show progress, suggested fixes and suppression details",
    )
    parser.add_argument(
        "--json",
        "-j",
        action="store_true",
        help="Output results as JSON",
    )
    parser.add_argument(
        "--no-suppress",
        action="store_true",
        help="Ignore inline enhance:ignore comments and config suppressions",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    root_dir = Path(args.root_dir).resolve()
    if not root_dir.is_dir():
        print(f"Error: {root_dir} is not a directory", file=sys.stderr)
        return 1

    result = analyze(
        root_dir,
        verbose=args.verbose,
        categories=args.categories,
        apply_suppressions=not args.no_suppress,
    )

    if args.json:
        print(result.to_json())
    else:
        print_report_summary(result)
        print_findings_by_certainty(result, verbose=args.verbose)
        summary = generate_suppression_summary(result.suppressed)
        if summary and args.verbose:
            print()
            print(summary)

    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
