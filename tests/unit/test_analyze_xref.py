#!/usr/bin/env python3
"""Tests for analyze_xref.py - end-to-end cross-file analysis and the CLI."""

import json
import logging
import subprocess
import sys
from pathlib import Path

import pytest

from analyze_xref import (
    analyze,
    analyze_orphaned_prompts,
    analyze_tool_consistency,
    get_declared_tools,
    main,
)
from conftest import write_agent, write_skill
from xref_common import AnalysisResult, Finding
from xref_corpus import load_all_agents, load_all_skills
from xref_platform import CLAUDE_CODE_TOOLS

SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "analyze_xref.py"


def ids(result: AnalysisResult) -> list[str]:
    return [f.pattern_id for f in result.findings]


@pytest.fixture
def undeclared_tool_repo(tmp_path: Path) -> Path:
    """Three agents; only agent-a declares tools and then uses Write."""
    write_agent(
        tmp_path,
        "demo",
        "agent-a",
        'Read the inputs, then Write({ file_path: "/out.md" }).\n',
        {"name": "agent-a", "tools": ["Read", "Grep"]},
    )
    write_agent(tmp_path, "demo", "agent-b", "Summarize the findings.\n", {"name": "agent-b"})
    write_agent(tmp_path, "demo", "agent-c", "Use the Edit tool on drafts.\n", {"name": "agent-c"})
    return tmp_path


@pytest.fixture
def orphan_repo(tmp_path: Path) -> Path:
    """Agents wired by references, plus one nothing points at."""
    write_agent(
        tmp_path,
        "flow",
        "task-orchestrator",
        'Task({ subagent_type: "flow:worker", prompt: "Do the work" })\n',
    )
    write_agent(tmp_path, "flow", "worker", "Work on the task.\n")
    write_agent(tmp_path, "flow", "helper", "Help out.\n")
    write_agent(tmp_path, "flow", "lonely", "Nobody calls me.\n")
    write_skill(tmp_path, "flow", "assist", 'Task({ subagent_type: "helper" })\n')
    return tmp_path


# =============================================================================
# End-to-end scenarios
# =============================================================================


class TestToolConsistency:
    """Tests for the tool-consistency category."""

    def test_undeclared_tool(self, undeclared_tool_repo: Path) -> None:
        """An agent declaring Read, Grep but calling Write is reported once."""
        result = analyze(undeclared_tool_repo)

        tool_findings = [f for f in result.findings if f.pattern_id == "tool_not_in_allowed_list"]
        assert len(tool_findings) == 1
        finding = tool_findings[0]
        assert finding.certainty == "HIGH"
        assert finding.file == str(undeclared_tool_repo / "plugins" / "demo" / "agents" / "agent-a.md")
        assert "Write" in finding.issue
        assert finding.category == "tool-consistency"
        assert finding.source == "cross-file"

    def test_agents_without_tools_are_unrestricted(self, tmp_path: Path) -> None:
        write_agent(tmp_path, "p", "free", 'Write({ file_path: "/x" }) and use the Bash tool.\n', {"name": "free"})
        result = analyze(tmp_path, categories=["tool-consistency"])
        assert result.findings == []

    def test_scoped_bash_declaration(self, tmp_path: Path) -> None:
        """Bash(git:*) in a comma-separated string covers inferred shell usage."""
        write_agent(
            tmp_path,
            "p",
            "committer",
            'Run git status, then Read({ file_path: "CHANGELOG.md" }).\n',
            {"tools": "Read, Bash(git:*)"},
        )
        result = analyze(tmp_path, categories=["tool-consistency"])
        assert result.findings == []

    def test_frontmatter_after_byte_order_mark(self, tmp_path: Path) -> None:
        """A BOM before the opening delimiter keeps the tools declaration."""
        path = tmp_path / "plugins" / "p" / "agents" / "bom.md"
        path.parent.mkdir(parents=True)
        path.write_text("\ufeff---\ntools: [Read]\n---\nWrite({ file_path: 'x' })\n", encoding="utf-8")

        result = analyze(tmp_path, categories=["tool-consistency"])

        assert ids(result) == ["tool_not_in_allowed_list"]
        assert "Write" in result.findings[0].issue

    def test_bad_example_usage_ignored(self, tmp_path: Path) -> None:
        body = "<bad-example>\nWrite({ file_path: '/wrong' })\n</bad-example>\nRead({ file_path: '/ok' })\n"
        write_agent(tmp_path, "p", "careful", body, {"tools": ["Read"]})
        assert analyze(tmp_path, categories=["tool-consistency"]).findings == []

    def test_explicit_known_tools(self, undeclared_tool_repo: Path) -> None:
        """Tools outside the known list are never detected."""
        result = analyze(undeclared_tool_repo, categories=["tool-consistency"], known_tools=["Read", "Grep"])
        assert result.findings == []

    def test_config_known_tools(self, undeclared_tool_repo: Path) -> None:
        (undeclared_tool_repo / ".enhancerc.json").write_text(
            json.dumps({"knownTools": ["Read", "Grep"]}), encoding="utf-8"
        )
        assert analyze(undeclared_tool_repo, categories=["tool-consistency"]).findings == []

    def test_sub_analysis_directly(self, undeclared_tool_repo: Path) -> None:
        agents = load_all_agents(undeclared_tool_repo)
        findings = analyze_tool_consistency(agents, CLAUDE_CODE_TOOLS)
        assert [f.pattern_id for f in findings] == ["tool_not_in_allowed_list"]


class TestWorkflow:
    """Tests for the workflow category."""

    def test_missing_agent(self, tmp_path: Path) -> None:
        """A subagent_type naming an absent agent is a HIGH finding."""
        caller = write_agent(
            tmp_path,
            "pluginX",
            "caller",
            'Task({ subagent_type: "pluginX:missingAgent", prompt: "Go" })\n',
        )

        result = analyze(tmp_path, categories=["workflow"])

        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.pattern_id == "missing_workflow_agent"
        assert finding.certainty == "HIGH"
        assert finding.file == str(caller)
        assert "pluginX:missingAgent" in finding.issue
        assert "caller.md" in finding.issue

    def test_existing_agent(self, tmp_path: Path) -> None:
        write_agent(tmp_path, "pluginX", "caller", "Task({ subagent_type: 'pluginX:worker' })\n")
        write_agent(tmp_path, "pluginX", "worker", "Work.\n")
        assert analyze(tmp_path, categories=["workflow"]).findings == []

    def test_builtin_agent_type(self, tmp_path: Path) -> None:
        write_agent(tmp_path, "p", "caller", 'Task({ subagent_type: "general-purpose" })\n')
        assert analyze(tmp_path, categories=["workflow"]).findings == []


class TestConsistency:
    """Tests for the consistency category."""

    RULE = "NEVER use git push --force on the main branch"

    def test_duplicate_in_three_files(self, tmp_path: Path) -> None:
        for name in ("a1", "a2", "a3"):
            write_agent(tmp_path, "p", name, f"## Rules\n\n{self.RULE}\n")

        result = analyze(tmp_path, categories=["consistency"])

        duplicates = [f for f in result.findings if f.pattern_id == "duplicate_instructions"]
        assert len(duplicates) == 1
        assert duplicates[0].certainty == "MEDIUM"
        assert "3 files" in duplicates[0].issue
        assert duplicates[0].file == str(tmp_path / "plugins" / "p" / "agents" / "a1.md")

    def test_duplicate_in_two_files(self, tmp_path: Path) -> None:
        for name in ("a1", "a2"):
            write_agent(tmp_path, "p", name, f"{self.RULE}\n")
        assert "duplicate_instructions" not in ids(analyze(tmp_path, categories=["consistency"]))

    def test_duplicate_case_insensitive(self, tmp_path: Path) -> None:
        write_agent(tmp_path, "p", "a1", f"{self.RULE}\n")
        write_agent(tmp_path, "p", "a2", f"{self.RULE.upper()}\n")
        write_agent(tmp_path, "p", "a3", f"  {self.RULE}  \n")
        assert "duplicate_instructions" in ids(analyze(tmp_path, categories=["consistency"]))

    def test_short_instructions_not_compared(self, tmp_path: Path) -> None:
        for name in ("a1", "a2", "a3"):
            write_agent(tmp_path, "p", name, "MUST be brief.\n")
        assert "duplicate_instructions" not in ids(analyze(tmp_path, categories=["consistency"]))

    def test_contradictory_rules(self, tmp_path: Path) -> None:
        committer = write_agent(tmp_path, "p", "committer", "ALWAYS commit changes to the feature branch\n")
        write_agent(tmp_path, "p", "guard", "NEVER commit changes to the feature branch\n")

        result = analyze(tmp_path, categories=["consistency"])

        contradictions = [f for f in result.findings if f.pattern_id == "contradictory_rules"]
        assert len(contradictions) == 1
        assert contradictions[0].file == str(committer)
        assert "committer.md" in contradictions[0].issue
        assert "guard.md" in contradictions[0].issue

    def test_same_file_rules_not_contradictory(self, tmp_path: Path) -> None:
        body = "ALWAYS commit changes to the feature branch\nNEVER commit changes to the feature branch\n"
        write_agent(tmp_path, "p", "conflicted", body)
        assert "contradictory_rules" not in ids(analyze(tmp_path, categories=["consistency"]))

    def test_similarity_at_threshold_not_contradictory(self, tmp_path: Path) -> None:
        """Actions scoring exactly 0.6 must exceed the threshold to count."""
        write_agent(tmp_path, "p", "one", "ALWAYS commit changes before switchin\n")
        write_agent(tmp_path, "p", "two", "NEVER commit changes before review ap\n")
        assert "contradictory_rules" not in ids(analyze(tmp_path, categories=["consistency"]))

    def test_unrelated_rules(self, tmp_path: Path) -> None:
        write_agent(tmp_path, "p", "one", "ALWAYS run the linter before opening a pull request\n")
        write_agent(tmp_path, "p", "two", "NEVER store credentials in plain text files\n")
        assert "contradictory_rules" not in ids(analyze(tmp_path, categories=["consistency"]))

    def test_orphans(self, orphan_repo: Path) -> None:
        """Only the agent nobody references is an orphan."""
        result = analyze(orphan_repo, categories=["consistency"])

        assert ids(result) == ["orphaned_prompt"]
        finding = result.findings[0]
        assert finding.certainty == "LOW"
        assert "lonely.md" in finding.issue

    def test_orphans_sub_analysis(self, orphan_repo: Path) -> None:
        findings = analyze_orphaned_prompts(load_all_agents(orphan_repo), load_all_skills(orphan_repo))
        assert [Path(f.file).name for f in findings] == ["lonely.md"]

    def test_entry_point_names_skipped(self, tmp_path: Path) -> None:
        for name in ("drift-monitor", "plugin-validator", "skill-discoverer"):
            write_agent(tmp_path, "p", name, "Runs on its own.\n")
        assert analyze(tmp_path, categories=["consistency"]).findings == []


class TestSkillAlignment:
    """Tests for the skill-alignment category."""

    def test_skill_uses_unlisted_tool(self, tmp_path: Path) -> None:
        """allowed-tools: Read, Grep with a Write call is a HIGH finding."""
        skill = write_skill(
            tmp_path,
            "docs",
            "writer",
            'Collect notes, then Write({ file_path: "NOTES.md" }).\n',
            "name: writer\nallowed-tools: Read, Grep",
        )

        result = analyze(tmp_path, categories=["skill-alignment"])

        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.pattern_id == "skill_tool_mismatch"
        assert finding.certainty == "HIGH"
        assert finding.file == str(skill)
        assert "Write" in finding.issue

    def test_skill_without_allowed_tools(self, tmp_path: Path) -> None:
        write_skill(tmp_path, "docs", "free", 'Write({ file_path: "x" })\n', {"name": "free"})
        assert analyze(tmp_path, categories=["skill-alignment"]).findings == []

    def test_camel_case_key(self, tmp_path: Path) -> None:
        write_skill(tmp_path, "docs", "s", 'Edit({ file_path: "x" })\n', {"allowedTools": ["Read"]})
        assert ids(analyze(tmp_path, categories=["skill-alignment"])) == ["skill_tool_mismatch"]


# =============================================================================
# Result shape
# =============================================================================


class TestAnalyzeResult:
    """Tests for summary counts, category selection and determinism."""

    def test_summary(self, undeclared_tool_repo: Path) -> None:
        write_skill(undeclared_tool_repo, "demo", "notes", "Take notes.\n")

        result = analyze(undeclared_tool_repo)

        assert result.summary.agents_analyzed == 3
        assert result.summary.skills_analyzed == 1
        assert result.summary.total_findings == len(result.findings)
        assert list(result.summary.by_category) == ["tool-consistency", "workflow", "consistency", "skill-alignment"]
        assert sum(result.summary.by_category.values()) == len(result.findings)

    def test_findings_in_category_order(self, undeclared_tool_repo: Path) -> None:
        """tool-consistency findings come before the orphan findings."""
        result = analyze(undeclared_tool_repo)
        categories = [f.category for f in result.findings]
        assert categories == sorted(categories, key=["tool-consistency", "consistency"].index)

    def test_partial_categories(self, undeclared_tool_repo: Path) -> None:
        result = analyze(undeclared_tool_repo, categories=["workflow"])
        assert result.summary.by_category == {"workflow": 0}
        assert result.findings == []

    def test_single_category_string(self, undeclared_tool_repo: Path) -> None:
        """A bare category name runs that category, not its characters."""
        result = analyze(undeclared_tool_repo, categories="tool-consistency")
        assert result.summary.by_category == {"tool-consistency": 1}
        assert ids(result) == ["tool_not_in_allowed_list"]

    def test_unknown_category_ignored(self, undeclared_tool_repo: Path) -> None:
        result = analyze(undeclared_tool_repo, categories=["bogus"])
        assert result.summary.by_category == {}
        assert result.findings == []
        assert result.summary.agents_analyzed == 3

    def test_missing_plugins_dir(self, tmp_path: Path) -> None:
        result = analyze(tmp_path)
        assert result.findings == []
        assert result.summary.agents_analyzed == 0
        assert result.summary.skills_analyzed == 0
        assert result.exit_code == 0

    def test_repeat_runs_are_identical(self, orphan_repo: Path) -> None:
        """Nothing is cached; two runs over the same tree agree."""
        first = analyze(orphan_repo)
        second = analyze(orphan_repo)
        assert first.to_dict() == second.to_dict()
        assert {f.to_dict()["issue"] for f in first.findings} == {f.to_dict()["issue"] for f in second.findings}

    def test_picks_up_new_files_between_runs(self, orphan_repo: Path) -> None:
        before = analyze(orphan_repo, categories=["consistency"])
        write_agent(orphan_repo, "flow", "stray", "Also unreferenced.\n")
        after = analyze(orphan_repo, categories=["consistency"])
        assert len(after.findings) == len(before.findings) + 1

    def test_verbose_logs_progress(self, orphan_repo: Path, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="analyze_xref")
        quiet = analyze(orphan_repo)
        loud = analyze(orphan_repo, verbose=True)

        assert quiet.to_dict() == loud.to_dict()
        assert "Loaded 4 agent(s) and 1 skill(s)" in caplog.text

    def test_to_dict_keys(self, orphan_repo: Path) -> None:
        data = analyze(orphan_repo).to_dict()
        assert set(data) == {"rootDir", "findings", "summary", "suppressed"}
        assert set(data["summary"]) == {"agentsAnalyzed", "skillsAnalyzed", "totalFindings", "byCategory"}
        assert json.loads(analyze(orphan_repo).to_json()) == data


class TestSuppressions:
    """Tests for analyze(apply_suppressions=True)."""

    def test_inline_comment(self, orphan_repo: Path) -> None:
        write_agent(orphan_repo, "flow", "lonely", "<!-- enhance:ignore orphaned_prompt -->\nNobody calls me.\n")

        plain = analyze(orphan_repo, categories=["consistency"])
        filtered = analyze(orphan_repo, categories=["consistency"], apply_suppressions=True)

        assert ids(plain) == ["orphaned_prompt"]
        assert filtered.findings == []
        assert len(filtered.suppressed) == 1
        assert filtered.suppressed[0].suppression.reason == "inline"
        assert filtered.summary.by_category == {"consistency": 0}
        assert filtered.summary.total_findings == 0

    def test_single_star_glob_stays_in_one_directory(self, orphan_repo: Path) -> None:
        """plugins/*.md does not reach agents nested deeper in the tree."""
        (orphan_repo / ".enhancerc.json").write_text(
            json.dumps({"ignore": {"files": ["plugins/*.md"]}}), encoding="utf-8"
        )
        result = analyze(orphan_repo, categories=["consistency"], apply_suppressions=True)
        assert ids(result) == ["orphaned_prompt"]
        assert result.suppressed == []

    def test_config_file_glob(self, orphan_repo: Path) -> None:
        (orphan_repo / ".enhancerc.json").write_text(
            json.dumps({"ignore": {"files": ["plugins/flow/agents/lonely.md"]}}), encoding="utf-8"
        )
        result = analyze(orphan_repo, categories=["consistency"], apply_suppressions=True)
        assert result.findings == []
        assert result.suppressed[0].suppression.reason == "file"

    def test_severity_override(self, orphan_repo: Path) -> None:
        config = {"ignore": {"patterns": [], "files": [], "rules": {}}, "severity": {"orphaned_prompt": "HIGH"}}

        result = analyze(orphan_repo, categories=["consistency"], config=config, apply_suppressions=True)

        assert len(result.findings) == 1
        assert result.findings[0].certainty == "HIGH"
        assert result.findings[0].to_dict()["originalCertainty"] == "LOW"
        assert result.exit_code == 1

    def test_not_applied_by_default(self, orphan_repo: Path) -> None:
        (orphan_repo / ".enhancerc.json").write_text(
            json.dumps({"ignore": {"patterns": ["orphaned_prompt"]}}), encoding="utf-8"
        )
        assert ids(analyze(orphan_repo, categories=["consistency"])) == ["orphaned_prompt"]


class TestModel:
    """Tests for Finding serialization and exit codes."""

    def test_finding_to_dict(self) -> None:
        finding = Finding(
            pattern_id="orphaned_prompt",
            certainty="LOW",
            file="a.md",
            issue="Orphaned prompt: a.md",
            fix="Reference it",
            category="consistency",
        )
        assert finding.to_dict() == {
            "patternId": "orphaned_prompt",
            "certainty": "LOW",
            "file": "a.md",
            "issue": "Orphaned prompt: a.md",
            "source": "cross-file",
            "fix": "Reference it",
            "category": "consistency",
        }

    def test_with_certainty(self) -> None:
        finding = Finding(pattern_id="x", certainty="LOW", file="a.md", issue="i")
        assert finding.with_certainty("LOW") is finding
        raised = finding.with_certainty("HIGH")
        assert raised.certainty == "HIGH"
        assert raised.original_certainty == "LOW"

    @pytest.mark.parametrize(
        ("certainties", "expected"),
        [([], 0), (["LOW"], 3), (["LOW", "MEDIUM"], 2), (["LOW", "HIGH", "MEDIUM"], 1)],
    )
    def test_exit_code(self, certainties: list[str], expected: int) -> None:
        findings = [Finding(pattern_id="x", certainty=c, file="a.md", issue="i") for c in certainties]  # type: ignore[arg-type]
        assert AnalysisResult(findings=findings).exit_code == expected

    def test_get_declared_tools(self) -> None:
        assert get_declared_tools({"tools": "Read, Grep"}) == ["Read", "Grep"]
        assert get_declared_tools({}) == []
        assert get_declared_tools({"allowedTools": ["Read"]}, ("allowed-tools", "allowedTools")) == ["Read"]


# =============================================================================
# CLI
# =============================================================================


class TestMain:
    """Tests for main() called in-process."""

    def test_json_output(self, undeclared_tool_repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code = main([str(undeclared_tool_repo), "--json", "--category", "tool-consistency"])

        data = json.loads(capsys.readouterr().out)
        assert exit_code == 1
        assert data["summary"]["byCategory"] == {"tool-consistency": 1}
        assert data["findings"][0]["patternId"] == "tool_not_in_allowed_list"

    def test_clean_text_output(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([str(tmp_path)]) == 0
        assert "No cross-file issues found" in capsys.readouterr().out

    def test_verbose_text_output(self, orphan_repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code = main([str(orphan_repo), "--verbose", "-c", "consistency"])

        out = capsys.readouterr().out
        assert exit_code == 3
        assert "[LOW]" in out
        assert "orphaned_prompt" in out
        assert "fix:" in out

    def test_no_suppress(self, orphan_repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
        write_agent(orphan_repo, "flow", "lonely", "<!-- enhance:ignore orphaned_prompt -->\nNobody calls me.\n")

        assert main([str(orphan_repo), "-c", "consistency", "--verbose"]) == 0
        assert "## Suppressed Findings" in capsys.readouterr().out
        assert main([str(orphan_repo), "-c", "consistency", "--no-suppress"]) == 3

    def test_nonexistent_root(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([str(tmp_path / "missing")]) == 1
        assert "is not a directory" in capsys.readouterr().err


class TestCLI:
    """Tests running the script as a subprocess."""

    def test_json_via_subprocess(self, tmp_path: Path) -> None:
        write_agent(tmp_path, "pluginX", "caller", 'Task({ subagent_type: "pluginX:missingAgent" })\n')

        proc = subprocess.run(
            [sys.executable, str(SCRIPT_PATH), str(tmp_path), "--json", "--category", "workflow"],
            capture_output=True,
            text=True,
            timeout=60,
        )

        assert proc.returncode == 1, proc.stderr
        data = json.loads(proc.stdout)
        assert [f["patternId"] for f in data["findings"]] == ["missing_workflow_agent"]
        assert data["summary"]["agentsAnalyzed"] == 1

    def test_invalid_root_via_subprocess(self, tmp_path: Path) -> None:
        proc = subprocess.run(
            [sys.executable, str(SCRIPT_PATH), str(tmp_path / "missing")],
            capture_output=True,
            text=True,
            timeout=60,
        )
        assert proc.returncode == 1
        assert "is not a directory" in proc.stderr
