"""Script-injecting analyzers run inside the loaded page."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from web_bench.bench.contracts import CancellationToken
from web_bench.bench.errors import FatalSetupError, ToolFailure
from web_bench.bench.models import AnalyzerResult, RuleFinding
from web_bench.bench.wcag import axe_tags_to_criteria, normalize_criteria
from web_bench.browser.provider import PageHandle
from web_bench.config import BrowserSettings

logger = logging.getLogger(__name__)

AXE_AUDIT_SCRIPT = """async () => {
  const start = performance.now();
  const results = await window.axe.run(document, { resultTypes: ["violations"] });
  return {
    timeMs: performance.now() - start,
    violations: results.violations.map((v) => ({
      id: v.id,
      tags: v.tags,
      nodeCount: v.nodes.length,
      impact: v.impact || null,
    })),
  };
}"""

ACCESSLINT_AUDIT_SCRIPT = """() => {
  const core = window.AccessLintCore;
  const ruleWcag = {};
  for (const rule of core.getActiveRules ? core.getActiveRules() : []) {
    ruleWcag[rule.id] = rule.wcag || [];
  }
  const start = performance.now();
  const results = core.runAudit(document);
  const timeMs = performance.now() - start;
  const byRule = {};
  for (const v of results.violations) {
    if (!byRule[v.ruleId]) {
      byRule[v.ruleId] = { ruleId: v.ruleId, count: 0, impact: v.impact || null };
    }
    byRule[v.ruleId].count++;
  }
  return { timeMs, violations: Object.values(byRule), ruleWcag };
}"""

IBM_AUDIT_SCRIPT = """async () => {
  const checker = new window.ace.Checker();
  const ruleWcag = {};
  for (const ruleset of checker.getGuidelines ? checker.getGuidelines() : []) {
    if (!String(ruleset.id).startsWith("WCAG")) continue;
    for (const checkpoint of ruleset.checkpoints || []) {
      for (const rule of checkpoint.rules || []) {
        (ruleWcag[rule.id] = ruleWcag[rule.id] || []).push(checkpoint.num);
      }
    }
  }
  const start = performance.now();
  const report = await checker.check(document, ["IBM_Accessibility"]);
  const timeMs = performance.now() - start;
  const byRule = {};
  for (const r of report.results) {
    if (r.value[0] !== "VIOLATION" || r.value[1] !== "FAIL") continue;
    if (!byRule[r.ruleId]) {
      byRule[r.ruleId] = { ruleId: r.ruleId, count: 0, impact: null };
    }
    byRule[r.ruleId].count++;
  }
  return { timeMs, violations: Object.values(byRule), ruleWcag };
}"""


class ScriptAnalyzer(ABC):
    """Injects a tool bundle into the page once and evaluates an audit script."""

    name: str = ""
    global_name: str = ""
    audit_script: str = ""

    def __init__(self, script_path: Path) -> None:
        if not script_path.is_file():
            raise FatalSetupError(f"{self.name} bundle not found at {script_path}")
        self.script_path = script_path

    async def analyze(self, handle: PageHandle, cancel: CancellationToken) -> AnalyzerResult:
        cancel.raise_if_cancelled()
        page = handle.page
        loaded = await page.evaluate(f"() => typeof window.{self.global_name} !== 'undefined'")
        if not loaded:
            logger.debug("Injecting %s bundle from %s", self.name, self.script_path)
            await page.add_script_tag(path=str(self.script_path))
        cancel.raise_if_cancelled()
        payload = await page.evaluate(self.audit_script)
        cancel.raise_if_cancelled()
        if not isinstance(payload, dict) or not isinstance(payload.get("violations"), list):
            raise ToolFailure(self.name, "audit script returned an unexpected payload")
        return AnalyzerResult(
            time_ms=_time_ms(self.name, payload.get("timeMs")),
            findings=tuple(self.parse_findings(payload)),
        )

    @abstractmethod
    def parse_findings(self, payload: dict[str, Any]) -> list[RuleFinding]:
        """Turn the audit script payload into findings."""


class AxeAnalyzer(ScriptAnalyzer):
    """axe-core; WCAG criteria come from ``wcagXYZ`` rule tags."""

    name = "axe"
    global_name = "axe"
    audit_script = AXE_AUDIT_SCRIPT

    def parse_findings(self, payload: dict[str, Any]) -> list[RuleFinding]:
        findings: list[RuleFinding] = []
        for violation in payload["violations"]:
            findings.append(
                RuleFinding(
                    rule_id=str(violation["id"]),
                    categories=axe_tags_to_criteria(violation.get("tags") or []),
                    count=int(violation.get("nodeCount") or 0),
                    impact=violation.get("impact"),
                ),
            )
        return findings


class RuleRegistryAnalyzer(ScriptAnalyzer):
    """Tools whose payload carries a ``ruleWcag`` map next to per-rule counts."""

    def parse_findings(self, payload: dict[str, Any]) -> list[RuleFinding]:
        rule_wcag = payload.get("ruleWcag") or {}
        findings: list[RuleFinding] = []
        for violation in payload["violations"]:
            rule_id = str(violation["ruleId"])
            findings.append(
                RuleFinding(
                    rule_id=rule_id,
                    categories=normalize_criteria(rule_wcag.get(rule_id) or []),
                    count=int(violation.get("count") or 0),
                    impact=violation.get("impact"),
                ),
            )
        return findings


class AccessLintAnalyzer(RuleRegistryAnalyzer):
    """@accesslint/core; WCAG criteria come from the active rule registry."""

    name = "accesslint"
    global_name = "AccessLintCore"
    audit_script = ACCESSLINT_AUDIT_SCRIPT


class IbmAnalyzer(RuleRegistryAnalyzer):
    """IBM Equal Access; WCAG criteria come from the checker's guideline checkpoints."""

    name = "ibm"
    global_name = "ace"
    audit_script = IBM_AUDIT_SCRIPT


ANALYZER_FACTORIES: dict[str, Callable[[BrowserSettings], ScriptAnalyzer]] = {
    "axe": lambda settings: AxeAnalyzer(settings.axe_script),
    "accesslint": lambda settings: AccessLintAnalyzer(settings.accesslint_script),
    "ibm": lambda settings: IbmAnalyzer(settings.ibm_script),
}


def build_analyzers(tools: Sequence[str], settings: BrowserSettings) -> list[ScriptAnalyzer]:
    """Instantiate analyzers by tool name, in the given order."""

    unknown = [tool for tool in tools if tool not in ANALYZER_FACTORIES]
    if unknown:
        raise FatalSetupError(
            f"Unknown tool(s): {', '.join(unknown)}. "
            f"Available: {', '.join(sorted(ANALYZER_FACTORIES))}",
        )
    return [ANALYZER_FACTORIES[tool](settings) for tool in tools]


def _time_ms(tool: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ToolFailure(tool, f"invalid timing {value!r}")
    return float(value)
