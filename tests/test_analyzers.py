from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import allure
import pytest

from web_bench.bench.contracts import CancellationToken, TaskAbandoned
from web_bench.bench.errors import FatalSetupError, ToolFailure
from web_bench.browser.analyzers import (
    ACCESSLINT_AUDIT_SCRIPT,
    AXE_AUDIT_SCRIPT,
    IBM_AUDIT_SCRIPT,
    AccessLintAnalyzer,
    AxeAnalyzer,
    IbmAnalyzer,
    ScriptAnalyzer,
    build_analyzers,
)
from web_bench.config import BrowserSettings

pytestmark = [
    allure.epic("Analyzers"),
    allure.feature("Browser Scripts"),
]


class _FakePage:
    def __init__(self, payloads: dict[str, Any], *, preloaded: bool = False) -> None:
        self.payloads = payloads
        self.preloaded = preloaded
        self.injected: list[str] = []

    async def evaluate(self, script: str) -> Any:
        if script.startswith("() => typeof window."):
            return self.preloaded or bool(self.injected)
        return self.payloads[script]

    async def add_script_tag(self, *, path: str) -> None:
        self.injected.append(path)


def _bundle(tmp_path: Path, name: str) -> Path:
    path = tmp_path / name
    path.write_text("/* bundle */", encoding="utf-8")
    return path


def test_axe_violations_map_tags_to_criteria(tmp_path: Path) -> None:
    bundle = _bundle(tmp_path, "axe.min.js")
    page = _FakePage(
        {
            AXE_AUDIT_SCRIPT: {
                "timeMs": 120.5,
                "violations": [
                    {
                        "id": "image-alt",
                        "tags": ["cat.text-alternatives", "wcag2a", "wcag111"],
                        "nodeCount": 4,
                        "impact": "critical",
                    },
                    {"id": "region", "tags": ["best-practice"], "nodeCount": 9, "impact": None},
                ],
            },
        },
    )

    result = asyncio.run(
        AxeAnalyzer(bundle).analyze(SimpleNamespace(page=page), CancellationToken()),
    )

    assert page.injected == [str(bundle)]
    assert result.time_ms == 120.5
    assert result.categories_found == ("1.1.1",)
    assert result.finding_count == 13
    assert result.findings[1].categories == ()


def test_accesslint_uses_rule_registry(tmp_path: Path) -> None:
    bundle = _bundle(tmp_path, "index.iife.js")
    page = _FakePage(
        {
            ACCESSLINT_AUDIT_SCRIPT: {
                "timeMs": 8,
                "violations": [
                    {"ruleId": "img-alt", "count": 2, "impact": "critical"},
                    {"ruleId": "link-name", "count": 1, "impact": "serious"},
                ],
                "ruleWcag": {"img-alt": ["1.1.1"], "link-name": ["2.4.4", "4.1.2"]},
            },
        },
        preloaded=True,
    )

    result = asyncio.run(
        AccessLintAnalyzer(bundle).analyze(SimpleNamespace(page=page), CancellationToken()),
    )

    assert page.injected == []
    assert result.categories_found == ("1.1.1", "2.4.4", "4.1.2")
    assert result.finding_count == 3


def test_unexpected_payload_is_a_tool_failure(tmp_path: Path) -> None:
    page = _FakePage({AXE_AUDIT_SCRIPT: None}, preloaded=True)

    with pytest.raises(ToolFailure, match="axe"):
        asyncio.run(
            AxeAnalyzer(_bundle(tmp_path, "axe.js")).analyze(
                SimpleNamespace(page=page),
                CancellationToken(),
            ),
        )


def test_negative_timing_is_a_tool_failure(tmp_path: Path) -> None:
    page = _FakePage({AXE_AUDIT_SCRIPT: {"timeMs": -1, "violations": []}}, preloaded=True)

    with pytest.raises(ToolFailure, match="invalid timing"):
        asyncio.run(
            AxeAnalyzer(_bundle(tmp_path, "axe.js")).analyze(
                SimpleNamespace(page=page),
                CancellationToken(),
            ),
        )


def test_cancelled_token_stops_analysis(tmp_path: Path) -> None:
    async def _run() -> None:
        token = CancellationToken()
        token.cancel("timeout")
        await AxeAnalyzer(_bundle(tmp_path, "axe.js")).analyze(
            SimpleNamespace(page=_FakePage({})),
            token,
        )

    with pytest.raises(TaskAbandoned, match="timeout"):
        asyncio.run(_run())


def test_build_analyzers_validates_names_and_bundles(tmp_path: Path) -> None:
    settings = BrowserSettings(
        axe_script=_bundle(tmp_path, "axe.js"),
        accesslint_script=_bundle(tmp_path, "al.js"),
        ibm_script=_bundle(tmp_path, "ace.js"),
    )

    analyzers = build_analyzers(("ibm", "accesslint", "axe"), settings)
    assert [analyzer.name for analyzer in analyzers] == ["ibm", "accesslint", "axe"]

    with pytest.raises(FatalSetupError, match="Available: accesslint, axe, ibm"):
        build_analyzers(("axe", "wave"), settings)

    with pytest.raises(FatalSetupError, match="bundle not found"):
        build_analyzers(("axe",), BrowserSettings(axe_script=tmp_path / "missing.js"))


def test_ibm_failures_map_through_guideline_checkpoints(tmp_path: Path) -> None:
    bundle = _bundle(tmp_path, "ace.js")
    page = _FakePage(
        {
            IBM_AUDIT_SCRIPT: {
                "timeMs": 31.25,
                "violations": [
                    {"ruleId": "img_alt_valid", "count": 3, "impact": None},
                    {"ruleId": "html_lang_exists", "count": 1, "impact": None},
                ],
                "ruleWcag": {
                    "img_alt_valid": ["1.1.1", "1.1.1"],
                    "html_lang_exists": ["3.1.1"],
                },
            },
        },
    )

    result = asyncio.run(
        IbmAnalyzer(bundle).analyze(SimpleNamespace(page=page), CancellationToken()),
    )

    assert page.injected == [str(bundle)]
    assert result.time_ms == 31.25
    assert result.categories_found == ("1.1.1", "3.1.1")
    assert result.findings[0].categories == ("1.1.1",)
    assert result.finding_count == 4


def test_script_analyzer_base_cannot_be_instantiated(tmp_path: Path) -> None:
    with pytest.raises(TypeError):
        ScriptAnalyzer(_bundle(tmp_path, "any.js"))  # type: ignore[abstract]
