"""Versioned JSON record schema for audit results (one object per line)."""

from __future__ import annotations

from typing import Any

from web_bench.bench.errors import RecordSchemaError
from web_bench.bench.models import (
    AuditResult,
    AuditStatus,
    CriterionDetail,
    ErrorCategory,
    ToolCategoryDetail,
    ToolOutcome,
    ToolStatus,
)

RECORD_SCHEMA_VERSION = 1


def result_to_record(result: AuditResult) -> dict[str, Any]:
    """Serialize an audit result to the flat per-line record layout."""

    record: dict[str, Any] = {
        "schemaVersion": RECORD_SCHEMA_VERSION,
        "origin": result.origin,
        "rank": result.rank,
        "status": result.status.value,
        "error": result.error,
        "errorCategory": result.error_category.value if result.error_category else None,
        "timestamp": result.timestamp,
        "domElementCount": result.dom_element_count,
        "tools": list(result.tools),
    }
    for tool, outcome in result.tools.items():
        record[f"{tool}TimeMs"] = outcome.time_ms
        record[f"{tool}Status"] = outcome.status.value
        record[f"{tool}Error"] = outcome.error
        record[f"{tool}CategoriesFound"] = list(outcome.categories_found)
        record[f"{tool}FindingCount"] = outcome.finding_count
    record["categoryDetail"] = [
        {
            "category": detail.category,
            "perTool": {
                tool: {
                    "found": tool_detail.found,
                    "ruleIds": list(tool_detail.rule_ids),
                    "findingCount": tool_detail.finding_count,
                }
                for tool, tool_detail in detail.per_tool.items()
            },
        }
        for detail in result.category_detail
    ]
    return record


def record_to_result(record: Any) -> AuditResult:
    """Deserialize and validate one stored record."""

    if not isinstance(record, dict):
        raise RecordSchemaError("Record must be a JSON object")
    version = record.get("schemaVersion")
    if version != RECORD_SCHEMA_VERSION:
        raise RecordSchemaError(f"Unsupported record schemaVersion: {version!r}")

    origin = _require(record, "origin", str)
    rank = _require(record, "rank", int)
    status = _enum(AuditStatus, _require(record, "status", str), "status")
    tools = _require(record, "tools", list)
    if not all(isinstance(tool, str) and tool for tool in tools):
        raise RecordSchemaError("tools must be a list of non-empty strings")

    error_category_raw = _optional(record, "errorCategory", str)
    return AuditResult(
        origin=origin,
        rank=rank,
        status=status,
        timestamp=_require(record, "timestamp", str),
        tools={tool: _tool_outcome(record, tool) for tool in tools},
        error=_optional(record, "error", str),
        error_category=(
            _enum(ErrorCategory, error_category_raw, "errorCategory")
            if error_category_raw is not None
            else None
        ),
        dom_element_count=_optional(record, "domElementCount", int),
        category_detail=tuple(
            _category_detail(item) for item in _require(record, "categoryDetail", list)
        ),
    )


def _tool_outcome(record: dict[str, Any], tool: str) -> ToolOutcome:
    time_ms = _require(record, f"{tool}TimeMs", (int, float))
    categories = _require(record, f"{tool}CategoriesFound", list)
    if not all(isinstance(category, str) for category in categories):
        raise RecordSchemaError(f"{tool}CategoriesFound must contain strings")
    return ToolOutcome(
        time_ms=float(time_ms),
        status=_enum(ToolStatus, _require(record, f"{tool}Status", str), f"{tool}Status"),
        error=_optional(record, f"{tool}Error", str),
        categories_found=tuple(categories),
        finding_count=_require(record, f"{tool}FindingCount", int),
    )


def _category_detail(item: Any) -> CriterionDetail:
    if not isinstance(item, dict):
        raise RecordSchemaError("categoryDetail entries must be objects")
    category = _require(item, "category", str)
    per_tool_raw = _require(item, "perTool", dict)
    per_tool: dict[str, ToolCategoryDetail] = {}
    for tool, raw in per_tool_raw.items():
        if not isinstance(raw, dict):
            raise RecordSchemaError(f"categoryDetail.perTool.{tool} must be an object")
        rule_ids = _require(raw, "ruleIds", list)
        per_tool[tool] = ToolCategoryDetail(
            found=_require(raw, "found", bool),
            rule_ids=tuple(str(rule_id) for rule_id in rule_ids),
            finding_count=_require(raw, "findingCount", int),
        )
    return CriterionDetail(category=category, per_tool=per_tool)


def _require(payload: dict[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    if key not in payload:
        raise RecordSchemaError(f"Missing required field: {key}")
    value = payload[key]
    if not _is_kind(value, kind):
        raise RecordSchemaError(f"Field {key} has unexpected type {type(value).__name__}")
    return value


def _optional(payload: dict[str, Any], key: str, kind: type) -> Any:
    value = payload.get(key)
    if value is None:
        return None
    if not _is_kind(value, kind):
        raise RecordSchemaError(f"Field {key} has unexpected type {type(value).__name__}")
    return value


def _is_kind(value: Any, kind: type | tuple[type, ...]) -> bool:
    # bool is an int subclass; keep it out of numeric fields.
    if isinstance(value, bool):
        return kind is bool
    return isinstance(value, kind)


def _enum(enum_type: type[Any], value: str, field_name: str) -> Any:
    try:
        return enum_type(value)
    except ValueError as error:
        raise RecordSchemaError(f"Invalid {field_name}: {value!r}") from error
