"""WCAG success-criterion helpers used to map tool rules onto categories."""

from __future__ import annotations

import re
from collections.abc import Iterable

_AXE_WCAG_TAG = re.compile(r"^wcag(\d)(\d)(\d+)$")
_CRITERION = re.compile(r"^\d\.\d\.\d+$")

CRITERIA_NAMES: dict[str, str] = {
    "1.1.1": "Non-text Content",
    "1.3.1": "Info and Relationships",
    "1.4.3": "Contrast (Minimum)",
    "1.4.4": "Resize Text",
    "2.1.1": "Keyboard",
    "2.4.4": "Link Purpose (In Context)",
    "3.1.1": "Language of Page",
    "4.1.2": "Name, Role, Value",
}


def axe_tag_to_criterion(tag: str) -> str | None:
    """Convert an axe tag like ``wcag1412`` to ``1.4.12``.

    Level tags (``wcag2a``, ``wcag21aa``) do not match and yield ``None``.
    """

    match = _AXE_WCAG_TAG.match(tag)
    if match is None:
        return None
    return ".".join(match.groups())


def axe_tags_to_criteria(tags: Iterable[str]) -> tuple[str, ...]:
    criteria = (axe_tag_to_criterion(tag) for tag in tags)
    return tuple(sorted({criterion for criterion in criteria if criterion is not None}))


def normalize_criteria(values: Iterable[str]) -> tuple[str, ...]:
    """Keep well-formed ``X.Y.Z`` identifiers, sorted and unique."""

    return tuple(sorted({value.strip() for value in values if _CRITERION.match(value.strip())}))


def criterion_label(criterion: str) -> str:
    name = CRITERIA_NAMES.get(criterion)
    return f"{criterion} {name}" if name else criterion
