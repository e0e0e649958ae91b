"""
Form data transformation detection.

After a form submission moves the application to a new state, the values
typed into the form are looked up in the resulting page. A value shown
inside longer text is an expansion; a value missing verbatim may still
appear reformatted as a date, a grouped number or in another case.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_DIGITS = re.compile(r"\d+")


class TransformationKind(StrEnum):
    EXPANSION = "expansion"
    DATE_FORMATTING = "date_formatting"
    NUMBER_FORMATTING = "number_formatting"
    CASE_FORMATTING = "case_formatting"


@dataclass(frozen=True)
class DataTransformation:
    """A submitted field value as it reappeared after submission."""

    field_name: str
    source_value: str
    target_value: str
    kind: TransformationKind
    rule: str = ""
    page_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field_name,
            "source_value": self.source_value,
            "target_value": self.target_value,
            "kind": self.kind.value,
            "rule": self.rule,
            "page_url": self.page_url,
        }


def detect_transformations(
    submitted: Mapping[str, str],
    page_text: str,
    page_url: str = "",
) -> list[DataTransformation]:
    """
    Compare submitted values against the visible text of the result page.

    Args:
        submitted: Field key to the value entered before submission
        page_text: Visible text of the state reached by the submission
        page_url: Reported on every transformation found

    Returns:
        One entry per transformed appearance; values shown unchanged or
        not at all yield nothing
    """
    found: list[DataTransformation] = []
    lines = [line.strip() for line in page_text.splitlines() if line.strip()]

    for field_name, value in submitted.items():
        if not value:
            continue
        if value in page_text:
            seen: set[str] = set()
            for line in lines:
                if value in line and line != value and line not in seen:
                    seen.add(line)
                    found.append(
                        DataTransformation(
                            field_name,
                            value,
                            line,
                            TransformationKind.EXPANSION,
                            "Embedded in surrounding text",
                            page_url,
                        )
                    )
            continue

        matched: set[TransformationKind] = set()
        for target, kind, rule in _reformatted(value):
            if kind not in matched and target in page_text:
                matched.add(kind)
                found.append(DataTransformation(field_name, value, target, kind, rule, page_url))
    return found


def _reformatted(value: str) -> list[tuple[str, TransformationKind, str]]:
    """Candidate renderings of ``value`` in preference order."""
    candidates: list[tuple[str, TransformationKind, str]] = []

    date = _ISO_DATE.fullmatch(value)
    if date:
        year, month, day = date.groups()
        renderings = (f"{year}/{month}/{day}", f"{month}-{day}-{year}", f"{month}/{day}/{year}")
        for rendering in renderings:
            candidates.append(
                (rendering, TransformationKind.DATE_FORMATTING, "ISO to formatted date")
            )

    if _DIGITS.fullmatch(value):
        grouped = f"{int(value):,}"
        if grouped != value:
            candidates.append(
                (grouped, TransformationKind.NUMBER_FORMATTING, "Add thousands separators")
            )

    case = TransformationKind.CASE_FORMATTING
    if value.upper() != value:
        candidates.append((value.upper(), case, "Convert to uppercase"))
    if value.lower() != value:
        candidates.append((value.lower(), case, "Convert to lowercase"))
    return candidates
