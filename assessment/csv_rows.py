"""Parse assessment spreadsheet rows into flat table rows.

Shared by ``import_assessment_csv.py`` (PyMySQL, no Django) and the
``load_assessment_data`` management command (ORM). Each builder takes one
``csv.DictReader`` row and returns a dict keyed by model field name, or raises
``RowError`` when the row must be skipped.
"""

import csv
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .taxonomy import (
    HARM_CATEGORIES,
    INTERACTION_LAYERS,
    normalise_severity,
    parse_flag,
)

OPTION_LETTERS = ("A", "B", "C", "D")
RESPONSE_TYPES = {"single", "multiple"}

RowBuilder = Callable[[Dict[str, str], int], Dict[str, Any]]


class RowError(ValueError):
    """Raised when a CSV row is missing required data."""


def clean_row(row: Dict[Optional[str], Any]) -> Dict[str, str]:
    """Trim header names and cell values; drop overflow cells without a header."""
    cleaned: Dict[str, str] = {}
    for key, value in row.items():
        if key is None:
            continue
        if isinstance(value, list):
            value = ",".join(value)
        cleaned[key.strip()] = (value or "").strip()
    return cleaned


def _first(row: Dict[str, str], *keys: str) -> str:
    for key in keys:
        value = row.get(key)
        if value:
            return value
    return ""


def _parse_int(value: Optional[str], default: int = 0) -> int:
    try:
        return int((value or "").strip())
    except ValueError:
        try:
            return int(float(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return default


def _response_type(row: Dict[str, str]) -> str:
    value = _first(row, "response_type", "Response_Type").lower()
    return value if value in RESPONSE_TYPES else ""


def build_tool_question_row(row: Dict[str, str], position: int) -> Dict[str, Any]:
    tool_type = _first(row, "Tool_Type").lower()
    text = _first(row, "Question_Text")
    if not tool_type or not text:
        raise RowError("Tool_Type and Question_Text must not be empty.")

    options: List[Dict[str, Any]] = []
    for letter in OPTION_LETTERS:
        answer_text = row.get(f"Answer_{letter}", "")
        if not answer_text:
            continue
        options.append(
            {
                "letter": letter,
                "text": answer_text,
                "severity": normalise_severity(row.get(f"{letter}_Severity")),
                "harms": [code for code in HARM_CATEGORIES if parse_flag(row.get(f"{letter}_{code}"))],
                "layers": [layer for layer in INTERACTION_LAYERS if parse_flag(row.get(f"{letter}_{layer}"))],
            }
        )
    if not options:
        raise RowError("question has no answer options.")

    return {
        "question_id": _first(row, "Question_ID", "ID") or f"{tool_type.upper()}_{position:02d}",
        "tool_type": tool_type,
        "position": position,
        "text": text,
        "response_type": _response_type(row),
        "notes": _first(row, "Notes"),
        "options": options,
    }


def _context_modifiers(row: Dict[str, str], letter: str) -> Dict[str, int]:
    shared = _parse_int(row.get(f"{letter}_Age_Modifier"))
    modifiers: Dict[str, int] = {}
    for code in HARM_CATEGORIES:
        override = row.get(f"{letter}_Modifier_{code}")
        if override:
            value = _parse_int(override)
        elif parse_flag(row.get(f"{letter}_Affects_{code}")):
            value = shared
        else:
            value = 0
        if value:
            modifiers[code] = value
    return modifiers


def build_context_question_row(row: Dict[str, str], position: int) -> Dict[str, Any]:
    text = _first(row, "Question_Text")
    if not text:
        raise RowError("Question_Text must not be empty.")

    options = [
        {
            "letter": letter,
            "text": row[f"Answer_{letter}"],
            "modifiers": _context_modifiers(row, letter),
        }
        for letter in OPTION_LETTERS
        if row.get(f"Answer_{letter}")
    ]
    if not options:
        raise RowError("question has no answer options.")

    return {
        "question_id": _first(row, "Question_ID", "ID") or f"CTX_{position:02d}",
        "position": position,
        "text": text,
        "response_type": _response_type(row),
        "notes": _first(row, "Notes"),
        "options": options,
    }


def build_rule_row(row: Dict[str, str], position: int) -> Dict[str, Any]:
    trigger = _first(row, "Trigger_Condition", "Condition")
    effect = _first(row, "Escalation_Effect", "Effect")
    if not trigger or not effect:
        raise RowError("Trigger_Condition and Escalation_Effect must not be empty.")

    active = row.get("Active")
    return {
        "rule_id": _first(row, "Rule_ID", "ID") or f"RULE_{position:02d}",
        "name": _first(row, "Rule_Name", "Name"),
        "trigger_condition": trigger,
        "escalation_effect": effect,
        "description": _first(row, "Description"),
        "priority": _parse_int(row.get("Priority"), default=position),
        "is_active": True if not active else parse_flag(active),
    }


def build_explanation_row(row: Dict[str, str], position: int) -> Dict[str, Any]:
    category = _first(row, "Category", "Harm_Category").upper()
    if category not in HARM_CATEGORIES:
        raise RowError(f"unknown harm category {category!r}.")
    severity = normalise_severity(row.get("Severity"), default="")
    if not severity:
        raise RowError(f"unknown severity {row.get('Severity')!r}.")
    explanation = _first(row, "Explanation", "Text")
    if not explanation:
        raise RowError("Explanation must not be empty.")

    return {
        "category": category,
        "severity": severity,
        "tool_type": _first(row, "Tool_Type").lower(),
        "explanation": explanation,
        "guidance": _first(row, "Guidance", "Mitigation"),
    }


def build_harm_category_row(row: Dict[str, str], position: int) -> Dict[str, Any]:
    code = _first(row, "Code", "Category_Code").upper()
    name = _first(row, "Name", "Category_Name")
    if not code or not name:
        raise RowError("Code and Name must not be empty.")
    return {
        "code": code,
        "name": name,
        "description": _first(row, "Description"),
        "examples": _first(row, "Examples"),
    }


DATASETS: Dict[str, Dict[str, Any]] = {
    "harm_categories": {
        "csv_name": "harm_categories_reference.csv",
        "table": "assessment_harmcategory",
        "key": "code",
        "row_builder": build_harm_category_row,
    },
    "tool_questions": {
        "csv_name": "tool_questions.csv",
        "table": "assessment_toolquestion",
        "key": "question_id",
        "row_builder": build_tool_question_row,
    },
    "context_questions": {
        "csv_name": "context_questions.csv",
        "table": "assessment_contextquestion",
        "key": "question_id",
        "row_builder": build_context_question_row,
    },
    "rules": {
        "csv_name": "risk_calculation_rules.csv",
        "table": "assessment_riskcalculationrule",
        "key": "rule_id",
        "row_builder": build_rule_row,
    },
    "explanations": {
        "csv_name": "explanations.csv",
        "table": "assessment_riskexplanation",
        "key": None,
        "row_builder": build_explanation_row,
    },
}


def read_dataset(
    csv_path: Path,
    row_builder: RowBuilder,
    *,
    encoding: str = "utf-8-sig",
    delimiter: str = ",",
) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Return (parsed rows, skip messages) for one CSV file."""
    rows: List[Dict[str, Any]] = []
    skipped: List[str] = []
    for position, raw in _iter_rows(csv_path, encoding=encoding, delimiter=delimiter):
        try:
            rows.append(row_builder(raw, position))
        except RowError as exc:
            skipped.append(f"Skipping row {position}: {exc}")
    return rows, skipped


def _iter_rows(csv_path: Path, *, encoding: str, delimiter: str) -> Iterator[Tuple[int, Dict[str, str]]]:
    with csv_path.open("r", encoding=encoding, newline="") as handle:
        reader = csv.DictReader(handle, delimiter=delimiter)
        if not reader.fieldnames:
            raise RowError(f"{csv_path.name} has no header row.")
        position = 0
        for raw in reader:
            row = clean_row(raw)
            if not any(row.values()):
                continue
            position += 1
            yield position, row
