from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .models import (
    ContextQuestion,
    HarmCategory,
    RiskCalculationRule,
    RiskExplanation,
    ToolQuestion,
)
from .rules import AppliedRule, apply_rules
from .taxonomy import (
    HARM_CATEGORIES,
    INTERACTION_LAYERS,
    LOW,
    apply_severity_modifier,
    harm_category_name,
    is_severity_higher,
    layer_description,
    max_severity,
    normalise_severity,
)

logger = logging.getLogger(__name__)

UNANSWERED_MESSAGE = "Please answer all questions before proceeding."
NO_LAYER_RISKS_MESSAGE = "No significant risks identified at this level."

Answers = Dict[str, List[str]]


class AssessmentError(Exception):
    """Base class for assessment failures reported back to the client."""


class AnswerValidationError(AssessmentError):
    """Raised when submitted answers are incomplete or refer to unknown options."""

    def __init__(self, message: str, question_id: Optional[str] = None):
        super().__init__(message)
        self.question_id = question_id


class UnknownToolError(AssessmentError):
    """Raised when no usage questions exist for the requested tool type."""


@dataclass
class RiskItem:
    question: str
    answer: str
    severity: str
    description: str


@dataclass
class LayerManifestation:
    description: str
    severity: str


@dataclass
class Adjustment:
    source: str
    before: str
    after: str
    detail: str = ""


@dataclass
class CategoryAssessment:
    code: str
    name: str
    severity: str = LOW
    risks: List[RiskItem] = field(default_factory=list)
    layer_manifestations: Dict[str, List[LayerManifestation]] = field(default_factory=dict)
    adjustments: List[Adjustment] = field(default_factory=list)
    explanation: str = ""
    guidance: str = ""

    @property
    def is_flagged(self) -> bool:
        return bool(self.risks) or self.severity != LOW

    def to_payload(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "severity": self.severity,
            "risk_count": len(self.risks),
            "risks": [vars(item) for item in self.risks],
            "layer_manifestations": {
                layer: [vars(item) for item in items] for layer, items in self.layer_manifestations.items()
            },
            "adjustments": [vars(item) for item in self.adjustments],
            "explanation": self.explanation,
            "guidance": self.guidance,
        }


@dataclass
class RiskProfile:
    tool_type: str
    categories: Dict[str, CategoryAssessment]
    overall_risk: str = LOW
    applied_rules: List[AppliedRule] = field(default_factory=list)

    def severities(self) -> Dict[str, str]:
        return {code: category.severity for code, category in self.categories.items()}

    def flagged_categories(self) -> List[CategoryAssessment]:
        return [category for category in self.categories.values() if category.is_flagged]

    def layer_breakdown(self) -> List[Dict[str, Any]]:
        breakdown = []
        for layer in INTERACTION_LAYERS:
            items = [
                {
                    "category": category.code,
                    "category_name": category.name,
                    "description": manifestation.description,
                    "severity": manifestation.severity,
                }
                for category in self.categories.values()
                for manifestation in category.layer_manifestations.get(layer, [])
            ]
            breakdown.append(
                {
                    "layer": layer,
                    "items": items,
                    "message": "" if items else NO_LAYER_RISKS_MESSAGE,
                }
            )
        return breakdown

    def to_payload(self) -> Dict[str, Any]:
        return {
            "tool_type": self.tool_type,
            "overall_risk": self.overall_risk,
            "harm_categories": {code: category.to_payload() for code, category in self.categories.items()},
            "flagged_categories": [category.code for category in self.flagged_categories()],
            "interaction_layers": self.layer_breakdown(),
            "applied_rules": [rule.to_payload() for rule in self.applied_rules],
        }


def category_names() -> Dict[str, str]:
    names = {code: harm_category_name(code) for code in HARM_CATEGORIES}
    names.update(HarmCategory.objects.filter(code__in=HARM_CATEGORIES).values_list("code", "name"))
    return names


def new_profile(tool_type: str, names: Optional[Mapping[str, str]] = None) -> RiskProfile:
    names = names or {}
    return RiskProfile(
        tool_type=tool_type,
        categories={
            code: CategoryAssessment(code=code, name=names.get(code) or harm_category_name(code))
            for code in HARM_CATEGORIES
        },
    )


def list_tool_types() -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for tool_type in ToolQuestion.objects.values_list("tool_type", flat=True):
        counts[tool_type] = counts.get(tool_type, 0) + 1
    return [{"tool_type": tool_type, "question_count": counts[tool_type]} for tool_type in sorted(counts)]


def get_tool_questions(tool_type: str) -> List[ToolQuestion]:
    normalised = (tool_type or "").strip().lower()
    questions = list(ToolQuestion.objects.filter(tool_type__iexact=normalised)) if normalised else []
    if not questions:
        logger.warning("No questions found for tool: %s", tool_type)
        raise UnknownToolError(f"No questions found for {tool_type}. Please check the data files.")
    return questions


def get_context_questions() -> List[ContextQuestion]:
    return list(ContextQuestion.objects.all())


def _coerce_letters(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    elif not isinstance(raw, (list, tuple, set)):
        raw = [raw]
    letters: List[str] = []
    for value in raw:
        letter = str(value).strip().upper()
        if letter and letter not in letters:
            letters.append(letter)
    return letters


def normalise_answers(raw_answers: Any) -> Answers:
    """Accept {question_id: letters} or [{"question_id": ..., "answer(s)": ...}]."""
    if raw_answers is None:
        return {}
    if isinstance(raw_answers, Mapping):
        return {str(key).strip(): _coerce_letters(value) for key, value in raw_answers.items()}
    if isinstance(raw_answers, list):
        answers: Answers = {}
        for item in raw_answers:
            if not isinstance(item, Mapping):
                continue
            question_id = item.get("question_id") or item.get("id")
            if question_id is None:
                continue
            value = item.get("answers", item.get("answer"))
            answers.setdefault(str(question_id).strip(), []).extend(_coerce_letters(value))
        return answers
    raise AnswerValidationError("answers must be an object keyed by question id or a list of answers.")


def validate_answers(questions: Sequence[Any], raw_answers: Any) -> Answers:
    """Return the selected letters per question, in question order."""
    answers = normalise_answers(raw_answers)
    validated: Answers = {}
    for question in questions:
        letters = answers.get(question.question_id) or []
        if not letters:
            raise AnswerValidationError(UNANSWERED_MESSAGE, question.question_id)
        unknown = [letter for letter in letters if letter not in question.letters]
        if unknown:
            raise AnswerValidationError(
                f"Unknown option(s) {', '.join(unknown)} for question {question.question_id}.",
                question.question_id,
            )
        if len(letters) > 1 and not question.allows_multiple:
            raise AnswerValidationError(
                f"Question {question.question_id} accepts a single answer.",
                question.question_id,
            )
        validated[question.question_id] = letters
    return validated


def process_answer_harms(question: ToolQuestion, letter: str, profile: RiskProfile) -> None:
    option = question.option(letter)
    severity = normalise_severity(option.get("severity"))
    for code in option.get("harms") or []:
        category = profile.categories.get(code)
        if category is None:
            continue
        if is_severity_higher(severity, category.severity):
            category.severity = severity
        category.risks.append(
            RiskItem(
                question=question.text,
                answer=question.answer_text(letter),
                severity=severity,
                description=question.notes or "Potential risk identified",
            )
        )
        for layer in option.get("layers") or []:
            if layer not in INTERACTION_LAYERS:
                continue
            category.layer_manifestations.setdefault(layer, []).append(
                LayerManifestation(description=layer_description(code, layer), severity=severity)
            )


def apply_context_modifiers(question: ContextQuestion, letter: str, profile: RiskProfile) -> None:
    option = question.option(letter)
    for code, raw_modifier in (option.get("modifiers") or {}).items():
        category = profile.categories.get(code)
        try:
            modifier = int(raw_modifier)
        except (TypeError, ValueError):
            modifier = 0
        if category is None or modifier == 0:
            continue
        current = category.severity
        adjusted = apply_severity_modifier(current, modifier)
        # Context can only raise a severity.
        if is_severity_higher(adjusted, current):
            category.severity = adjusted
            category.adjustments.append(
                Adjustment(
                    source=f"context:{question.question_id}",
                    before=current,
                    after=adjusted,
                    detail=question.answer_text(letter),
                )
            )


def apply_compound_risk_rules(profile: RiskProfile, rules: Optional[Iterable[RiskCalculationRule]] = None) -> None:
    if rules is None:
        rules = RiskCalculationRule.objects.filter(is_active=True).order_by("priority", "rule_id")
    severities = profile.severities()
    applied = apply_rules(rules, severities, profile.tool_type)
    for rule in applied:
        for code, (before, after) in rule.changes.items():
            category = profile.categories[code]
            category.severity = after
            category.adjustments.append(
                Adjustment(source=f"rule:{rule.rule_id}", before=before, after=after, detail=rule.name)
            )
    profile.applied_rules.extend(applied)


def determine_overall_risk(profile: RiskProfile) -> str:
    return max_severity(category.severity for category in profile.categories.values())


def calculate_risk_profile(
    tool_type: str,
    tool_questions: Sequence[ToolQuestion],
    tool_answers: Answers,
    context_questions: Sequence[ContextQuestion],
    context_answers: Answers,
    *,
    rules: Optional[Iterable[RiskCalculationRule]] = None,
    names: Optional[Mapping[str, str]] = None,
) -> RiskProfile:
    """Fold validated answers into a severity per harm category."""
    profile = new_profile(tool_type, names)

    for question in tool_questions:
        for letter in tool_answers.get(question.question_id, []):
            process_answer_harms(question, letter, profile)

    for question in context_questions:
        for letter in context_answers.get(question.question_id, []):
            apply_context_modifiers(question, letter, profile)

    apply_compound_risk_rules(profile, rules)
    profile.overall_risk = determine_overall_risk(profile)
    return profile


def find_explanation(code: str, severity: str, tool_type: str) -> Optional[RiskExplanation]:
    candidates = RiskExplanation.objects.filter(
        category=code,
        severity=severity,
        tool_type__in=[(tool_type or "").lower(), ""],
    )
    best = None
    for candidate in candidates:
        if candidate.tool_type:
            return candidate
        best = candidate
    return best


def attach_explanations(profile: RiskProfile) -> RiskProfile:
    for category in profile.categories.values():
        explanation = find_explanation(category.code, category.severity, profile.tool_type)
        if explanation is not None:
            category.explanation = explanation.explanation
            category.guidance = explanation.guidance
    return profile


def evaluate_assessment(tool_type: str, raw_tool_answers: Any, raw_context_answers: Any) -> RiskProfile:
    """Validate both answer sets against the stored questions and build the explained profile."""
    tool_questions = get_tool_questions(tool_type)
    context_questions = get_context_questions()
    tool_answers = validate_answers(tool_questions, raw_tool_answers)
    context_answers = validate_answers(context_questions, raw_context_answers)
    profile = calculate_risk_profile(
        tool_questions[0].tool_type,
        tool_questions,
        tool_answers,
        context_questions,
        context_answers,
        names=category_names(),
    )
    return attach_explanations(profile)
