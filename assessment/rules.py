"""Compound risk rules.

A rule pairs a free-text trigger condition with a free-text escalation effect.
Both are matched by keyword and pattern tests rather than a formal grammar, so
spreadsheet authors can write them in plain language:

    Trigger_Condition: "PS >= HIGH AND tool = chatbot"
    Escalation_Effect: "Escalate PS to CRITICAL"

Conditions are clauses joined by AND. A clause is one of

* ``tool = <name>``                       selected tool type matches
* ``PS >= HIGH`` / ``PS or MA is HIGH``   some listed category is at least HIGH
* ``PS == HIGH``                          exact level
* ``any category >= CRITICAL``            some category reaches the level
* ``2+ categories >= HIGH``               at least N categories reach the level
* ``exactly 2 categories >= HIGH``        exactly N categories reach the level

Comparisons are ``>=``, ``at least``, ``is`` and ``==``. Codes and keywords
are case-insensitive. Clauses with any other comparison (``<``, ``<=``, ``>``,
``!=``, ``not``, ``below``, ``under``) are rejected rather than guessed at.

Effects list categories (or ``all``) followed by a target level
(``to CRITICAL``) or a signed step count (``+1``, ``by 2``). A bare
``Escalate PS`` is one step. Effects only ever raise a severity.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, MutableMapping, Optional, Tuple

from .taxonomy import (
    HARM_CATEGORIES,
    apply_severity_modifier,
    is_severity_higher,
    severity_rank,
)

logger = logging.getLogger(__name__)

_AND_RE = re.compile(r"\s+and\s+|\s*&&\s*", re.IGNORECASE)
_SEVERITY_RE = re.compile(r"\b(LOW|MEDIUM|HIGH|CRITICAL)\b", re.IGNORECASE)
_CATEGORY_RE = re.compile(r"\b(" + "|".join(HARM_CATEGORIES) + r")\b", re.IGNORECASE)
_TOOL_RE = re.compile(r"\btool(?:[ _]type)?\s*(?:==|=|:|\bis\b)\s*([\w\- ]+?)\s*$", re.IGNORECASE)
_COUNT_RE = re.compile(
    r"(?:at\s+least\s+)?(\d+)\s*(?:\+|or\s+more)?\s*(?:harm\s+)?categor(?:y|ies)",
    re.IGNORECASE,
)
_ANY_RE = re.compile(r"\bany\b", re.IGNORECASE)
_ALL_RE = re.compile(r"\ball\b", re.IGNORECASE)
_EXACT_RE = re.compile(r"==|\bexactly\b(?!\s*\d)", re.IGNORECASE)
_EXACT_COUNT_RE = re.compile(r"\bexactly\s+\d", re.IGNORECASE)
_COMPARATOR_RE = re.compile(r">=|==|\bat\s+least\b|\bis\b|\bexactly\b", re.IGNORECASE)
_UNSUPPORTED_RE = re.compile(
    r"<|>(?!=)|!=|\bnot\b|\bbelow\b|\bunder\b|\babove\b|\b(?:less|fewer|more|greater|higher|lower)\s+than\b",
    re.IGNORECASE,
)
_SIGNED_STEP_RE = re.compile(r"([+-])\s*(\d+)")
_BY_STEP_RE = re.compile(r"\bby\s+(\d+)", re.IGNORECASE)
_ESCALATE_RE = re.compile(r"\b(?:escalate|increase|raise|elevate|bump)\b", re.IGNORECASE)


class RuleSyntaxError(ValueError):
    """Raised when a trigger condition or escalation effect cannot be interpreted."""


@dataclass(frozen=True)
class Clause:
    kind: str
    severity: Optional[str] = None
    categories: Tuple[str, ...] = ()
    exact: bool = False
    tool: str = ""
    count: int = 0
    exact_count: bool = False

    def holds(self, severities: MutableMapping[str, str], tool_type: str) -> bool:
        if self.kind == "tool":
            return (tool_type or "").strip().lower() == self.tool
        candidates = self.categories if self.kind == "category" else HARM_CATEGORIES
        matching = [code for code in candidates if self._meets(severities.get(code, "LOW"))]
        if self.kind == "count":
            return len(matching) == self.count if self.exact_count else len(matching) >= self.count
        return bool(matching)

    def _meets(self, severity: str) -> bool:
        if self.exact:
            return severity == self.severity
        return severity_rank(severity) >= severity_rank(self.severity)  # type: ignore[arg-type]


@dataclass(frozen=True)
class Effect:
    categories: Tuple[str, ...]
    target: Optional[str] = None
    steps: int = 0

    def resolve(self, current: str) -> str:
        if self.target is not None:
            return self.target
        return apply_severity_modifier(current, self.steps)


@dataclass
class AppliedRule:
    rule_id: str
    name: str
    changes: Dict[str, Tuple[str, str]] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, object]:
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "changes": {code: {"from": before, "to": after} for code, (before, after) in self.changes.items()},
        }


def _severity_in(text: str) -> Optional[str]:
    match = _SEVERITY_RE.search(text)
    return match.group(1).upper() if match else None


def _categories_in(text: str) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(code.upper() for code in _CATEGORY_RE.findall(text)))


def parse_clause(text: str) -> Clause:
    clause = text.strip()
    if not clause:
        raise RuleSyntaxError("empty condition clause")

    unsupported = _UNSUPPORTED_RE.search(clause)
    if unsupported:
        raise RuleSyntaxError(f"unsupported comparison {unsupported.group(0)!r} in clause {clause!r}")

    tool_match = _TOOL_RE.search(clause)
    if tool_match:
        return Clause(kind="tool", tool=tool_match.group(1).strip().lower())

    severity = _severity_in(clause)
    if severity is None:
        raise RuleSyntaxError(f"no severity level in clause {clause!r}")
    if not _COMPARATOR_RE.search(clause):
        raise RuleSyntaxError(f"no comparison in clause {clause!r}")
    exact = bool(_EXACT_RE.search(clause))

    count_match = _COUNT_RE.search(clause)
    if count_match:
        return Clause(
            kind="count",
            severity=severity,
            count=int(count_match.group(1)),
            exact=exact,
            exact_count=bool(_EXACT_COUNT_RE.search(clause)),
        )

    categories = _categories_in(clause)
    if categories:
        return Clause(kind="category", severity=severity, categories=categories, exact=exact)

    if _ANY_RE.search(clause):
        return Clause(kind="any", severity=severity, exact=exact)

    raise RuleSyntaxError(f"no harm category in clause {clause!r}")


def parse_condition(text: str) -> List[Clause]:
    parts = [part for part in _AND_RE.split(text or "") if part.strip()]
    if not parts:
        raise RuleSyntaxError(f"empty trigger condition {text!r}")
    return [parse_clause(part) for part in parts]


def parse_effect(text: str) -> Effect:
    effect = (text or "").strip()
    if _ALL_RE.search(effect):
        categories = HARM_CATEGORIES
    else:
        categories = _categories_in(effect)
    if not categories:
        raise RuleSyntaxError(f"no harm category in effect {effect!r}")

    # The last level named is the destination ("raise LOW categories to MEDIUM").
    levels = _SEVERITY_RE.findall(effect)
    if levels:
        return Effect(categories=categories, target=levels[-1].upper())

    signed = _SIGNED_STEP_RE.search(effect)
    if signed:
        steps = int(signed.group(2))
        return Effect(categories=categories, steps=-steps if signed.group(1) == "-" else steps)

    by_step = _BY_STEP_RE.search(effect)
    if by_step:
        return Effect(categories=categories, steps=int(by_step.group(1)))

    if _ESCALATE_RE.search(effect):
        return Effect(categories=categories, steps=1)

    raise RuleSyntaxError(f"no target level or step in effect {effect!r}")


def condition_holds(clauses: Iterable[Clause], severities: MutableMapping[str, str], tool_type: str) -> bool:
    return all(clause.holds(severities, tool_type) for clause in clauses)


def apply_effect(effect: Effect, severities: MutableMapping[str, str]) -> Dict[str, Tuple[str, str]]:
    """Raise the targeted severities in place and return {code: (before, after)}."""
    changes: Dict[str, Tuple[str, str]] = {}
    for code in effect.categories:
        current = severities.get(code, "LOW")
        proposed = effect.resolve(current)
        if is_severity_higher(proposed, current):
            severities[code] = proposed
            changes[code] = (current, proposed)
    return changes


def apply_rules(rules: Iterable, severities: MutableMapping[str, str], tool_type: str) -> List[AppliedRule]:
    """Apply rules in order; each rule sees the severities left by the rules before it."""
    applied: List[AppliedRule] = []
    for rule in rules:
        if not getattr(rule, "is_active", True):
            continue
        try:
            clauses = parse_condition(rule.trigger_condition)
            effect = parse_effect(rule.escalation_effect)
        except RuleSyntaxError as exc:
            logger.warning("Skipping compound rule %s: %s", rule.rule_id, exc)
            continue
        if not condition_holds(clauses, severities, tool_type):
            continue
        changes = apply_effect(effect, severities)
        logger.info("Compound rule %s applied: %s", rule.rule_id, changes or "no change")
        applied.append(AppliedRule(rule_id=rule.rule_id, name=rule.name or rule.rule_id, changes=changes))
    return applied
