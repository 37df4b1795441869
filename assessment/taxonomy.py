"""Kennedy & Campos harm taxonomy and the ordinal severity scale.

This module has no Django dependency so the standalone CSV importer can share
it with the app.
"""

from typing import Dict, Iterable, Optional

LOW = "LOW"
MEDIUM = "MEDIUM"
HIGH = "HIGH"
CRITICAL = "CRITICAL"

SEVERITY_LEVELS = (LOW, MEDIUM, HIGH, CRITICAL)
_SEVERITY_RANK = {level: index for index, level in enumerate(SEVERITY_LEVELS)}

HARM_CATEGORIES = ("BA", "MA", "PS", "MC", "HI", "OH")
INTERACTION_LAYERS = ("Output", "Whole", "Group", "System")

HARM_CATEGORY_NAMES: Dict[str, str] = {
    "BA": "Bias & Authenticity",
    "MA": "Misinformation & Accuracy",
    "PS": "Privacy & Safety",
    "MC": "Misuse & Cyberbullying",
    "HI": "Human Flourishing & Interpretability",
    "OH": "Organizational & Human Potential",
}

LAYER_DESCRIPTIONS: Dict[str, Dict[str, str]] = {
    "BA": {
        "Output": "Individual AI responses may contain biased or inauthentic content",
        "Whole": "Complete interactions reinforce bias patterns",
        "Group": "Classroom dynamics affected by biased AI outputs",
        "System": "Institutional bias embedded in AI systems",
    },
    "MA": {
        "Output": "Individual responses may contain misinformation",
        "Whole": "System-wide accuracy issues affect learning",
        "Group": "Misinformation spreads through group interactions",
        "System": "Institutional reliance on inaccurate AI systems",
    },
    "PS": {
        "Output": "Individual privacy violations in AI responses",
        "Whole": "Complete interaction data collection and storage",
        "Group": "Group privacy and safety concerns",
        "System": "Institutional data handling and safety protocols",
    },
    "MC": {
        "Output": "Individual misuse of AI-generated content",
        "Whole": "System enables cyberbullying or misuse",
        "Group": "Group-level misuse and harassment",
        "System": "Institutional failure to prevent misuse",
    },
    "HI": {
        "Output": "Individual responses lack interpretability",
        "Whole": "System reduces human flourishing",
        "Group": "Group learning experiences diminished",
        "System": "Institutional over-reliance on AI reduces human potential",
    },
    "OH": {
        "Output": "Individual organizational impacts",
        "Whole": "Complete system affects organizational function",
        "Group": "Group-level organizational changes",
        "System": "System-wide organizational transformation",
    },
}

TRUE_VALUES = {"1", "true", "t", "yes", "y"}


def parse_flag(value: Optional[str]) -> bool:
    """Spreadsheet booleans: TRUE/true/1 (and yes/y/t) are set, anything else is not."""
    return (value or "").strip().lower() in TRUE_VALUES


def normalise_severity(value: Optional[str], default: str = LOW) -> str:
    candidate = (value or "").strip().upper()
    if candidate in _SEVERITY_RANK:
        return candidate
    return default


def severity_rank(severity: str) -> int:
    try:
        return _SEVERITY_RANK[severity]
    except KeyError:
        raise ValueError(f"Unknown severity level: {severity!r}") from None


def is_severity_higher(new_severity: str, current_severity: str) -> bool:
    return severity_rank(new_severity) > severity_rank(current_severity)


def apply_severity_modifier(severity: str, modifier: int) -> str:
    """Shift a severity by a signed number of steps, clamped to LOW..CRITICAL."""
    index = severity_rank(severity) + int(modifier)
    index = max(0, min(len(SEVERITY_LEVELS) - 1, index))
    return SEVERITY_LEVELS[index]


def max_severity(severities: Iterable[str]) -> str:
    highest = LOW
    for severity in severities:
        if is_severity_higher(severity, highest):
            highest = severity
    return highest


def harm_category_name(code: str) -> str:
    return HARM_CATEGORY_NAMES.get(code, code)


def layer_description(category: str, layer: str) -> str:
    return LAYER_DESCRIPTIONS.get(category, {}).get(layer) or f"{category} risk at {layer} level"
