import logging
from typing import Any, Dict, List

from django.conf import settings

from risk_backend.llm_client import call_llm

logger = logging.getLogger(__name__)


def static_summary(result: Dict[str, Any]) -> str:
    categories = result.get("harm_categories", {})
    flagged = [categories[code] for code in result.get("flagged_categories", []) if code in categories]
    tool = result.get("tool_type", "this tool")

    if not flagged:
        return (
            f"Overall risk for {tool} is {result.get('overall_risk', 'LOW')}. "
            "No harm category was flagged by your answers."
        )

    lines: List[str] = [f"Overall risk for {tool} is {result.get('overall_risk', 'LOW')}."]
    for category in flagged:
        line = f"{category['name']} is rated {category['severity']}"
        if category.get("risk_count"):
            line += f" ({category['risk_count']} risk(s) identified)"
        line += "."
        if category.get("explanation"):
            line += f" {category['explanation']}"
        if category.get("guidance"):
            line += f" Suggested action: {category['guidance']}"
        lines.append(line)
    for rule in result.get("applied_rules", []):
        if rule.get("changes"):
            lines.append(f"Compound rule '{rule['name']}' escalated {', '.join(sorted(rule['changes']))}.")
    return "\n".join(lines)


def _prompt(result: Dict[str, Any]) -> str:
    categories = result.get("harm_categories", {})
    rows = [
        f"- {category['name']} ({code}): {category['severity']}, {category.get('risk_count', 0)} risk(s)"
        for code, category in categories.items()
    ]
    return (
        "You are advising a school on the risks of adopting an AI tool in the classroom.\n"
        f"Tool type: {result.get('tool_type')}\n"
        f"Overall risk: {result.get('overall_risk')}\n"
        "Harm categories (Kennedy & Campos taxonomy):\n"
        + "\n".join(rows)
        + "\n\nWrite a short plain-language summary (at most 120 words) for teachers, "
        "naming the highest risks first and one practical safeguard for each. "
        "Do not invent risks that are not listed."
    )


def build_summary(result: Dict[str, Any]) -> Dict[str, Any]:
    """Return {"source", "text"} and a "warning" when the language model could not be used."""
    if not getattr(settings, "ASSESSMENT_NARRATIVE_ENABLED", False):
        return {"source": "static", "text": static_summary(result)}

    llm_response = call_llm([{"role": "user", "content": _prompt(result)}], temperature=0.3, max_tokens=400)
    text = (llm_response.get("content") or "").strip() if llm_response.get("success") else ""
    if text:
        return {"source": "llm", "text": text}

    warning = llm_response.get("error") or "Language model returned an empty summary."
    logger.warning("Falling back to static assessment summary: %s", warning)
    return {"source": "static", "text": static_summary(result), "warning": warning}
