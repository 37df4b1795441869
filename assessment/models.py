from typing import Any, Dict, List

from django.db import models

from .taxonomy import HARM_CATEGORIES


class Severity(models.TextChoices):
    LOW = "LOW", "Low"
    MEDIUM = "MEDIUM", "Medium"
    HIGH = "HIGH", "High"
    CRITICAL = "CRITICAL", "Critical"


class ResponseType(models.TextChoices):
    AUTO = "", "Automatic"
    SINGLE = "single", "Single answer"
    MULTIPLE = "multiple", "Multiple answers"


HARM_CATEGORY_CHOICES = [(code, code) for code in HARM_CATEGORIES]


class HarmCategory(models.Model):
    """Reference text for one harm category of the taxonomy."""

    code = models.CharField(max_length=4, primary_key=True)
    name = models.CharField(max_length=128)
    description = models.TextField(blank=True)
    examples = models.TextField(blank=True)

    class Meta:
        ordering = ["code"]
        verbose_name_plural = "harm categories"

    def __str__(self) -> str:  # pragma: no cover - trivial representation
        return f"{self.code}: {self.name}"

    def to_payload(self) -> Dict[str, str]:
        return {
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "examples": self.examples,
        }


class QuestionBase(models.Model):
    question_id = models.CharField(max_length=64, unique=True)
    position = models.PositiveIntegerField(default=0)
    text = models.TextField(help_text="Question shown to the person completing the assessment.")
    response_type = models.CharField(
        max_length=16,
        choices=ResponseType.choices,
        blank=True,
        default=ResponseType.AUTO,
        help_text="Blank means multi-select when the question has more than two options.",
    )
    notes = models.TextField(blank=True)
    options = models.JSONField(default=list, help_text="Answer options with their per-option lookup data.")

    class Meta:
        abstract = True
        ordering = ["position", "id"]

    def __str__(self) -> str:  # pragma: no cover - trivial representation
        return f"{self.question_id}: {self.text[:60]}"

    @property
    def allows_multiple(self) -> bool:
        if self.response_type == ResponseType.SINGLE:
            return False
        if self.response_type == ResponseType.MULTIPLE:
            return True
        return len(self.options) > 2

    @property
    def letters(self) -> List[str]:
        return [option["letter"] for option in self.options]

    def option(self, letter: str) -> Dict[str, Any]:
        for option in self.options:
            if option.get("letter") == letter:
                return option
        raise KeyError(letter)

    def answer_text(self, letter: str) -> str:
        try:
            return self.option(letter).get("text") or letter
        except KeyError:
            return letter

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.question_id,
            "text": self.text,
            "input_type": "checkbox" if self.allows_multiple else "radio",
            "options": [{"value": option["letter"], "text": option["text"]} for option in self.options],
        }


class ToolQuestion(QuestionBase):
    """A usage question for one tool type; each option flags harm categories and layers."""

    tool_type = models.CharField(max_length=64, db_index=True)

    class Meta(QuestionBase.Meta):
        ordering = ["tool_type", "position", "id"]


class ContextQuestion(QuestionBase):
    """An institutional context question; each option carries per-category severity modifiers."""


class RiskCalculationRule(models.Model):
    """A compound rule escalating severities when its trigger condition holds."""

    rule_id = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255, blank=True)
    trigger_condition = models.TextField(help_text="e.g. 'PS >= HIGH AND tool = chatbot'.")
    escalation_effect = models.TextField(help_text="e.g. 'Escalate PS to CRITICAL' or 'MC +1'.")
    description = models.TextField(blank=True)
    priority = models.IntegerField(default=0, help_text="Rules run in ascending priority.")
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["priority", "rule_id"]

    def __str__(self) -> str:  # pragma: no cover - trivial representation
        return self.name or self.rule_id


class RiskExplanation(models.Model):
    """Explanatory text for a category at a severity, optionally for one tool type."""

    category = models.CharField(max_length=4, choices=HARM_CATEGORY_CHOICES)
    severity = models.CharField(max_length=16, choices=Severity.choices)
    tool_type = models.CharField(max_length=64, blank=True, help_text="Blank applies to every tool.")
    explanation = models.TextField()
    guidance = models.TextField(blank=True)

    class Meta:
        ordering = ["category", "severity", "tool_type"]
        constraints = [
            models.UniqueConstraint(
                fields=["category", "severity", "tool_type"],
                name="unique_explanation_per_category_severity_tool",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial representation
        return f"{self.category}/{self.severity}/{self.tool_type or '*'}"
