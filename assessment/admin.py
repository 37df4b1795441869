from django.contrib import admin

from .models import ContextQuestion, HarmCategory, RiskCalculationRule, RiskExplanation, ToolQuestion


@admin.register(HarmCategory)
class HarmCategoryAdmin(admin.ModelAdmin):
    list_display = ("code", "name")
    search_fields = ("code", "name", "description")
    ordering = ("code",)


@admin.register(ToolQuestion)
class ToolQuestionAdmin(admin.ModelAdmin):
    list_display = ("question_id", "tool_type", "position", "response_type")
    list_filter = ("tool_type", "response_type")
    search_fields = ("question_id", "text", "notes")
    ordering = ("tool_type", "position")


@admin.register(ContextQuestion)
class ContextQuestionAdmin(admin.ModelAdmin):
    list_display = ("question_id", "position", "response_type")
    search_fields = ("question_id", "text")
    ordering = ("position",)


@admin.register(RiskCalculationRule)
class RiskCalculationRuleAdmin(admin.ModelAdmin):
    list_display = ("rule_id", "name", "priority", "is_active")
    list_filter = ("is_active",)
    search_fields = ("rule_id", "name", "trigger_condition", "escalation_effect")
    ordering = ("priority", "rule_id")


@admin.register(RiskExplanation)
class RiskExplanationAdmin(admin.ModelAdmin):
    list_display = ("category", "severity", "tool_type")
    list_filter = ("category", "severity")
    search_fields = ("explanation", "guidance")
    ordering = ("category", "severity", "tool_type")
