from django.db import migrations, models


RESPONSE_TYPE_CHOICES = [("", "Automatic"), ("single", "Single answer"), ("multiple", "Multiple answers")]


def _question_fields():
    return [
        (
            "id",
            models.BigAutoField(
                auto_created=True,
                primary_key=True,
                serialize=False,
                verbose_name="ID",
            ),
        ),
        ("question_id", models.CharField(max_length=64, unique=True)),
        ("position", models.PositiveIntegerField(default=0)),
        ("text", models.TextField(help_text="Question shown to the person completing the assessment.")),
        (
            "response_type",
            models.CharField(
                blank=True,
                choices=RESPONSE_TYPE_CHOICES,
                default="",
                help_text="Blank means multi-select when the question has more than two options.",
                max_length=16,
            ),
        ),
        ("notes", models.TextField(blank=True)),
        (
            "options",
            models.JSONField(default=list, help_text="Answer options with their per-option lookup data."),
        ),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="HarmCategory",
            fields=[
                ("code", models.CharField(max_length=4, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=128)),
                ("description", models.TextField(blank=True)),
                ("examples", models.TextField(blank=True)),
            ],
            options={
                "ordering": ["code"],
                "verbose_name_plural": "harm categories",
            },
        ),
        migrations.CreateModel(
            name="ToolQuestion",
            fields=_question_fields()
            + [("tool_type", models.CharField(db_index=True, max_length=64))],
            options={
                "ordering": ["tool_type", "position", "id"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="ContextQuestion",
            fields=_question_fields(),
            options={
                "ordering": ["position", "id"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="RiskCalculationRule",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("rule_id", models.CharField(max_length=64, unique=True)),
                ("name", models.CharField(blank=True, max_length=255)),
                ("trigger_condition", models.TextField(help_text="e.g. 'PS >= HIGH AND tool = chatbot'.")),
                ("escalation_effect", models.TextField(help_text="e.g. 'Escalate PS to CRITICAL' or 'MC +1'.")),
                ("description", models.TextField(blank=True)),
                ("priority", models.IntegerField(default=0, help_text="Rules run in ascending priority.")),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["priority", "rule_id"],
            },
        ),
        migrations.CreateModel(
            name="RiskExplanation",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "category",
                    models.CharField(
                        choices=[("BA", "BA"), ("MA", "MA"), ("PS", "PS"), ("MC", "MC"), ("HI", "HI"), ("OH", "OH")],
                        max_length=4,
                    ),
                ),
                (
                    "severity",
                    models.CharField(
                        choices=[("LOW", "Low"), ("MEDIUM", "Medium"), ("HIGH", "High"), ("CRITICAL", "Critical")],
                        max_length=16,
                    ),
                ),
                (
                    "tool_type",
                    models.CharField(blank=True, help_text="Blank applies to every tool.", max_length=64),
                ),
                ("explanation", models.TextField()),
                ("guidance", models.TextField(blank=True)),
            ],
            options={
                "ordering": ["category", "severity", "tool_type"],
            },
        ),
        migrations.AddConstraint(
            model_name="riskexplanation",
            constraint=models.UniqueConstraint(
                fields=("category", "severity", "tool_type"),
                name="unique_explanation_per_category_severity_tool",
            ),
        ),
    ]
