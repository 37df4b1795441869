from pathlib import Path
from typing import Any, Dict, List

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from assessment.csv_rows import DATASETS, RowError, read_dataset
from assessment.models import (
    ContextQuestion,
    HarmCategory,
    RiskCalculationRule,
    RiskExplanation,
    ToolQuestion,
)

MODELS = {
    "harm_categories": HarmCategory,
    "tool_questions": ToolQuestion,
    "context_questions": ContextQuestion,
    "rules": RiskCalculationRule,
    "explanations": RiskExplanation,
}

EXPLANATION_KEY = ("category", "severity", "tool_type")


class Command(BaseCommand):
    help = "Load the assessment lookup tables from CSV files through the ORM."

    def add_arguments(self, parser):
        parser.add_argument(
            "--data-dir",
            default=str(getattr(settings, "ASSESSMENT_DATA_DIR", "Resources/assessment")),
            help="Directory holding the assessment CSV files.",
        )
        parser.add_argument(
            "--dataset",
            action="append",
            choices=sorted(DATASETS),
            help="Dataset(s) to load (default: all).",
        )
        parser.add_argument("--encoding", default="utf-8-sig")
        parser.add_argument("--delimiter", default=",")
        parser.add_argument("--truncate", action="store_true", help="Delete existing rows before loading.")
        parser.add_argument("--dry-run", action="store_true", help="Parse CSV files only.")

    def handle(self, *args, **options):
        data_dir = Path(options["data_dir"]).expanduser()
        if not data_dir.is_dir():
            raise CommandError(f"Data directory not found: {data_dir}")

        parsed: Dict[str, List[Dict[str, Any]]] = {}
        for name in options["dataset"] or list(DATASETS):
            config = DATASETS[name]
            csv_path = data_dir / config["csv_name"]
            if not csv_path.exists():
                self.stderr.write(f"CSV file not found, skipping {name}: {csv_path}")
                continue
            try:
                rows, skipped = read_dataset(
                    csv_path,
                    config["row_builder"],
                    encoding=options["encoding"],
                    delimiter=options["delimiter"],
                )
            except UnicodeDecodeError as exc:
                raise CommandError(f"Failed to decode {csv_path}. Try --encoding gbk. Details: {exc}") from exc
            except RowError as exc:
                raise CommandError(str(exc)) from exc
            for message in skipped:
                self.stderr.write(f"{csv_path.name}: {message}")
            parsed[name] = rows

        if options["dry_run"]:
            for name, rows in parsed.items():
                self.stdout.write(f"Dry-run: parsed {len(rows)} {name} rows.")
            return

        with transaction.atomic():
            for name, rows in parsed.items():
                count = self._load(name, rows, truncate=options["truncate"])
                self.stdout.write(self.style.SUCCESS(f"Loaded {count} {name} rows."))

    def _load(self, name: str, rows: List[Dict[str, Any]], *, truncate: bool) -> int:
        model = MODELS[name]
        if truncate:
            model.objects.all().delete()

        key = DATASETS[name]["key"]
        for row in rows:
            if key is None:
                lookup = {field: row[field] for field in EXPLANATION_KEY}
            else:
                lookup = {key: row[key]}
            defaults = {field: value for field, value in row.items() if field not in lookup}
            model.objects.update_or_create(defaults=defaults, **lookup)
        return len(rows)
