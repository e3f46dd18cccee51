from pathlib import Path

import pandas as pd
from django.conf import settings
from django.contrib.auth.models import User
from django.core.management.base import BaseCommand

from services.buyer_service import RequestContext
from services.csv_service import import_rows, normalize_row
from services.exceptions import ImportRowLimitExceeded

EXCEL_SUFFIXES = (".xlsx", ".xls")


def cell_text(value) -> str:
    """Turn a spreadsheet cell into the string a CSV cell would hold"""
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        # Excel stores phones and budgets as floats (e.g. 9876543210.0)
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def read_rows(file_path: Path):
    if file_path.suffix.lower() in EXCEL_SUFFIXES:
        df = pd.read_excel(file_path, dtype=object)
    else:
        df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
    return [
        normalize_row({str(column): cell_text(value) for column, value in record.items()})
        for record in df.to_dict(orient="records")
    ]


class Command(BaseCommand):
    help = "Import buyer leads from a CSV or Excel file"

    def add_arguments(self, parser):
        parser.add_argument(
            '--file',
            type=str,
            required=True,
            help='Path to a .csv or .xlsx file (relative paths are resolved against BASE_DIR)'
        )
        parser.add_argument(
            '--owner',
            type=str,
            required=True,
            help='Username that will own the imported leads'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Validate rows without saving anything'
        )

    def handle(self, *args, **options):
        file_path = Path(settings.BASE_DIR) / options['file']

        if not file_path.exists():
            self.stdout.write(
                self.style.ERROR(f"File not found at {file_path}")
            )
            return

        try:
            owner = User.objects.get(username=options['owner'])
        except User.DoesNotExist:
            self.stdout.write(
                self.style.ERROR(f"User '{options['owner']}' does not exist")
            )
            return

        try:
            rows = read_rows(file_path)
        except (ValueError, OSError) as e:
            self.stdout.write(
                self.style.ERROR(f"Error reading {file_path.name}: {e}")
            )
            return

        self.stdout.write(f"Found {len(rows)} rows in {file_path.name}")

        try:
            result = import_rows(RequestContext(user=owner), rows, dry_run=options['dry_run'])
        except ImportRowLimitExceeded as e:
            self.stdout.write(self.style.ERROR(str(e)))
            return

        for error in result.errors:
            self.stdout.write(
                self.style.WARNING(f"Row {error.row}: {error.message}")
            )

        verb = "valid" if options['dry_run'] else "imported"
        self.stdout.write(
            self.style.SUCCESS(
                f"\nImport complete:\n"
                f"  - {result.success_count} {verb}\n"
                f"  - {len(result.errors)} errors"
            )
        )
