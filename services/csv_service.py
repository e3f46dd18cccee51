"""
CSV import and export for buyer leads.

Import validates and creates rows one at a time; a bad row is reported and
the batch carries on. Only an oversized file is rejected as a whole, before
any row is touched.
"""
import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from django.conf import settings
from django.db import DatabaseError

from buyers.models import Buyer
from services.buyer_service import BuyerFilters, RequestContext, filter_buyers, save_new_buyer
from services.exceptions import BuyerValidationError, ImportRowLimitExceeded
from services.validation import validate_csv_row

logger = logging.getLogger(__name__)

# Column name -> buyer field, in export order
CSV_COLUMNS = [
    ("fullName", "full_name"),
    ("email", "email"),
    ("phone", "phone"),
    ("city", "city"),
    ("propertyType", "property_type"),
    ("bhk", "bhk"),
    ("purpose", "purpose"),
    ("budgetMin", "budget_min"),
    ("budgetMax", "budget_max"),
    ("timeline", "timeline"),
    ("source", "source"),
    ("notes", "notes"),
    ("tags", "tags"),
    ("status", "status"),
]

CSV_HEADER = [column for column, _ in CSV_COLUMNS]
COLUMN_TO_FIELD = dict(CSV_COLUMNS)
FIELD_TO_COLUMN = {field_name: column for column, field_name in CSV_COLUMNS}


@dataclass
class RowImportError:
    row: int
    message: str

    def as_dict(self) -> Dict:
        return {"row": self.row, "message": self.message}


@dataclass
class ImportResult:
    success_count: int = 0
    errors: List[RowImportError] = field(default_factory=list)
    created: List[Buyer] = field(default_factory=list)


def get_max_import_rows() -> int:
    return getattr(settings, "BUYER_IMPORT_MAX_ROWS", 200)


def _field_name(header: Optional[str]) -> Optional[str]:
    if header is None:
        return None
    cleaned = header.strip()
    if cleaned in COLUMN_TO_FIELD:
        return COLUMN_TO_FIELD[cleaned]
    if cleaned in FIELD_TO_COLUMN:
        return cleaned
    return None


def normalize_row(raw: Mapping[Optional[str], Optional[str]]) -> Dict[str, Optional[str]]:
    """Key a raw row by buyer field name, dropping unknown columns"""
    row = {}
    for header, value in raw.items():
        name = _field_name(header)
        if name is None:
            continue
        row[name] = value if isinstance(value, str) or value is None else str(value)
    return row


def parse_csv(text: str) -> List[Dict[str, Optional[str]]]:
    """Parse CSV text with a header row into rows keyed by buyer field name"""
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    return [normalize_row(raw) for raw in reader]


def _row_message(exc: BuyerValidationError) -> str:
    return "; ".join(
        f"{FIELD_TO_COLUMN.get(error.field, error.field)}: {error.message}"
        for error in exc.errors
    )


def import_rows(
    ctx: RequestContext,
    rows: List[Mapping[str, Optional[str]]],
    dry_run: bool = False,
) -> ImportResult:
    """
    Validate and create each row in turn.

    Row numbers in the result are the row's 1-based position plus 2.
    With dry_run set rows are validated and counted but nothing is written.
    """
    max_rows = get_max_import_rows()
    if len(rows) > max_rows:
        logger.warning(f"Import rejected: {len(rows)} rows exceeds the limit of {max_rows}")
        raise ImportRowLimitExceeded(max_rows)

    result = ImportResult()
    for position, row in enumerate(rows, start=1):
        row_number = position + 2
        try:
            record = validate_csv_row(row)
        except BuyerValidationError as exc:
            logger.debug(f"Row {row_number} rejected: {exc.summary()}")
            result.errors.append(RowImportError(row_number, _row_message(exc)))
            continue

        if dry_run:
            result.success_count += 1
            continue

        try:
            buyer = save_new_buyer(ctx, record)
        except DatabaseError as exc:
            logger.error(f"Row {row_number} could not be saved: {exc}", exc_info=True)
            result.errors.append(RowImportError(row_number, f"Could not save row: {exc}"))
            continue

        result.created.append(buyer)
        result.success_count += 1

    logger.info(
        f"Import finished for user {ctx.user_id}: "
        f"{result.success_count} imported, {len(result.errors)} errors"
    )
    return result


def import_buyers_csv(ctx: RequestContext, text: str) -> ImportResult:
    return import_rows(ctx, parse_csv(text))


def _cell(buyer: Buyer, field_name: str) -> str:
    value = getattr(buyer, field_name)
    if field_name == "tags":
        return ",".join(value or [])
    if value is None:
        return ""
    return str(value)


def write_buyers_csv(buyers: Iterable[Buyer], out) -> None:
    writer = csv.writer(out)
    writer.writerow(CSV_HEADER)
    for buyer in buyers:
        writer.writerow([_cell(buyer, field_name) for _, field_name in CSV_COLUMNS])


def export_buyers_csv(filters: BuyerFilters) -> str:
    """CSV text for every lead matching `filters`, ignoring pagination"""
    max_rows = getattr(settings, "BUYER_EXPORT_MAX_ROWS", 10000)
    buyers = filter_buyers(filters)[:max_rows]
    out = io.StringIO()
    write_buyers_csv(buyers, out)
    logger.info(f"Exported buyers CSV ({len(out.getvalue())} bytes)")
    return out.getvalue()
