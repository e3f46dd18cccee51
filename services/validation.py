"""
Validation rules for buyer leads.

Structural checks (lengths, formats, enum membership) run first through a
pydantic model. Cross-field rules only run once every field is structurally
valid, and each rule reports against a single field.
"""
import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from buyers.models import (
    BHK_CHOICES,
    CITY_CHOICES,
    PROPERTY_TYPE_CHOICES,
    PURPOSE_CHOICES,
    RESIDENTIAL_PROPERTY_TYPES,
    SOURCE_CHOICES,
    STATUS_CHOICES,
    TIMELINE_CHOICES,
)
from services.exceptions import BuyerValidationError, FieldError

logger = logging.getLogger(__name__)

BUYER_FIELDS = (
    "full_name",
    "email",
    "phone",
    "city",
    "property_type",
    "bhk",
    "purpose",
    "budget_min",
    "budget_max",
    "timeline",
    "source",
    "status",
    "notes",
    "tags",
)

# Largest value a PositiveBigIntegerField column holds
MAX_BUDGET = 9223372036854775807

FIELD_LABELS = {
    "full_name": "Full name",
    "email": "Email",
    "phone": "Phone",
    "city": "City",
    "property_type": "Property type",
    "bhk": "BHK",
    "purpose": "Purpose",
    "budget_min": "Minimum budget",
    "budget_max": "Maximum budget",
    "timeline": "Timeline",
    "source": "Source",
    "status": "Status",
    "notes": "Notes",
    "tags": "Tags",
}


def _invalid(message: str):
    return PydanticCustomError("buyer_field", message)


def _check_choice(value: Optional[str], choices, label: str) -> Optional[str]:
    if value is None:
        return None
    allowed = [choice for choice, _ in choices]
    if value not in allowed:
        raise _invalid(f"{label} must be one of: {', '.join(allowed)}")
    return value


class BuyerRecord(BaseModel):
    """Structural shape of a buyer lead"""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    full_name: str
    email: Optional[str] = None
    phone: str
    city: str
    property_type: str
    bhk: Optional[str] = None
    purpose: str
    budget_min: Optional[int] = None
    budget_max: Optional[int] = None
    timeline: str
    source: str
    status: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        if len(v) < 2:
            raise _invalid("Full name must be at least 2 characters")
        if len(v) > 80:
            raise _invalid("Full name must be at most 80 characters")
        return v

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        try:
            validate_email(v)
        except DjangoValidationError:
            raise _invalid("Invalid email format")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if len(v) < 10:
            raise _invalid("Phone must be at least 10 digits")
        if len(v) > 15:
            raise _invalid("Phone must be at most 15 digits")
        if not (v.isascii() and v.isdigit()):
            raise _invalid("Phone must contain only digits")
        return v

    @field_validator("city")
    @classmethod
    def validate_city(cls, v: str) -> str:
        return _check_choice(v, CITY_CHOICES, "City")

    @field_validator("property_type")
    @classmethod
    def validate_property_type(cls, v: str) -> str:
        return _check_choice(v, PROPERTY_TYPE_CHOICES, "Property type")

    @field_validator("bhk")
    @classmethod
    def validate_bhk(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v or None, BHK_CHOICES, "BHK")

    @field_validator("purpose")
    @classmethod
    def validate_purpose(cls, v: str) -> str:
        return _check_choice(v, PURPOSE_CHOICES, "Purpose")

    @field_validator("budget_min", "budget_max", mode="before")
    @classmethod
    def reject_boolean_budget(cls, v: Any) -> Any:
        # bool is an int subclass; lax mode would store True as 1
        if isinstance(v, bool):
            raise _invalid("Budget must be a whole number")
        return v

    @field_validator("budget_min", "budget_max")
    @classmethod
    def validate_budget(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return v
        if v <= 0:
            raise _invalid("Budget must be positive")
        if v > MAX_BUDGET:
            raise _invalid("Budget is too large")
        return v

    @field_validator("timeline")
    @classmethod
    def validate_timeline(cls, v: str) -> str:
        return _check_choice(v, TIMELINE_CHOICES, "Timeline")

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        return _check_choice(v, SOURCE_CHOICES, "Source")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v or None, STATUS_CHOICES, "Status")

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if len(v) > 1000:
            raise _invalid("Notes must be at most 1000 characters")
        return v


# Cross-field rules: each takes a structurally valid record and returns an error or None

def bhk_required_for_residential(record: Dict[str, Any]) -> Optional[FieldError]:
    if record["property_type"] in RESIDENTIAL_PROPERTY_TYPES and not record.get("bhk"):
        return FieldError("bhk", "BHK is required for Apartment and Villa property types")
    return None


def budget_max_not_below_min(record: Dict[str, Any]) -> Optional[FieldError]:
    budget_min = record.get("budget_min")
    budget_max = record.get("budget_max")
    if budget_min is not None and budget_max is not None and budget_max < budget_min:
        return FieldError("budget_max", "Maximum budget must be greater than or equal to minimum budget")
    return None


CROSS_FIELD_RULES: Tuple[Callable[[Dict[str, Any]], Optional[FieldError]], ...] = (
    bhk_required_for_residential,
    budget_max_not_below_min,
)


def _error_message(error: Dict[str, Any], field: str) -> str:
    if error["type"] == "missing":
        return f"{FIELD_LABELS.get(field, field)} is required"
    return error["msg"]


def _structural_errors(exc: ValidationError) -> List[FieldError]:
    """First error per field, in field order"""
    errors: List[FieldError] = []
    seen = set()
    for error in exc.errors():
        loc = error.get("loc") or ("__all__",)
        field = str(loc[0])
        if field in seen:
            continue
        seen.add(field)
        errors.append(FieldError(field, _error_message(error, field)))
    return errors


def check_structure(data: Mapping[str, Any]) -> Tuple[Optional[Dict[str, Any]], List[FieldError]]:
    """
    Run the structural checks only.

    Returns the normalized record and an empty list, or None and the errors.
    """
    try:
        record = BuyerRecord.model_validate(dict(data))
    except ValidationError as exc:
        return None, _structural_errors(exc)

    normalized = record.model_dump()
    if normalized["tags"] is None:
        normalized["tags"] = []
    return normalized, []


def check_cross_field(record: Dict[str, Any]) -> List[FieldError]:
    errors = []
    for rule in CROSS_FIELD_RULES:
        error = rule(record)
        if error is not None:
            errors.append(error)
    return errors


def normalize_record(record: Dict[str, Any]) -> Dict[str, Any]:
    # BHK only describes residential units; drop it for everything else
    if record["property_type"] not in RESIDENTIAL_PROPERTY_TYPES:
        record["bhk"] = None
    return record


def validate_buyer(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a candidate buyer field set.

    Returns the normalized record (tags default to an empty list, BHK cleared
    for non-residential property types). Raises BuyerValidationError with
    field-attributed errors otherwise.
    """
    record, errors = check_structure(data)
    if errors:
        raise BuyerValidationError(errors)

    errors = check_cross_field(record)
    if errors:
        raise BuyerValidationError(errors)

    return normalize_record(record)


def parse_budget(value: str) -> Optional[int]:
    """Parse a base-10 budget string; empty means no budget"""
    cleaned = value.strip()
    if cleaned == "":
        return None
    if not (cleaned.isascii() and cleaned.isdigit()):
        raise ValueError("Budget must be a whole number")
    return int(cleaned)


def parse_tags(value: str) -> List[str]:
    """
    Parse a tags cell.

    A JSON array is taken as-is, anything else is split on commas with
    blank tokens dropped.
    """
    cleaned = value.strip()
    if not cleaned:
        return []
    try:
        parsed = json.loads(cleaned)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return [str(tag) for tag in parsed]
    return [tag.strip() for tag in cleaned.split(",") if tag.strip()]


def validate_csv_row(row: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    """
    Validate one CSV row keyed by buyer field name.

    Every value arrives as a string (or None for a short row). Empty cells
    are treated as absent. Status defaults to New.
    """
    data: Dict[str, Any] = {}
    parse_errors: List[FieldError] = []

    for field in BUYER_FIELDS:
        raw = row.get(field)
        if raw is None:
            continue
        if field in ("budget_min", "budget_max"):
            try:
                budget = parse_budget(raw)
            except ValueError as exc:
                parse_errors.append(FieldError(field, str(exc)))
                continue
            if budget is not None:
                data[field] = budget
        elif field == "tags":
            data[field] = parse_tags(raw)
        elif raw.strip() != "":
            data[field] = raw

    record, errors = check_structure(data)
    if parse_errors or errors:
        failed = {error.field for error in parse_errors}
        combined = parse_errors + [error for error in errors if error.field not in failed]
        order = {field: index for index, field in enumerate(BUYER_FIELDS)}
        combined.sort(key=lambda error: order.get(error.field, len(order)))
        raise BuyerValidationError(combined)

    errors = check_cross_field(record)
    if errors:
        raise BuyerValidationError(errors)

    record = normalize_record(record)
    if not record.get("status"):
        record["status"] = "New"
    logger.debug(f"CSV row validated for {record['full_name']}")
    return record
