"""
Buyer lead repository operations: create, update, delete, find, list and history.

Every mutating operation takes a RequestContext carrying the acting user.
Updates use the lead's updated_at value as an optimistic concurrency token:
the write only lands if the row still carries the token the caller read.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from django.contrib.auth.models import User
from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from buyers.models import (
    CITY_CHOICES,
    DEFAULT_STATUS,
    PROPERTY_TYPE_CHOICES,
    STATUS_CHOICES,
    TIMELINE_CHOICES,
    Buyer,
    BuyerHistory,
)
from services.change_set import compute_changes
from services.exceptions import (
    BuyerForbidden,
    BuyerNotFound,
    BuyerNotFoundOrForbidden,
    BuyerValidationError,
    FieldError,
    StaleBuyerUpdate,
)
from services.validation import BUYER_FIELDS, validate_buyer

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "updatedAt": "updated_at",
    "fullName": "full_name",
    "createdAt": "created_at",
}
SORT_ORDERS = ("asc", "desc")
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10
HISTORY_LIMIT = 5


@dataclass(frozen=True)
class RequestContext:
    """The resolved identity of whoever is making the request"""

    user: User

    @property
    def user_id(self) -> int:
        return self.user.pk


@dataclass
class BuyerFilters:
    search: Optional[str] = None
    city: Optional[str] = None
    property_type: Optional[str] = None
    status: Optional[str] = None
    timeline: Optional[str] = None
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    sort_by: str = "updatedAt"
    sort_order: str = "desc"

    def __post_init__(self):
        errors = []
        for field, choices in (
            ("city", CITY_CHOICES),
            ("property_type", PROPERTY_TYPE_CHOICES),
            ("status", STATUS_CHOICES),
            ("timeline", TIMELINE_CHOICES),
        ):
            value = getattr(self, field)
            if value in ("", None):
                setattr(self, field, None)
            elif value not in [choice for choice, _ in choices]:
                errors.append(FieldError(field, f"Unknown {field.replace('_', ' ')}: {value}"))
        if self.page is None or self.page < 1:
            errors.append(FieldError("page", "Page must be 1 or greater"))
        if self.limit is None or self.limit < 1 or self.limit > MAX_PAGE_SIZE:
            errors.append(FieldError("limit", f"Limit must be between 1 and {MAX_PAGE_SIZE}"))
        if self.sort_by not in SORT_FIELDS and self.sort_by not in SORT_FIELDS.values():
            errors.append(FieldError("sort_by", f"Sort must be one of: {', '.join(SORT_FIELDS)}"))
        if self.sort_order not in SORT_ORDERS:
            errors.append(FieldError("sort_order", "Sort order must be asc or desc"))
        if errors:
            raise BuyerValidationError(errors)
        self.search = (self.search or "").strip() or None

    @property
    def order_field(self) -> str:
        field = SORT_FIELDS.get(self.sort_by, self.sort_by)
        return field if self.sort_order == "asc" else f"-{field}"


@dataclass
class BuyerPage:
    buyers: List[Buyer]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


def buyer_snapshot(buyer: Buyer) -> Dict[str, Any]:
    return {field: getattr(buyer, field) for field in BUYER_FIELDS}


def _now() -> datetime:
    """Current time truncated to milliseconds, the precision timestamps are rendered with"""
    now = timezone.now()
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


def _next_stamp(previous: Optional[datetime]) -> datetime:
    """A fresh updated_at that is strictly later than the previous one"""
    now = _now()
    if previous is not None and now <= previous:
        now = previous + timedelta(milliseconds=1)
    return now


def _record_history(buyer_id, user: User, action: str, changes: Dict[str, Any], changed_at: datetime):
    return BuyerHistory.objects.create(
        buyer_id=buyer_id,
        changed_by=user,
        changed_at=changed_at,
        diff={"action": action, "changes": changes},
    )


def save_new_buyer(ctx: RequestContext, record: Mapping[str, Any]) -> Buyer:
    """Persist an already validated record owned by the acting user"""
    now = _now()
    values = {field: record.get(field) for field in BUYER_FIELDS}
    values["status"] = values["status"] or DEFAULT_STATUS
    values["tags"] = list(values["tags"] or [])

    with transaction.atomic():
        buyer = Buyer.objects.create(
            owner=ctx.user,
            created_at=now,
            updated_at=now,
            **values,
        )
        _record_history(buyer.pk, ctx.user, "created", {}, now)

    logger.info(f"Buyer created: id={buyer.pk}, owner={ctx.user_id}")
    return buyer


def create_buyer(ctx: RequestContext, fields: Mapping[str, Any]) -> Buyer:
    """Validate and create a lead owned by the acting user"""
    record = validate_buyer(fields)
    return save_new_buyer(ctx, record)


def update_buyer(
    ctx: RequestContext,
    buyer_id,
    fields: Mapping[str, Any],
    expected_updated_at: datetime,
) -> Buyer:
    """
    Merge `fields` onto the lead and persist it.

    Raises BuyerNotFound, StaleBuyerUpdate when the lead changed since the
    caller read it, BuyerForbidden when the actor is not the owner, and
    BuyerValidationError when the merged record breaks a rule.
    """
    with transaction.atomic():
        try:
            current = Buyer.objects.get(pk=buyer_id)
        except Buyer.DoesNotExist:
            raise BuyerNotFound()

        if current.updated_at != expected_updated_at:
            logger.warning(
                f"Stale update rejected for buyer {buyer_id}: "
                f"expected {expected_updated_at}, found {current.updated_at}"
            )
            raise StaleBuyerUpdate()

        if current.owner_id != ctx.user_id:
            logger.warning(f"User {ctx.user_id} tried to edit buyer {buyer_id} owned by {current.owner_id}")
            raise BuyerForbidden()

        before = buyer_snapshot(current)
        proposed = {field: value for field, value in fields.items() if field in BUYER_FIELDS}
        record = validate_buyer({**before, **proposed})
        values = {field: record[field] for field in BUYER_FIELDS}
        values["status"] = values["status"] or before["status"]

        stamp = _next_stamp(current.updated_at)
        written = Buyer.objects.filter(
            pk=buyer_id,
            owner_id=ctx.user_id,
            updated_at=expected_updated_at,
        ).update(updated_at=stamp, **values)
        if written == 0:
            # Another writer got in between the read and the conditional write
            raise StaleBuyerUpdate()

        buyer = Buyer.objects.get(pk=buyer_id)
        changes = compute_changes(before, buyer_snapshot(buyer), BUYER_FIELDS)
        if changes:
            _record_history(buyer.pk, ctx.user, "updated", changes, stamp)

    logger.info(f"Buyer updated: id={buyer_id}, changed={sorted(changes)}")
    return buyer


def delete_buyer(ctx: RequestContext, buyer_id) -> None:
    """Delete a lead owned by the acting user; history entries are kept"""
    deleted, _ = Buyer.objects.filter(pk=buyer_id, owner_id=ctx.user_id).delete()
    if not deleted:
        logger.warning(f"Delete of buyer {buyer_id} by user {ctx.user_id} matched nothing")
        raise BuyerNotFoundOrForbidden()
    logger.info(f"Buyer deleted: id={buyer_id}, owner={ctx.user_id}")


def get_buyer(buyer_id) -> Optional[Buyer]:
    """Find a lead by id; reads are not restricted to the owner"""
    return Buyer.objects.filter(pk=buyer_id).first()


def filter_buyers(filters: BuyerFilters) -> QuerySet:
    """Matching leads in the requested order, unpaginated"""
    queryset = Buyer.objects.all()

    if filters.search:
        queryset = queryset.filter(
            Q(full_name__icontains=filters.search)
            | Q(phone__icontains=filters.search)
            | Q(email__icontains=filters.search)
        )
    if filters.city:
        queryset = queryset.filter(city=filters.city)
    if filters.property_type:
        queryset = queryset.filter(property_type=filters.property_type)
    if filters.status:
        queryset = queryset.filter(status=filters.status)
    if filters.timeline:
        queryset = queryset.filter(timeline=filters.timeline)

    return queryset.order_by(filters.order_field, "pk")


def list_buyers(filters: BuyerFilters) -> BuyerPage:
    queryset = filter_buyers(filters)
    total = queryset.count()
    offset = (filters.page - 1) * filters.limit
    buyers = list(queryset[offset:offset + filters.limit])
    return BuyerPage(buyers=buyers, total=total, page=filters.page, limit=filters.limit)


def get_history(buyer_id, limit: int = HISTORY_LIMIT) -> List[BuyerHistory]:
    """Most recent history entries for a lead, newest first"""
    return list(
        BuyerHistory.objects.filter(buyer_id=buyer_id)
        .select_related("changed_by")
        .order_by("-changed_at")[:limit]
    )
