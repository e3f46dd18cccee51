from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from ninja import Schema
from pydantic import StrictInt, field_validator


class BuyerIn(Schema):
    """Schema for buyer payloads; business rules are applied by services.validation"""
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    property_type: Optional[str] = None
    bhk: Optional[str] = None
    purpose: Optional[str] = None
    budget_min: Optional[StrictInt] = None
    budget_max: Optional[StrictInt] = None
    timeline: Optional[str] = None
    source: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None


class BuyerUpdateIn(BuyerIn):
    """Schema for updating a buyer; updated_at is the value read before editing"""
    updated_at: datetime

    @field_validator("updated_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class BuyerFilterSchema(Schema):
    """Schema for listing and exporting buyers"""
    search: Optional[str] = None
    city: Optional[str] = None
    property_type: Optional[str] = None
    status: Optional[str] = None
    timeline: Optional[str] = None
    page: int = 1
    limit: int = 10
    sort_by: str = "updatedAt"
    sort_order: str = "desc"


class BuyerOut(Schema):
    """Schema for buyer response"""
    id: UUID
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
    status: str
    notes: Optional[str] = None
    tags: List[str] = []
    owner_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BuyerHistoryOut(Schema):
    """Schema for a history entry"""
    id: UUID
    buyer_id: UUID
    changed_by_id: int
    changed_at: datetime
    diff: Dict[str, Any]

    class Config:
        from_attributes = True


class BuyerDetailOut(Schema):
    buyer: BuyerOut
    history: List[BuyerHistoryOut]


class BuyerListOut(Schema):
    buyers: List[BuyerOut]
    total: int
    page: int
    limit: int
    total_pages: int


class RowErrorOut(Schema):
    row: int
    message: str


class ImportResultOut(Schema):
    success_count: int
    errors: List[RowErrorOut]
    buyers: List[BuyerOut]
