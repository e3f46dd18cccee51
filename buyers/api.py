import logging
from typing import Optional
from uuid import UUID

from django.conf import settings
from django.http import HttpResponse
from ninja import File, Query, Router
from ninja.files import UploadedFile

from authentication.jwt_auth import cookie_auth, jwt_auth
from buyers.schemas import (
    BuyerDetailOut,
    BuyerFilterSchema,
    BuyerIn,
    BuyerListOut,
    BuyerOut,
    BuyerUpdateIn,
    ImportResultOut,
)
from services import buyer_service
from services.buyer_service import BuyerFilters, RequestContext
from services.csv_service import export_buyers_csv, import_buyers_csv
from services.rate_limit import check_create_limit

logger = logging.getLogger(__name__)

# Every buyer endpoint needs a user: Bearer token or the auth cookie
router = Router(auth=[jwt_auth, cookie_auth])


def get_context(request) -> RequestContext:
    return RequestContext(user=request.auth)


@router.get("", response={200: BuyerListOut, 400: dict, 401: dict})
def list_buyers(request, filters: BuyerFilterSchema = Query(...)):
    """
    List buyers with optional search and filters.

    Search matches name, phone or email. Results are paginated; `total` is
    the number of matches before pagination.
    """
    page = buyer_service.list_buyers(BuyerFilters(**filters.dict()))
    return {
        "buyers": page.buyers,
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "total_pages": page.total_pages,
    }


@router.post("", response={201: BuyerOut, 400: dict, 401: dict, 429: dict})
def create_buyer(request, data: BuyerIn):
    """Create a buyer owned by the authenticated user"""
    ctx = get_context(request)
    check_create_limit(ctx.user_id)
    buyer = buyer_service.create_buyer(ctx, data.dict(exclude_none=True))
    return 201, buyer


@router.get("/export")
def export_buyers(request, filters: BuyerFilterSchema = Query(...)):
    """Download every buyer matching the filters as CSV"""
    csv_text = export_buyers_csv(BuyerFilters(**filters.dict()))
    response = HttpResponse(csv_text, content_type="text/csv")
    response["Content-Disposition"] = 'attachment; filename="buyers.csv"'
    return response


@router.post("/import", response={200: ImportResultOut, 400: dict, 401: dict})
def import_buyers(request, file: Optional[UploadedFile] = File(None)):
    """
    Import buyers from an uploaded CSV file (max 200 rows).

    Invalid rows are reported with their row number and do not stop the
    remaining rows from being imported.
    """
    if file is None:
        return 400, {"error": "No file provided"}

    max_bytes = getattr(settings, "BUYER_IMPORT_MAX_BYTES", 1024 * 1024)
    if file.size > max_bytes:
        logger.warning(f"Import rejected: upload of {file.size} bytes exceeds {max_bytes}")
        return 400, {"error": f"File must be at most {max_bytes} bytes"}

    try:
        text = file.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        return 400, {"error": "File must be a UTF-8 encoded CSV"}

    result = import_buyers_csv(get_context(request), text)
    return {
        "success_count": result.success_count,
        "errors": [error.as_dict() for error in result.errors],
        "buyers": result.created,
    }


@router.get("/{uuid:buyer_id}", response={200: BuyerDetailOut, 401: dict, 404: dict})
def get_buyer(request, buyer_id: UUID):
    """Get a buyer with its most recent history"""
    buyer = buyer_service.get_buyer(buyer_id)
    if buyer is None:
        return 404, {"error": "Buyer not found"}

    return {
        "buyer": buyer,
        "history": buyer_service.get_history(buyer_id),
    }


@router.put("/{uuid:buyer_id}", response={200: BuyerOut, 400: dict, 401: dict, 403: dict, 404: dict, 409: dict})
def update_buyer(request, buyer_id: UUID, data: BuyerUpdateIn):
    """
    Update a buyer.

    `updated_at` must be the value the client last read; if the buyer has
    changed since, the update is rejected with 409 and the client should
    reload before trying again.
    """
    fields = data.dict(exclude_unset=True)
    expected_updated_at = fields.pop("updated_at")
    return buyer_service.update_buyer(get_context(request), buyer_id, fields, expected_updated_at)


@router.delete("/{uuid:buyer_id}", response={200: dict, 401: dict, 404: dict})
def delete_buyer(request, buyer_id: UUID):
    """Delete a buyer owned by the authenticated user"""
    buyer_service.delete_buyer(get_context(request), buyer_id)
    return {"success": True}
