"""
URL configuration for the buyer leads project.
"""
import logging

from django.contrib import admin
from django.urls import path
from ninja import NinjaAPI
from ninja.errors import ValidationError as NinjaValidationError

from authentication.api import router as auth_router
from buyers.api import router as buyers_router
from services.exceptions import (
    BuyerForbidden,
    BuyerNotFound,
    BuyerServiceError,
    BuyerValidationError,
    ImportRowLimitExceeded,
    RateLimitExceeded,
    StaleBuyerUpdate,
)

logger = logging.getLogger(__name__)

# Create NinjaAPI instance
api = NinjaAPI(
    title="Buyer Leads API",
    description="Buyer lead intake, tracking and CSV import/export",
    version="1.0.0"
)

# Register API routers
api.add_router("/auth", auth_router, tags=["Authentication"])
api.add_router("/buyers", buyers_router, tags=["Buyers"])

ERROR_STATUS = {
    BuyerNotFound: 404,
    BuyerForbidden: 403,
    StaleBuyerUpdate: 409,
    ImportRowLimitExceeded: 400,
    RateLimitExceeded: 429,
}

# Request locations ninja puts in front of the field name in an error loc
_LOC_SOURCES = {"body", "query", "path", "form", "file", "header", "cookie"}


def _field_from_loc(loc) -> str:
    parts = [str(part) for part in loc if isinstance(part, str) and part not in _LOC_SOURCES]
    return parts[-1] if parts else "__all__"


@api.exception_handler(BuyerValidationError)
def on_buyer_validation_error(request, exc: BuyerValidationError):
    return api.create_response(
        request,
        {"error": exc.message, "errors": exc.as_list()},
        status=400,
    )


@api.exception_handler(NinjaValidationError)
def on_request_validation_error(request, exc: NinjaValidationError):
    """Report malformed requests in the same shape as business rule failures"""
    errors = []
    seen = set()
    for error in exc.errors:
        field = _field_from_loc(error.get("loc", ()))
        if field in seen:
            continue
        seen.add(field)
        errors.append({"field": field, "message": error.get("msg", "Invalid value")})
    return api.create_response(
        request,
        {"error": "Validation failed", "errors": errors},
        status=400,
    )


@api.exception_handler(BuyerServiceError)
def on_buyer_service_error(request, exc: BuyerServiceError):
    status = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        400,
    )
    return api.create_response(request, {"error": exc.message}, status=status)


@api.exception_handler(Exception)
def on_unexpected_error(request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.path}: {exc}", exc_info=True)
    return api.create_response(request, {"error": "Internal server error"}, status=500)


@api.get("/health", auth=None)
def health(request):
    """Liveness check"""
    return {"status": "ok"}


urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', api.urls),
]
