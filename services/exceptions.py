"""
Errors raised by the buyer lead services.
"""
from typing import Dict, List, NamedTuple


class FieldError(NamedTuple):
    field: str
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


class BuyerServiceError(Exception):
    """Base class for buyer lead errors"""

    default_message = "Buyer operation failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BuyerValidationError(BuyerServiceError):
    """One or more fields failed validation"""

    default_message = "Validation failed"

    def __init__(self, errors: List[FieldError], message: str = None):
        self.errors = list(errors)
        super().__init__(message)

    def as_list(self) -> List[Dict[str, str]]:
        return [error.as_dict() for error in self.errors]

    def summary(self) -> str:
        """Human readable one-liner naming every failing field"""
        return "; ".join(f"{error.field}: {error.message}" for error in self.errors)


class BuyerNotFound(BuyerServiceError):
    default_message = "Buyer not found"


class BuyerNotFoundOrForbidden(BuyerNotFound):
    default_message = "Buyer not found or access denied"


class BuyerForbidden(BuyerServiceError):
    default_message = "You can only edit your own leads"


class StaleBuyerUpdate(BuyerServiceError):
    default_message = "Record has been modified by another user. Please refresh and try again."


class ImportRowLimitExceeded(BuyerServiceError):
    def __init__(self, max_rows: int):
        self.max_rows = max_rows
        super().__init__(f"Maximum {max_rows} rows allowed")


class RateLimitExceeded(BuyerServiceError):
    default_message = "Too many requests. Please try again later."
