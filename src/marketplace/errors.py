"""Application errors carrying a machine-readable code and an HTTP status.

Aggregates and handlers raise these; the API layer maps them onto JSON
responses without knowing anything about the business rule that failed.
"""


class AppError(Exception):
    """Base class for coded business errors."""

    status_code = 400
    code = "APP_ERROR"

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(AppError):
    """Malformed input."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    """Illegal state transition or duplicate."""

    status_code = 409
    code = "INVALID_STATUS"


class ForbiddenError(AppError):
    """The acting party does not own the resource."""

    status_code = 403
    code = "FORBIDDEN"


class InvalidSignatureError(AppError):
    status_code = 401
    code = "INVALID_SIGNATURE"


# ---------------------------------------------------------------------------
# Coded business errors
# ---------------------------------------------------------------------------
class InsufficientStockError(AppError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, message: str, variant_id: str | None = None):
        super().__init__(message)
        self.variant_id = variant_id


class NegativeStockError(AppError):
    code = "NEGATIVE_STOCK"


class VoucherError(AppError):
    """Raised by the voucher engine; the code tells which rule failed."""

    code = "VOUCHER_INVALID"
