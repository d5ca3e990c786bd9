from dataclasses import dataclass
from fastapi import status


class ErrorKind:
    VALIDATION = "validation"
    DEPENDENCY = "dependency"
    STATE = "state"
    AUTH = "auth"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int
    kind: str = ErrorKind.VALIDATION


class ErrorCatalog:
    INVALID_TOKEN = ErrorDefinition(
        "INVALID_TOKEN",
        "Invalid token",
        status.HTTP_401_UNAUTHORIZED,
        ErrorKind.AUTH,
    )
    INVALID_CREDENTIALS = ErrorDefinition(
        "INVALID_CREDENTIALS",
        "Invalid credentials",
        status.HTTP_401_UNAUTHORIZED,
        ErrorKind.AUTH,
    )
    OPERATOR_INACTIVE = ErrorDefinition(
        "OPERATOR_INACTIVE",
        "Operator is inactive",
        status.HTTP_403_FORBIDDEN,
        ErrorKind.AUTH,
    )
    LOGIN_RATE_LIMITED = ErrorDefinition(
        "LOGIN_RATE_LIMITED",
        "Too many login attempts",
        status.HTTP_429_TOO_MANY_REQUESTS,
        ErrorKind.AUTH,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
        ErrorKind.DEPENDENCY,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
        ErrorKind.STATE,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorKind.INTERNAL,
    )

    OPERATOR_NOT_AUTHENTICATED = ErrorDefinition(
        "OPERATOR_NOT_AUTHENTICATED",
        "No authenticated operator",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    CASHIER_SESSION_NOT_OPEN = ErrorDefinition(
        "CASHIER_SESSION_NOT_OPEN",
        "No open cashier session",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    CASHIER_SESSION_ALREADY_OPEN = ErrorDefinition(
        "CASHIER_SESSION_ALREADY_OPEN",
        "A cashier session is already open for this operator",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    CASHIER_SESSION_NOT_FOUND = ErrorDefinition(
        "CASHIER_SESSION_NOT_FOUND",
        "Cashier session not found",
        status.HTTP_404_NOT_FOUND,
    )
    CART_EMPTY = ErrorDefinition(
        "CART_EMPTY",
        "Cart is empty",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    PAYMENT_INSUFFICIENT = ErrorDefinition(
        "PAYMENT_INSUFFICIENT",
        "Tendered amount is below the sale total",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    PRODUCT_NOT_FOUND = ErrorDefinition(
        "PRODUCT_NOT_FOUND",
        "Product not found",
        status.HTTP_404_NOT_FOUND,
    )
    CUSTOMER_NOT_FOUND = ErrorDefinition(
        "CUSTOMER_NOT_FOUND",
        "Customer not found",
        status.HTTP_404_NOT_FOUND,
    )
    SALE_NOT_FOUND = ErrorDefinition(
        "SALE_NOT_FOUND",
        "Sale not found",
        status.HTTP_404_NOT_FOUND,
    )

    STOCK_INSUFFICIENT = ErrorDefinition(
        "STOCK_INSUFFICIENT",
        "Insufficient stock",
        status.HTTP_409_CONFLICT,
        ErrorKind.DEPENDENCY,
    )
    STOCK_CHECK_FAILED = ErrorDefinition(
        "STOCK_CHECK_FAILED",
        "Stock availability check failed",
        status.HTTP_502_BAD_GATEWAY,
        ErrorKind.DEPENDENCY,
    )
    PAYMENT_DECLINED = ErrorDefinition(
        "PAYMENT_DECLINED",
        "Payment was declined",
        status.HTTP_402_PAYMENT_REQUIRED,
        ErrorKind.DEPENDENCY,
    )
    SALE_PERSIST_FAILED = ErrorDefinition(
        "SALE_PERSIST_FAILED",
        "Sale could not be persisted",
        status.HTTP_502_BAD_GATEWAY,
        ErrorKind.DEPENDENCY,
    )
    SALE_FINALIZE_FAILED = ErrorDefinition(
        "SALE_FINALIZE_FAILED",
        "Sale could not be finalized",
        status.HTTP_502_BAD_GATEWAY,
        ErrorKind.DEPENDENCY,
    )
    SALE_CANCEL_FAILED = ErrorDefinition(
        "SALE_CANCEL_FAILED",
        "Sale could not be marked as cancelled",
        status.HTTP_502_BAD_GATEWAY,
        ErrorKind.DEPENDENCY,
    )

    CASH_WITHDRAW_EXCEEDS_BALANCE = ErrorDefinition(
        "CASH_WITHDRAW_EXCEEDS_BALANCE",
        "Withdrawal exceeds the current drawer balance",
        status.HTTP_409_CONFLICT,
        ErrorKind.STATE,
    )
    SALE_NOT_COMPLETED = ErrorDefinition(
        "SALE_NOT_COMPLETED",
        "Only completed sales can be cancelled",
        status.HTTP_409_CONFLICT,
        ErrorKind.STATE,
    )
    SALE_ALREADY_CANCELLED = ErrorDefinition(
        "SALE_ALREADY_CANCELLED",
        "Sale is already cancelled",
        status.HTTP_409_CONFLICT,
        ErrorKind.STATE,
    )
    CASH_TENDER_DUPLICATE = ErrorDefinition(
        "CASH_TENDER_DUPLICATE",
        "Only one cash tender is allowed per sale",
        status.HTTP_409_CONFLICT,
        ErrorKind.STATE,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)

    @property
    def kind(self) -> str:
        return self.error.kind

    @property
    def code(self) -> str:
        return self.error.code
