class ApplicationError(Exception):
    """Base application-layer error, independent from transport concerns."""


class NotFoundError(ApplicationError):
    """Raised when an expected entity does not exist."""


class ConflictError(ApplicationError):
    """Raised when a uniqueness or state conflict occurs."""


class ForbiddenError(ApplicationError):
    """Raised when the access policy denies an operation."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class ValidationError(ApplicationError):
    """Raised when application-level validation fails."""


class NoTenantError(ApplicationError):
    """Raised when a principal has no associated school yet."""

    def __init__(self, message: str = "Onboarding required") -> None:
        super().__init__(message)


class CapacityExceededError(ApplicationError):
    """Raised when a new student would exceed the plan's max_students."""

    def __init__(self, *, current: int, maximum: int) -> None:
        self.current = current
        self.maximum = maximum
        super().__init__(f"Student limit reached ({current}/{maximum}). Upgrade your plan to add more students.")


class InvalidTransitionError(ApplicationError):
    """Raised when a billing or subscription transition is not applicable."""


class SubscriptionExpiredError(ApplicationError):
    """Raised when an expired tenant attempts a gated operation."""

    def __init__(self, message: str = "Your subscription has expired. Renew it from the billing page.") -> None:
        super().__init__(message)


class DuplicateTransactionError(ApplicationError):
    """Raised when a payment confirmation repeats an already recorded transaction."""

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} already recorded")


class PaymentInitiationError(ApplicationError):
    """Raised when the external payment initiator rejects or fails a request."""
