class BudgetBuddyError(Exception):
    """Base class for every error surfaced by the store boundary."""

    code = "error"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.details}


class ValidationError(BudgetBuddyError):
    code = "validation_error"


class NotFoundError(BudgetBuddyError):
    code = "not_found"


class AuthError(BudgetBuddyError):
    code = "auth_error"


class OwnershipError(AuthError):
    code = "permission_denied"


class ConflictError(BudgetBuddyError):
    code = "conflict"


class NetworkError(BudgetBuddyError):
    code = "network_error"


class StoreTimeoutError(NetworkError):
    code = "timeout"
