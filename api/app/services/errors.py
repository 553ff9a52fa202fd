from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class ProcedureError(Exception):
    """Base error surfaced to procedure callers as a structured message."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProcedureValidationError(ProcedureError):
    """Raised when input fails the declared shape; nothing is written."""

    code = "BAD_REQUEST"
    status_code = 400

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = errors
        super().__init__("; ".join(f"{error.field}: {error.message}" for error in errors) or "invalid input")


class UnauthorizedError(ProcedureError):
    """Raised when a procedure needs a caller and none was resolved."""

    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ProcedureNotFoundError(ProcedureError):
    """Raised when no procedure is registered under the requested path."""

    code = "NOT_FOUND"
    status_code = 404


class MethodNotSupportedError(ProcedureError):
    """Raised when a query is sent as a mutation or the other way round."""

    code = "METHOD_NOT_SUPPORTED"
    status_code = 405


class ConflictError(ProcedureError):
    """Raised when a write would violate a uniqueness rule."""

    code = "CONFLICT"
    status_code = 409


class DatabaseError(ProcedureError):
    """Wraps a persistence failure, keeping the original message."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(f"Database error: {message}")
