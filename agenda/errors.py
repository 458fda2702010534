"""
Error taxonomy for the reservation core.

Every failure the core can report carries a stable machine-readable
error_code and a human-readable (Portuguese) message:

- ValidationError: malformed or missing input fields, invalid date/time
- ConflictError: slot already occupied (or locked by a concurrent request)
- NotFoundError: no calendar event matches a reservation id / event id
- UpstreamError: Calendar Gateway call failed or timed out
- AuthError: bad or missing webhook token (raised by the API layer)
"""

from typing import Any


class AgendaError(Exception):
    """Base class for all reservation core errors."""

    error_code = "INTERNAL_ERROR"
    default_message = "Erro interno"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.default_message
        if error_code:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


class ValidationError(AgendaError):
    error_code = "VALIDATION_ERROR"
    default_message = "Dados inválidos"


class ConflictError(AgendaError):
    error_code = "CONFLICT"
    default_message = "Horário já ocupado"


class NotFoundError(AgendaError):
    error_code = "NOT_FOUND"
    default_message = "Reserva não encontrada"


class UpstreamError(AgendaError):
    """Calendar Gateway failure. `original_error` keeps the underlying exception."""

    error_code = "UPSTREAM_ERROR"
    default_message = "Falha ao acessar a agenda"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, error_code, details)
        self.original_error = original_error


class AuthError(AgendaError):
    error_code = "AUTH_ERROR"
    default_message = "Unauthorized - invalid token"
