"""Custom exceptions for RealtyHub

Every domain and configuration failure carries a ``kind``, a human message,
an HTTP-like ``status_code``, optional field-level ``errors`` and a
``timestamp``. Route handlers map these onto transport responses.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


GENERAL_MESSAGES = {
    "NOT_FOUND": "The requested resource could not be found.",
    "SERVER_ERROR": "An unexpected error occurred while processing the request.",
    "CONFIG_ERROR": "Server configuration error.",
}

AUTH_MESSAGES = {
    "UNAUTHORIZED_ACCESS": "Authentication required to access this resource.",
    "FORBIDDEN_ACTION": "You do not have permission to perform this action.",
    "INVALID_CREDENTIALS": "The provided credentials are invalid.",
    "INVALID_TOKEN": "Invalid verification token.",
}

VALIDATION_MESSAGES = {
    "INVALID_INPUT": "The request contains invalid or malformed data.",
    "CONFLICT": "The request conflicts with the current state of the resource.",
    "TOO_MANY_REQUESTS": "Rate limit exceeded. Please try again later.",
    "UNPROCESSABLE_ENTITY": "The request was well-formed but contains invalid parameters.",
}

SCHEMA_BUILDER_MESSAGES = {
    "INVALID_MODEL_NAME": "Model name must be a non-empty string.",
    "INVALID_CONFIG_STRUCTURE": "Invalid schema configuration structure.",
    "MISSING_FIELDS_OBJECT": 'Configuration must include a "fields" object.',
}


class RealtyHubError(Exception):
    """Base exception for RealtyHub"""

    status_code = 500
    default_kind = "INTERNAL_SERVER_ERROR"
    default_message = GENERAL_MESSAGES["SERVER_ERROR"]

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        kind: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.errors = list(errors) if errors else None
        self.kind = kind or self.default_kind
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Standard error payload for API responses"""
        payload: Dict[str, Any] = {
            "status": "error",
            "success": False,
            "status_code": self.status_code,
            "message": self.message,
            "kind": self.kind,
            "timestamp": self.timestamp,
        }
        if self.errors:
            payload["details"] = self.errors
        return payload


class ConfigurationError(RealtyHubError):
    """Model configuration or server configuration error. Never retried."""

    default_kind = "CONFIG_ERROR"
    default_message = GENERAL_MESSAGES["CONFIG_ERROR"]

    @classmethod
    def for_kind(cls, kind: str, detail: Optional[str] = None) -> "ConfigurationError":
        message = SCHEMA_BUILDER_MESSAGES[kind]
        if detail:
            message = f"{message} {detail}"
        return cls(message, kind=kind)


class ValidationError(RealtyHubError):
    """Input failed one or more declared constraints"""

    status_code = 400
    default_kind = "VALIDATION_ERROR"
    default_message = VALIDATION_MESSAGES["INVALID_INPUT"]


class ModelValidationError(ValidationError):
    """Document validation failure translated into the shared taxonomy.

    Built from a store-native ``DocumentValidationError``; keeps one entry per
    offending path with its message, constraint kind and value.
    """

    def __init__(self, document_error):
        formatted = [
            {
                "field": path,
                "message": error.message,
                "type": error.kind or "validation_error",
                "value": error.value,
            }
            for path, error in document_error.errors.items()
        ]
        super().__init__(VALIDATION_MESSAGES["INVALID_INPUT"], errors=formatted)

    @property
    def fields(self) -> List[str]:
        return [entry["field"] for entry in self.errors or []]


class UnauthorizedError(RealtyHubError):
    status_code = 401
    default_kind = "UNAUTHORIZED"
    default_message = AUTH_MESSAGES["UNAUTHORIZED_ACCESS"]


class ForbiddenError(RealtyHubError):
    status_code = 403
    default_kind = "FORBIDDEN"
    default_message = AUTH_MESSAGES["FORBIDDEN_ACTION"]


class InvalidTokenError(RealtyHubError):
    """Verification token did not match the stored one"""

    status_code = 400
    default_kind = "INVALID_TOKEN"
    default_message = AUTH_MESSAGES["INVALID_TOKEN"]


class NotFoundError(RealtyHubError):
    status_code = 404
    default_kind = "NOT_FOUND"
    default_message = GENERAL_MESSAGES["NOT_FOUND"]


class ConflictError(RealtyHubError):
    """Duplicate resource or invalid state transition"""

    status_code = 409
    default_kind = "CONFLICT"
    default_message = VALIDATION_MESSAGES["CONFLICT"]


class TooManyRequestsError(RealtyHubError):
    status_code = 429
    default_kind = "RATE_LIMIT_EXCEEDED"
    default_message = VALIDATION_MESSAGES["TOO_MANY_REQUESTS"]


class UnprocessableEntityError(RealtyHubError):
    status_code = 422
    default_kind = "UNPROCESSABLE_ENTITY"
    default_message = VALIDATION_MESSAGES["UNPROCESSABLE_ENTITY"]


class ServerError(RealtyHubError):
    """Generic internal failure (store errors, password comparison failures)"""
