import logging
from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, Throttled, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


# --------------------
# Error taxonomy
# --------------------
class LeasingError(APIException):
    """
    Base for the workflow errors. ``detail`` is the short human string that
    ends up in ``error``; ``details`` carries an optional list/dict payload.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Bad request"
    default_code = "error"

    def __init__(self, detail=None, *, details=None):
        super().__init__(detail=detail or self.default_detail, code=self.default_code)
        self.details = details


class AuthenticationRequired(LeasingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"
    default_code = "unauthorised"


class AccessDenied(LeasingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Access denied"
    default_code = "forbidden"


class NotFound(LeasingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"
    default_code = "not_found"


class ValidationFailed(LeasingError):
    default_detail = "Validation failed"
    default_code = "validation_error"


class InvalidStateTransition(LeasingError):
    default_detail = "Action not allowed in the current state"
    default_code = "invalid_state"


class ExternalServiceFailure(LeasingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "External service failure"
    default_code = "external_service_failure"


class NotImplementedYet(LeasingError):
    status_code = status.HTTP_501_NOT_IMPLEMENTED
    default_detail = "Not implemented"
    default_code = "not_implemented"


def from_django_validation(exc: DjangoValidationError) -> ValidationFailed:
    """Map a model/validator ValidationError onto the API taxonomy."""
    messages = [str(m) for m in exc.messages]
    details = messages if len(messages) > 1 else None
    return ValidationFailed(messages[0] if messages else None, details=details)


# --------------------
# Handler
# --------------------
def _extract_field_errors(data: Any) -> Optional[Dict[str, list]]:
    """Flatten serializer errors to ``{field: [message, ...]}``; non-dict payloads have none."""
    if not isinstance(data, dict):
        return None
    return {
        field: [str(m) for m in (messages if isinstance(messages, (list, tuple)) else [messages])]
        for field, messages in data.items()
    }


def _first_message(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        if "detail" in data:
            return _first_message(data["detail"])
        if "non_field_errors" in data:
            return _first_message(data["non_field_errors"])
        if len(data) == 1:
            return _first_message(next(iter(data.values())))
        return None
    if isinstance(data, (list, tuple)):
        return str(data[0]) if data else None
    return str(data) if data is not None else None


def custom_exception_handler(exc, context):
    """
    Wrap DRF's default exception_handler so every error has the same shape:
    ``{ok, error, code, details, field_errors, status, path}``.
    """
    if isinstance(exc, DjangoValidationError):
        exc = from_django_validation(exc)

    response = exception_handler(exc, context)
    request = context.get("request")
    path = request.get_full_path() if request else None

    if response is None:
        view = context.get("view")
        logger.exception(
            "Unhandled error in %s %s",
            view.__class__.__name__ if view is not None else "view",
            path,
            exc_info=exc,
        )
        body = {
            "ok": False,
            "error": "Internal server error",
            "code": "server_error",
            "details": None,
            "field_errors": None,
            "status": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "path": path,
        }
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    status_code = response.status_code
    data = response.data
    field_errors = None
    details_block = None

    if isinstance(exc, LeasingError):
        code = exc.default_code
        error_text = str(exc.detail)
        details_block = exc.details
    elif isinstance(exc, ValidationError):
        code = "validation_error"
        error_text = _first_message(data) or "Invalid input."
        field_errors = _extract_field_errors(data)
        details_block = data if isinstance(data, (dict, list)) else None
    elif isinstance(exc, Throttled):
        code = "rate_limited"
        error_text = "Too many requests. Please wait before retrying."
        details_block = {"retry_after": getattr(exc, "wait", None)}
    elif status_code == status.HTTP_401_UNAUTHORIZED:
        code = "unauthorised"
        error_text = _first_message(data) or "Authentication required"
    elif status_code == status.HTTP_403_FORBIDDEN:
        code = "forbidden"
        error_text = _first_message(data) or "Access denied"
    elif status_code == status.HTTP_404_NOT_FOUND or isinstance(exc, Http404):
        code = "not_found"
        error_text = "Not found"
    else:
        code = "error"
        error_text = _first_message(data) or "An error occurred."

    body = {
        "ok": False,
        "error": error_text,
        "code": code,
        "details": details_block,
        "field_errors": field_errors,
        "status": status_code,
        "path": path,
    }
    response.data = body
    return response
