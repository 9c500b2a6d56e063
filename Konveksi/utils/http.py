"""Helpers shared by the JSON views."""
import functools
import json
import logging

from django.http import JsonResponse

from users.utils import get_user_role

from .exceptions import ConsistencyError, DomainError, DomainValidationError

logger = logging.getLogger(__name__)


def error_response(exc: DomainError) -> JsonResponse:
    if isinstance(exc, ConsistencyError):
        logger.error("consistency error: %s", exc.detail)
    return JsonResponse(exc.as_dict(), status=exc.http_status)


def json_errors(view):
    """Render domain errors raised by ``view`` as ``{"ok": false, ...}`` responses."""

    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except DomainError as exc:
            logger.info("%s rejected: %s %s", view.__name__, exc.code, exc.message)
            return error_response(exc)

    return wrapper


def role_required(*roles):
    """Restrict a view to the given roles; others get a JSON 403."""

    def decorator(view):
        @functools.wraps(view)
        def wrapper(request, *args, **kwargs):
            if get_user_role(request.user) not in roles:
                return JsonResponse(
                    {"ok": False, "error": "forbidden", "message": "Not allowed for your role."},
                    status=403,
                )
            return view(request, *args, **kwargs)

        return wrapper

    return decorator


manager_required = role_required("manager")


def read_json(request) -> dict:
    """Decode a JSON request body (form-encoded bodies are accepted as a flat dict)."""
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body or b"{}")
        except (ValueError, UnicodeDecodeError):
            raise DomainValidationError("body", "invalid JSON")
        if not isinstance(data, dict):
            raise DomainValidationError("body", "must be a JSON object")
        return data
    return request.POST.dict()
