import base64
import enum
import json
import logging
import re
import typing

from lesson_progression.utils.base_types import UserId

_LOGGER = logging.getLogger(__name__)

# Browser origins allowed to call the API. Native app builds send no Origin header at all.
ALLOWED_ORIGIN_PATTERNS = [
    re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$"),  # Expo web / emulators
    re.compile(r"^https://[\w.-]+\.expo\.dev$"),  # hosted Expo previews
]

CORS_ALLOW_HEADERS = "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token"
CORS_ALLOW_METHODS = "OPTIONS,GET,PUT,POST"


class ErrorCode(enum.Enum):
    VALIDATION_ERROR = (400, "Invalid request data")
    AUTHENTICATION_FAILED = (401, "User identification failed")
    AUTHORIZATION_FAILED = (403, "Access denied")
    RESOURCE_NOT_FOUND = (404, "Resource not found or method not allowed")
    METHOD_NOT_ALLOWED = (405, "Method not allowed")
    CONFLICT = (409, "Request conflicts with a concurrent update")
    INTERNAL_ERROR = (500, "An unexpected error occurred")
    SERVICE_UNAVAILABLE = (503, "A backing service is temporarily unavailable")

    def __init__(self, status_code: int, default_message: str) -> None:
        self.status_code = status_code
        self.default_message = default_message


def get_event_body(event: dict) -> bytes:
    if "isBase64Encoded" in event and event["isBase64Encoded"]:
        return base64.b64decode(event["body"])
    else:
        return event["body"].encode("utf-8")


def get_method(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("method", "UNKNOWN")


def get_path(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("path", "")


def get_path_parts(event: dict) -> list[str]:
    """'/lessons/l1/unlock-state' -> ['lessons', 'l1', 'unlock-state']"""
    return [part for part in get_path(event).split("/") if part]


def get_query_string_parameters(event: dict) -> dict[str, str]:
    # API Gateway sends null rather than {} when the request has no query string
    return event.get("queryStringParameters") or {}


def get_user_id_from_event(event: dict[str, typing.Any]) -> typing.Optional[UserId]:
    """
    Extracts the learner's id from the context the custom Lambda Authorizer attached to the request.
    """
    authorizer_context = event.get("requestContext", {}).get("authorizer", {}).get("lambda", {})
    user_id = authorizer_context.get("sub")
    if not user_id:
        _LOGGER.warning("User ID ('sub') not found in authorizer's lambda context.")
        return None
    return UserId(str(user_id))


def get_allowed_origin(event: dict[str, typing.Any]) -> str:
    """
    :returns: "*" when the request carries no Origin, the origin itself when it matches
        ALLOWED_ORIGIN_PATTERNS, otherwise "null" so browsers reject the response.
    """
    origin = (event.get("headers") or {}).get("origin", "")
    if not origin:
        return "*"
    if any(pattern.match(origin) for pattern in ALLOWED_ORIGIN_PATTERNS):
        return origin

    _LOGGER.warning(f"Origin not in allowed patterns: {origin}")
    return "null"


def format_lambda_response(
    status_code: int,
    body: typing.Any,
    *,
    event: typing.Optional[dict[str, typing.Any]] = None,
    additional_headers: typing.Optional[dict[str, str]] = None,
) -> dict[str, typing.Any]:
    headers = {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": get_allowed_origin(event) if event else "*",
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
    }
    if additional_headers:
        headers.update(additional_headers)

    return {
        "statusCode": status_code,
        "headers": headers,
        "body": json.dumps(body) if body is not None else None,
    }


def create_error_response(
    error_code: ErrorCode,
    message: typing.Optional[str] = None,
    *,
    details: typing.Optional[typing.Any] = None,
    event: typing.Optional[dict[str, typing.Any]] = None,
) -> dict[str, typing.Any]:
    """Error body shared by every route: {"message", "errorCode"} plus optional validation details."""
    body: dict[str, typing.Any] = {
        "message": message or error_code.default_message,
        "errorCode": error_code.name,
    }
    if details is not None:
        body["details"] = details
    return format_lambda_response(error_code.status_code, body, event=event)
