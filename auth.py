"""
HTTP Basic Authentication for ReelHost
--------------------------------------
Every route is wrapped with requires_basic_auth. Credentials are checked
on each request; no session or cookie state is kept.
"""

import base64
import binascii
import hmac
from functools import wraps
from typing import Any, Callable, Optional

from flask import Response, request

from logging_config import SecurityEventLogger

WWW_AUTHENTICATE = 'Basic realm="Restricted", charset="UTF-8"'

security_logger = SecurityEventLogger()


def check_basic_auth(
    header: Optional[str], username: str, password: str
) -> Optional[str]:
    """
    Check an Authorization header value against the expected credentials.

    Returns None when the header matches, otherwise a short reason for the
    rejection. The decoded payload is compared with hmac.compare_digest so
    the time taken does not depend on where a mismatch occurs.
    """
    if not header:
        return "missing_header"

    if not header.startswith("Basic "):
        return "not_basic"

    try:
        decoded = base64.b64decode(header[len("Basic "):], validate=True)
    except (binascii.Error, ValueError):
        return "malformed_base64"

    expected = f"{username}:{password}".encode("utf-8")
    if not hmac.compare_digest(decoded, expected):
        return "bad_credentials"

    return None


def unauthorized() -> Response:
    return Response(
        "Unauthorized\n",
        401,
        {"WWW-Authenticate": WWW_AUTHENTICATE},
        mimetype="text/plain",
    )


def requires_basic_auth(
    username: str, password: str
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator factory requiring the given credentials on a view"""

    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(f)
        def decorated(*args: Any, **kwargs: Any) -> Any:
            reason = check_basic_auth(
                request.headers.get("Authorization"), username, password
            )
            if reason is not None:
                security_logger.log_auth_failure(
                    reason, request.remote_addr or "unknown", request.path
                )
                return unauthorized()
            return f(*args, **kwargs)

        return decorated

    return decorator
