"""
Signed internal authentication between the frontend and this API.

The frontend owns user sessions. For every backend call it sends the user id,
a unix timestamp and an HMAC-SHA256 signature over
"METHOD\\npath?query\\nuser_id\\ntimestamp" keyed with INTERNAL_AUTH_SECRET.
The middleware verifies the signature and stores the user id in a context
variable for the duration of the request.
"""
import contextvars
import hashlib
import hmac
import time
from typing import Mapping, Optional

from fastapi import HTTPException, status

from app.config import get_api_settings

USER_HEADER = "x-subtrack-user-id"
TIMESTAMP_HEADER = "x-subtrack-timestamp"
SIGNATURE_HEADER = "x-subtrack-signature"

_current_user_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("current_user_id", default=None)


def bind_user_id(user_id: str) -> contextvars.Token:
    return _current_user_id.set(user_id)


def unbind_user_id(token: contextvars.Token) -> None:
    _current_user_id.reset(token)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def build_signature(secret: str, method: str, path_with_query: str, user_id: str, timestamp: str) -> str:
    message = f"{method.upper()}\n{path_with_query}\n{user_id}\n{timestamp}"
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signed_request(method: str, path_with_query: str, headers: Mapping[str, str]) -> str:
    """
    Return the user id of a correctly signed request.

    Raises:
        HTTPException 401 for missing, stale or forged headers; 500 when the
        shared secret is not configured.
    """
    user_id = headers.get(USER_HEADER, "").strip()
    timestamp = headers.get(TIMESTAMP_HEADER, "").strip()
    signature = headers.get(SIGNATURE_HEADER, "").strip()
    if not (user_id and timestamp and signature):
        raise _unauthorized("Missing internal authentication headers.")

    if not timestamp.isdigit():
        raise _unauthorized("Invalid internal authentication timestamp.")

    settings = get_api_settings()
    max_age = settings.internal_auth_max_age_seconds if settings.internal_auth_max_age_seconds > 0 else 60
    if abs(time.time() - int(timestamp)) > max_age:
        raise _unauthorized("Expired internal authentication signature.")

    secret = settings.internal_auth_secret.strip()
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal authentication secret is not configured.",
        )

    expected = build_signature(secret, method, path_with_query, user_id, timestamp)
    if not hmac.compare_digest(expected, signature):
        raise _unauthorized("Invalid internal authentication signature.")
    return user_id


def get_user_id(user_id: Optional[str] = None) -> str:
    """
    User id bound to the current request.

    An explicit user_id (legacy query parameter) must match the signed one.
    """
    current = _current_user_id.get()
    if not current:
        raise _unauthorized("Authentication required.")
    if user_id and user_id != current:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Provided user_id does not match authenticated user.",
        )
    return current
