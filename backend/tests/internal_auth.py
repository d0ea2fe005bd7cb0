"""
Signed internal auth headers for HTTP tests.
"""
import os
import time

from app.auth import SIGNATURE_HEADER, TIMESTAMP_HEADER, USER_HEADER, build_signature


def build_internal_auth_headers(method: str, path_with_query: str, user_id: str) -> dict[str, str]:
    secret = os.getenv("INTERNAL_AUTH_SECRET", "").strip()
    if not secret:
        raise RuntimeError("INTERNAL_AUTH_SECRET is required for backend HTTP tests.")

    timestamp = str(int(time.time()))
    return {
        USER_HEADER: user_id,
        TIMESTAMP_HEADER: timestamp,
        SIGNATURE_HEADER: build_signature(secret, method, path_with_query, user_id, timestamp),
    }
