from __future__ import annotations

import secrets

from fastapi import Request


def is_valid_internal_token(*, expected_token: str, received_token: str | None) -> bool:
    if not expected_token or not received_token:
        return False
    return secrets.compare_digest(expected_token, received_token)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def is_internal_request_authenticated(
    request: Request,
    *,
    expected_token: str,
) -> bool:
    bearer_token = _bearer_token(request.headers.get("Authorization"))
    if is_valid_internal_token(expected_token=expected_token, received_token=bearer_token):
        return True

    return is_valid_internal_token(
        expected_token=expected_token,
        received_token=request.headers.get("X-Internal-Token"),
    )
