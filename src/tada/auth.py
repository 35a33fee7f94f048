"""Bearer-token validation for inbound webhook requests."""

from __future__ import annotations

import hmac

_BEARER_PREFIX = "Bearer "


def validate_bearer(expected_token: str | None, authorization: str | None) -> bool:
    """Check an ``Authorization`` header against the configured token.

    Every request is accepted when no token is configured.
    """
    if not expected_token:
        return True
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        return False
    provided = authorization[len(_BEARER_PREFIX) :]
    return hmac.compare_digest(provided.encode(), expected_token.encode())
