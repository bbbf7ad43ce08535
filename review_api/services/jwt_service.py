"""
JWT Service — token verification and identity extraction.

Two token shapes are accepted:

User token (claims namespaced by the identity provider):
{
    "https://topcoder-dev.com/userId": "40029484",
    "https://topcoder-dev.com/handle": "jdoe",
    "https://topcoder-dev.com/roles": ["Topcoder Talent", "reviewer"],
    "iss": ..., "exp": ..., "iat": ...
}

Machine (M2M) token:
{
    "sub": "abc123@clients",
    "scope": "all:review-application read:submission",
    "gty": "client-credentials",
    "iss": ..., "exp": ..., "iat": ...
}

A token carrying a ``scope`` claim is a machine token.
"""

import jwt
from flask import current_app

from review_api.core.identity import Identity, expand_scopes

DEFAULT_ALGORITHMS = ["HS256"]


def _get_secret():
    return current_app.config.get("AUTH_SECRET") or current_app.config["SECRET_KEY"]


def _get_algorithms():
    return current_app.config.get("JWT_ALGORITHMS") or DEFAULT_ALGORITHMS


def decode_token(token: str) -> dict:
    """
    Verify signature and expiry and return the claims.

    Raises:
        jwt.ExpiredSignatureError: Token has expired.
        jwt.InvalidTokenError: Token is malformed, badly signed or from an
            issuer outside VALID_ISSUERS.
    """
    payload = jwt.decode(
        token,
        _get_secret(),
        algorithms=_get_algorithms(),
        options={"verify_aud": False},
    )
    issuers = current_app.config.get("VALID_ISSUERS") or []
    if issuers and payload.get("iss") not in issuers:
        raise jwt.InvalidIssuerError(f"Issuer {payload.get('iss')!r} is not accepted")
    return payload


def _claim_by_suffix(payload: dict, suffix: str):
    for key, value in payload.items():
        if key == suffix or key.endswith(f"/{suffix}"):
            return value
    return None


def identity_from_claims(payload: dict) -> Identity:
    """Build an Identity from verified token claims."""
    if payload.get("scope") is not None:
        return Identity(
            user_id=payload.get("sub"),
            handle=None,
            roles=frozenset(),
            scopes=expand_scopes(payload.get("scope")),
            is_machine=True,
        )

    user_id = _claim_by_suffix(payload, "userId")
    roles = _claim_by_suffix(payload, "roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return Identity(
        user_id=str(user_id) if user_id is not None else None,
        handle=_claim_by_suffix(payload, "handle"),
        roles=frozenset(roles),
        scopes=frozenset(),
        is_machine=False,
    )
