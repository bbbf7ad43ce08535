"""
JWT Auth Middleware — parses the Bearer token and sets ``g.identity``.

This is the only place identity is resolved. Blueprints read ``g.identity``
and pass it explicitly into services; services and rule functions never
touch ``flask.g``.

A missing or invalid token does not abort here. ``g.identity`` stays None,
``g.auth_error`` records why, and the route guard decides whether the
endpoint needs an identity at all.
"""

import logging

import jwt as pyjwt
from flask import g, request

from review_api.services.jwt_service import decode_token, identity_from_claims

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.identity = None
        g.auth_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            g.auth_error = "Missing bearer token"
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_token(token)
        except pyjwt.ExpiredSignatureError:
            g.auth_error = "Token expired"
            return
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token on %s: %s", path, exc)
            g.auth_error = "Invalid token"
            return

        g.identity = identity_from_claims(payload)
