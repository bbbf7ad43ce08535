"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in review_api/__init__.py with no default limits; this module
applies granular limits per route category.

The Limiter runs with auto_check=False. init_rate_limit_check registers the
check after the JWT hook, so limits are counted per user id for
authenticated callers and per remote address otherwise.

Usage:
    from review_api.middleware.rate_limiter import init_rate_limit_check, init_rate_limits
    init_rate_limit_check(app, limiter)   # right after init_jwt_middleware
    init_rate_limits(app, limiter)        # after blueprints are registered
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"
DOWNLOAD_LIMIT = "30/minute"


def rate_limit_key():
    """Per-caller key: authenticated user id if available, else remote IP."""
    identity = getattr(g, "identity", None)
    if identity is not None and identity.user_id:
        return f"user:{identity.user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limit_check(app, limiter):
    """Check limits once ``g.identity`` is known."""

    @app.before_request
    def _check_rate_limit():
        limiter.check()


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per caller):
        - Submission + artifact routes:  30/minute (S3 streaming)
        - Write-heavy blueprints:        60/minute
        - Read-focused blueprints:       200/minute
        - Health check:                  exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("submission")
    if bp:
        limiter.limit(DOWNLOAD_LIMIT, key_func=rate_limit_key)(bp)

    for bp_name in ("review_application", "contact_request", "ai_workflow"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("review_opportunity")
    if bp:
        limiter.limit(READ_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: downloads: %s, write: %s, read: %s",
        DOWNLOAD_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
