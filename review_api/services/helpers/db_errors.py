"""
Translate persistence constraint violations into domain errors.

    unique violation       → ConflictError
    foreign-key violation  → ValidationError
    anything else          → re-raised unchanged

Usage:
    try:
        db.session.add(row)
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise translate_integrity_error(exc, "ReviewApplication", "userId,opportunityId,role", key)
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from review_api.core.exceptions import ConflictError, ValidationError

logger = logging.getLogger(__name__)

_UNIQUE_MARKERS = ("unique", "duplicate key")
_FK_MARKERS = ("foreign key", "violates foreign key")


def translate_integrity_error(
    exc: IntegrityError,
    resource: str,
    field: str,
    value: str | None = None,
) -> Exception:
    """Return the domain exception matching ``exc``; callers ``raise`` it."""
    text = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    if any(marker in text for marker in _UNIQUE_MARKERS):
        return ConflictError(resource, field, value)
    if any(marker in text for marker in _FK_MARKERS):
        return ValidationError(f"{resource} references a record that does not exist",
                               details={"field": field})
    logger.error("Unmapped integrity error on %s: %s", resource, text)
    return exc
