"""
Review Application Lifecycle — status transition rules.

    PENDING ──approve──▶ APPROVED
    PENDING ──reject───▶ REJECTED

Approve and reject are only defined from PENDING. What happens when they
are called on a record already in a terminal status depends on the
``strict`` flag (REVIEW_APPLICATION_STRICT_TRANSITIONS):

    strict=False  the new status is written (last write wins) and a
                  warning is logged
    strict=True   InvalidTransitionError is raised and nothing is written

Usage:
    from review_api.services.review_application_lifecycle import resolve_transition

    target = resolve_transition(application, "approve", strict=False)
"""

import logging

from review_api.core.exceptions import InvalidTransitionError, ValidationError

logger = logging.getLogger(__name__)


REVIEW_APPLICATION_TRANSITIONS = {
    "approve": {"from": ["PENDING"], "to": "APPROVED"},
    "reject": {"from": ["PENDING"], "to": "REJECTED"},
}


def resolve_transition(application, action: str, *, strict: bool) -> str:
    """Return the status ``action`` moves ``application`` to, or raise."""
    rule = REVIEW_APPLICATION_TRANSITIONS.get(action)
    if rule is None:
        raise ValidationError(f"Unknown review application action '{action}'",
                              details={"valid": sorted(REVIEW_APPLICATION_TRANSITIONS)})

    current = application.status
    if current in rule["from"]:
        return rule["to"]

    if strict:
        raise InvalidTransitionError("ReviewApplication", application.id, action, current)

    logger.warning(
        "Re-transition of review application %s: %s → %s (action=%s)",
        application.id, current, rule["to"], action,
    )
    return rule["to"]
