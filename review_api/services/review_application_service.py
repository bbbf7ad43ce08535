"""
Review Application Service.

Members apply for a role on a review opportunity; an administrator
approves or rejects. Transitions are defined in review_application_lifecycle.

Each state change is committed before its e-mail is attempted. E-mail
failures come back as ``warnings`` alongside the committed result and never
roll the change back.

Functions:
    - create_application:   PENDING application for the caller
    - approve_application:  PENDING → APPROVED, e-mail the applicant
    - reject_application:   PENDING → REJECTED, e-mail the applicant
    - reject_all_pending:   reject every PENDING application on an opportunity
    - list_pending:         all PENDING applications
    - list_by_user:         a member's applications (self or admin)
    - list_by_opportunity:  applications filed against one opportunity
    - get_history:          APPROVED applications of a member within N days
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from review_api.core.exceptions import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from review_api.models import db
from review_api.models.review import (
    APPLICATION_ROLES,
    ROLE_OPPORTUNITY_TYPE,
    ReviewApplication,
    ReviewOpportunity,
)
from review_api.services import authorization as authz
from review_api.services import notification_service
from review_api.services.helpers.db_errors import translate_integrity_error
from review_api.services.review_application_lifecycle import resolve_transition

logger = logging.getLogger(__name__)

_UNIQUE_FIELDS = "userId,opportunityId,role"


def _get_or_404(application_id: str) -> ReviewApplication:
    application = db.session.get(ReviewApplication, application_id)
    if application is None:
        raise NotFoundError("ReviewApplication", application_id)
    return application


def _strict() -> bool:
    return bool(current_app.config.get("REVIEW_APPLICATION_STRICT_TRANSITIONS"))


def create_application(identity, data: dict) -> dict:
    """Create a PENDING application for the caller.

    Args:
        identity: The applicant. Only member tokens reach this route.
        data: ``{"opportunityId": str, "role": str}``.

    Raises:
        ValidationError: Missing fields, unknown opportunity, or a role that
            does not fit the opportunity type.
        ConflictError: The caller already applied for this role.
    """
    opportunity_id = data.get("opportunityId")
    role = (data.get("role") or "").strip().upper()
    if not opportunity_id or not role:
        raise ValidationError("opportunityId and role are required")
    if role not in APPLICATION_ROLES:
        raise ValidationError(f"Unknown role '{role}'", details={"valid": sorted(APPLICATION_ROLES)})

    user_id = identity.user_id
    handle = identity.handle
    if not user_id or not handle:
        raise ValidationError("Applicant userId and handle are required")

    opportunity = db.session.get(ReviewOpportunity, opportunity_id)
    if opportunity is None:
        raise ValidationError(f"Review opportunity {opportunity_id} does not exist",
                              details={"opportunityId": opportunity_id})

    expected_type = ROLE_OPPORTUNITY_TYPE[role]
    if opportunity.type != expected_type:
        raise ValidationError(
            f"Role {role} cannot be used with opportunity type {opportunity.type}",
            details={"role": role, "opportunityType": opportunity.type, "expected": expected_type},
        )

    key = f"{user_id},{opportunity_id},{role}"
    existing = db.session.execute(
        select(ReviewApplication.id).where(
            ReviewApplication.user_id == str(user_id),
            ReviewApplication.opportunity_id == opportunity_id,
            ReviewApplication.role == role,
        )
    ).first()
    if existing is not None:
        raise ConflictError("ReviewApplication", _UNIQUE_FIELDS, key)

    application = ReviewApplication(
        user_id=str(user_id),
        handle=handle,
        opportunity_id=opportunity_id,
        role=role,
        status="PENDING",
        created_by=identity.user_id,
        updated_by=identity.user_id,
    )
    db.session.add(application)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise translate_integrity_error(exc, "ReviewApplication", _UNIQUE_FIELDS, key) from exc

    logger.info("Review application created", extra={
        "user_id": application.user_id,
        "application_id": application.id,
        "opportunity_id": opportunity_id,
    })
    return application.to_dict()


def _claim_pending(application_id: str, target: str, user_id: str) -> bool:
    """Move one row out of PENDING in the current transaction.

    Returns False when the row already left PENDING, including a change
    committed by another worker after the row was loaded.
    """
    result = db.session.execute(
        update(ReviewApplication)
        .where(ReviewApplication.id == application_id, ReviewApplication.status == "PENDING")
        .values(status=target, updated_by=user_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _transition(identity, application_id: str, action: str) -> dict:
    application = _get_or_404(application_id)
    previous = application.status
    strict = _strict()
    target = resolve_transition(application, action, strict=strict)
    if strict:
        if not _claim_pending(application.id, target, identity.user_id):
            db.session.rollback()
            raise InvalidTransitionError("ReviewApplication", application_id, action, application.status)
    else:
        application.status = target
        application.updated_by = identity.user_id
    db.session.commit()
    logger.info("Review application %s: %s → %s", application.id, previous, application.status,
                extra={"user_id": identity.user_id})

    warnings = notification_service.notify_application_status([application], application.status)
    return {**application.to_dict(), "warnings": warnings}


def approve_application(identity, application_id: str) -> dict:
    return _transition(identity, application_id, "approve")


def reject_application(identity, application_id: str) -> dict:
    return _transition(identity, application_id, "reject")


def reject_all_pending(identity, opportunity_id: str) -> dict:
    """Reject every PENDING application on ``opportunity_id`` in one commit.

    Returns:
        ``{"applications": [...], "warnings": [...]}``. Both lists are empty
        when nothing was pending, and no e-mail is sent in that case.
    """
    pending = db.session.execute(
        select(ReviewApplication)
        .where(
            ReviewApplication.opportunity_id == opportunity_id,
            ReviewApplication.status == "PENDING",
        )
        .order_by(ReviewApplication.created_at)
    ).scalars().all()
    if not pending:
        logger.info("No pending applications to reject on opportunity %s", opportunity_id)
        return {"applications": [], "warnings": []}

    rejected = [a for a in pending if _claim_pending(a.id, "REJECTED", identity.user_id)]
    db.session.commit()
    if len(rejected) < len(pending):
        logger.warning("%d applications on opportunity %s left PENDING before they could be rejected",
                       len(pending) - len(rejected), opportunity_id)
    if not rejected:
        return {"applications": [], "warnings": []}
    logger.info("Rejected %d pending applications on opportunity %s", len(rejected), opportunity_id,
                extra={"user_id": identity.user_id})

    warnings = notification_service.notify_application_status(rejected, "REJECTED")
    return {"applications": [a.to_dict() for a in rejected], "warnings": warnings}


def list_pending() -> list[dict]:
    stmt = (
        select(ReviewApplication)
        .where(ReviewApplication.status == "PENDING")
        .order_by(ReviewApplication.created_at)
    )
    return [a.to_dict() for a in db.session.execute(stmt).scalars().all()]


def list_by_user(identity, user_id: str) -> list[dict]:
    authz.check_self_or_admin(identity, user_id)
    stmt = (
        select(ReviewApplication)
        .where(ReviewApplication.user_id == str(user_id))
        .order_by(ReviewApplication.created_at.desc())
    )
    return [a.to_dict() for a in db.session.execute(stmt).scalars().all()]


def list_by_opportunity(opportunity_id: str) -> list[dict]:
    stmt = (
        select(ReviewApplication)
        .where(ReviewApplication.opportunity_id == opportunity_id)
        .order_by(ReviewApplication.created_at)
    )
    return [a.to_dict() for a in db.session.execute(stmt).scalars().all()]


def get_history(identity, user_id: str, days: int | None = None) -> list[dict]:
    """APPROVED applications of ``user_id`` created in the last ``days`` days."""
    authz.check_self_or_admin(identity, user_id)
    if days is None:
        days = current_app.config.get("REVIEW_HISTORY_DAYS", 60)
    if days <= 0:
        raise ValidationError("range must be a positive number of days")

    since = datetime.now(timezone.utc) - timedelta(days=days)
    stmt = (
        select(ReviewApplication)
        .where(
            ReviewApplication.user_id == str(user_id),
            ReviewApplication.status == "APPROVED",
            ReviewApplication.created_at >= since,
        )
        .order_by(ReviewApplication.created_at.desc())
    )
    return [a.to_dict() for a in db.session.execute(stmt).scalars().all()]
