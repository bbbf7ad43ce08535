"""
Review Opportunity Service.

An opportunity advertises open review positions of one type on a
challenge. There is at most one opportunity per (challenge, type).
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from review_api.core.exceptions import ConflictError, NotFoundError, ValidationError
from review_api.models import db
from review_api.models.review import OPPORTUNITY_STATUSES, OPPORTUNITY_TYPES, ReviewOpportunity
from review_api.services.helpers.db_errors import translate_integrity_error
from review_api.services.helpers.lookups import fetch_challenge

logger = logging.getLogger(__name__)


def _parse_datetime(value, field: str):
    if value in (None, ""):
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"{field} must be an ISO-8601 timestamp", details={field: value}) from exc


def _number(data: dict, field: str, cast, default=None):
    value = data.get(field, default)
    if value is None:
        return None
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be numeric", details={field: value}) from exc


def create_opportunity(identity, data: dict) -> dict:
    """Create an opportunity on an existing challenge.

    Raises:
        ValidationError: Missing challengeId or an unknown type/status.
        NotFoundError: The challenge does not exist.
        ConflictError: An opportunity of this type already exists.
    """
    challenge_id = data.get("challengeId")
    if not challenge_id:
        raise ValidationError("challengeId is required")

    opp_type = (data.get("type") or "REGULAR_REVIEW").upper()
    if opp_type not in OPPORTUNITY_TYPES:
        raise ValidationError(f"Unknown opportunity type '{opp_type}'",
                              details={"valid": sorted(OPPORTUNITY_TYPES)})
    status = (data.get("status") or "OPEN").upper()
    if status not in OPPORTUNITY_STATUSES:
        raise ValidationError(f"Unknown opportunity status '{status}'",
                              details={"valid": sorted(OPPORTUNITY_STATUSES)})

    open_positions = _number(data, "openPositions", int, 1)
    if open_positions is None or open_positions < 1:
        raise ValidationError("openPositions must be at least 1")

    fetch_challenge(challenge_id)

    key = f"{challenge_id},{opp_type}"
    duplicate = db.session.execute(
        select(ReviewOpportunity.id).where(
            ReviewOpportunity.challenge_id == challenge_id,
            ReviewOpportunity.type == opp_type,
        )
    ).first()
    if duplicate is not None:
        raise ConflictError("ReviewOpportunity", "challengeId,type", key)

    opportunity = ReviewOpportunity(
        challenge_id=challenge_id,
        type=opp_type,
        status=status,
        open_positions=open_positions,
        start_date=_parse_datetime(data.get("startDate"), "startDate"),
        duration=_number(data, "duration", int),
        base_payment=_number(data, "basePayment", float),
        incremental_payment=_number(data, "incrementalPayment", float),
        created_by=identity.user_id,
        updated_by=identity.user_id,
    )
    db.session.add(opportunity)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise translate_integrity_error(exc, "ReviewOpportunity", "challengeId,type", key) from exc

    logger.info("Review opportunity created", extra={
        "user_id": identity.user_id,
        "opportunity_id": opportunity.id,
        "challenge_id": challenge_id,
    })
    return opportunity.to_dict()


def get_opportunity(opportunity_id: str) -> dict:
    opportunity = db.session.get(ReviewOpportunity, opportunity_id)
    if opportunity is None:
        raise NotFoundError("ReviewOpportunity", opportunity_id)
    return opportunity.to_dict()


def list_opportunities(challenge_id: str | None = None, status: str | None = None) -> list[dict]:
    stmt = select(ReviewOpportunity)
    if challenge_id:
        stmt = stmt.where(ReviewOpportunity.challenge_id == challenge_id)
    if status:
        stmt = stmt.where(ReviewOpportunity.status == status.upper())
    stmt = stmt.order_by(ReviewOpportunity.created_at)
    return [o.to_dict() for o in db.session.execute(stmt).scalars().all()]
