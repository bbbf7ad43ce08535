"""
Submission Service — primary file download and its access audit.

Every allowed download appends one SubmissionAccessAudit row, committed
before the bytes are fetched, so an audit entry exists even when the
storage read fails afterwards.
"""

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select

from review_api.core.exceptions import NotFoundError, StorageError
from review_api.integrations.storage_gateway import storage_gateway
from review_api.models import db
from review_api.models.submission import ReviewSummation, Submission, SubmissionAccessAudit
from review_api.services import authorization as authz
from review_api.services.artifact_service import FileStream, get_submission_or_404
from review_api.services.helpers.lookups import fetch_challenge, fetch_member_roles

logger = logging.getLogger(__name__)

SUBMISSION_CONTENT_TYPE = "application/zip"


def has_other_passing_submission(member_id: str, challenge_id: str, exclude_id: str) -> bool:
    """True when ``member_id`` has another submission on the challenge with a passing summation."""
    stmt = (
        select(Submission.id)
        .join(ReviewSummation, ReviewSummation.submission_id == Submission.id)
        .where(
            Submission.challenge_id == challenge_id,
            Submission.member_id == str(member_id),
            Submission.id != exclude_id,
            ReviewSummation.is_passing.is_(True),
        )
        .limit(1)
    )
    return db.session.execute(stmt).first() is not None


def download_submission(identity, submission_id: str) -> FileStream:
    """Authorize, audit and stream the submission file.

    Raises:
        NotFoundError: Unknown submission, or the file is missing from storage.
        ForbiddenError: No download rule matched.
        StorageError: Bucket missing or S3 failed.
    """
    submission = get_submission_or_404(submission_id)

    rule = authz.check_submission_download(
        identity,
        submission,
        role_lookup=fetch_member_roles,
        challenge_lookup=fetch_challenge,
        has_passing_submission=lambda: has_other_passing_submission(
            identity.user_id, submission.challenge_id, submission.id
        ),
    )

    bucket = current_app.config.get("SUBMISSIONS_S3_BUCKET")
    if not bucket:
        raise StorageError("SUBMISSIONS_S3_BUCKET is not configured")

    audit = SubmissionAccessAudit(
        submission_id=submission.id,
        downloaded_at=datetime.now(timezone.utc),
        handle=identity.handle or str(identity.user_id),
    )
    db.session.add(audit)
    db.session.commit()
    logger.info("Submission %s download allowed by rule=%s", submission.id, rule,
                extra={"user_id": identity.user_id})

    result = storage_gateway.get_object(bucket, submission.file_key)
    if result.not_found:
        raise NotFoundError("Submission file", submission.id)
    if not result.ok:
        raise StorageError(result.error)

    return FileStream(
        body=result.data["body"],
        content_type=SUBMISSION_CONTENT_TYPE,
        file_name=f"submission-{submission.id}.zip",
        content_length=result.data.get("content_length"),
    )


def list_access_audit(submission_id: str) -> list[dict]:
    """Download audit trail of a submission, newest first."""
    get_submission_or_404(submission_id)
    stmt = (
        select(SubmissionAccessAudit)
        .where(SubmissionAccessAudit.submission_id == submission_id)
        .order_by(SubmissionAccessAudit.downloaded_at.desc())
    )
    return [a.to_dict() for a in db.session.execute(stmt).scalars().all()]
