"""
Submission Artifact Service.

Artifacts are extra files attached to a submission (scan reports, review
notes, screenshots). Metadata rows live in ``submission_artifacts``; bytes
live in ARTIFACTS_S3_BUCKET under ``<submissionId>/<artifactId>.<ext>``.

Visibility is decided by ``authorization.artifact_access``:
  - admin / machine / challenge copilot → every artifact
  - submission owner                    → non-internal artifacts only
  - anyone else                         → ForbiddenError

Functions:
    - list_artifacts:       visible artifact rows for a submission
    - get_artifact_stream:  bytes of one artifact
    - create_artifact:      upload then record an artifact
    - delete_artifact:      remove object then row
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Iterator

from flask import current_app
from sqlalchemy import select
from werkzeug.utils import secure_filename

from review_api.core.exceptions import NotFoundError, StorageError, ValidationError
from review_api.integrations.storage_gateway import storage_gateway
from review_api.models import db
from review_api.models.submission import Submission, SubmissionArtifact
from review_api.services import authorization as authz
from review_api.services.helpers.lookups import fetch_member_roles

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024

_MIME_EXTENSIONS = {
    "application/zip": "zip",
    "application/x-zip-compressed": "zip",
    "application/pdf": "pdf",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "text/plain": "txt",
}


@dataclass
class FileStream:
    """Bytes read from object storage plus the headers to send them with."""

    body: Any
    content_type: str
    file_name: str
    content_length: int | None = None

    def iter_chunks(self, chunk_size: int = _CHUNK_SIZE) -> Iterator[bytes]:
        try:
            yield from self.body.iter_chunks(chunk_size)
        finally:
            self.body.close()


def file_extension(content_type: str | None, file_name: str | None) -> str:
    """Extension from the MIME type, else the file name, else ``bin``."""
    ext = _MIME_EXTENSIONS.get((content_type or "").split(";")[0].strip().lower())
    if ext:
        return ext
    suffix = os.path.splitext(file_name or "")[1].lstrip(".").lower()
    if suffix and suffix.isalnum():
        return suffix
    return "bin"


def _bucket() -> str:
    bucket = current_app.config.get("ARTIFACTS_S3_BUCKET")
    if not bucket:
        raise StorageError("ARTIFACTS_S3_BUCKET is not configured")
    return bucket


def get_submission_or_404(submission_id: str) -> Submission:
    submission = db.session.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError("Submission", submission_id)
    return submission


def _get_artifact_or_404(submission: Submission, artifact_id: str) -> SubmissionArtifact:
    artifact = db.session.get(SubmissionArtifact, artifact_id)
    if artifact is None or artifact.submission_id != submission.id:
        raise NotFoundError("SubmissionArtifact", artifact_id)
    return artifact


def list_artifacts(identity, submission_id: str) -> list[dict]:
    submission = get_submission_or_404(submission_id)
    access = authz.artifact_access(identity, submission, role_lookup=fetch_member_roles)
    artifacts = db.session.execute(
        select(SubmissionArtifact)
        .where(SubmissionArtifact.submission_id == submission.id)
        .order_by(SubmissionArtifact.created_at)
    ).scalars().all()
    return [a.to_dict() for a in authz.visible_artifacts(access, artifacts)]


def get_artifact_stream(identity, submission_id: str, artifact_id: str) -> FileStream:
    """Return the artifact bytes after the visibility check.

    Raises:
        NotFoundError: Unknown submission or artifact, or the object is gone.
        ForbiddenError: Caller may not see this submission's artifacts, or
            asked for an internal artifact with owner-level access.
        StorageError: Bucket missing or S3 failed.
    """
    submission = get_submission_or_404(submission_id)
    access = authz.artifact_access(identity, submission, role_lookup=fetch_member_roles)
    artifact = _get_artifact_or_404(submission, artifact_id)
    authz.check_artifact_fetch(identity, access, artifact)

    result = storage_gateway.get_object(_bucket(), artifact.storage_key)
    if result.not_found:
        raise NotFoundError("SubmissionArtifact file", artifact_id)
    if not result.ok:
        raise StorageError(result.error)

    return FileStream(
        body=result.data["body"],
        content_type=artifact.content_type or result.data.get("content_type") or "application/octet-stream",
        file_name=artifact.file_name,
        content_length=result.data.get("content_length"),
    )


def create_artifact(identity, submission_id: str, upload, internal: bool = False) -> dict:
    """Upload ``upload`` (a werkzeug FileStorage) and record it.

    The row is written only after S3 accepted the object.
    """
    submission = get_submission_or_404(submission_id)
    authz.check_artifact_write(identity, submission, "upload", internal=internal)
    if upload is None or not upload.filename:
        raise ValidationError("A file is required")

    bucket = _bucket()
    artifact_id = str(uuid.uuid4())
    file_name = os.path.basename(upload.filename)[:255]
    content_type = upload.mimetype or "application/octet-stream"
    key = f"{submission.id}/{artifact_id}.{file_extension(content_type, file_name)}"

    result = storage_gateway.put_object(
        bucket,
        key,
        upload.stream,
        content_type=content_type,
        metadata={
            "artifactid": artifact_id,
            "submissionid": submission.id,
            "originalfilename": secure_filename(file_name) or "upload",
        },
    )
    if not result.ok:
        logger.error("Artifact upload failed submission=%s key=%s: %s", submission.id, key, result.error)
        raise StorageError(result.error)

    artifact = SubmissionArtifact(
        id=artifact_id,
        submission_id=submission.id,
        file_name=file_name,
        storage_key=key,
        content_type=content_type,
        is_internal=bool(internal),
        created_by=identity.user_id,
    )
    db.session.add(artifact)
    db.session.commit()
    logger.info("Artifact uploaded", extra={
        "user_id": identity.user_id,
        "submission_id": submission.id,
        "artifact_id": artifact_id,
    })
    return artifact.to_dict()


def delete_artifact(identity, submission_id: str, artifact_id: str) -> None:
    submission = get_submission_or_404(submission_id)
    authz.check_artifact_write(identity, submission, "delete")
    artifact = _get_artifact_or_404(submission, artifact_id)

    result = storage_gateway.delete_object(_bucket(), artifact.storage_key)
    if not result.ok and not result.not_found:
        raise StorageError(result.error)

    db.session.delete(artifact)
    db.session.commit()
    logger.info("Artifact deleted", extra={
        "user_id": identity.user_id,
        "submission_id": submission.id,
        "artifact_id": artifact_id,
    })
