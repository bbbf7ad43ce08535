"""
Submissions, their artifacts, review summations and the download audit.

SubmissionAccessAudit is append-only: one row per allowed download of the
primary submission file. Rows are never updated or deleted.
"""

from review_api.models import _iso, _utcnow, _uuid, db

# ── Constants ─────────────────────────────────────────────────────────────────

SUBMISSION_TYPES = frozenset({
    "CONTEST_SUBMISSION",
    "CHECKPOINT_SUBMISSION",
    "SPECIFICATION_SUBMISSION",
})


class Submission(db.Model):
    """A member's entry on a challenge. ``member_id`` is the owner."""

    __tablename__ = "submissions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    member_id = db.Column(db.String(64), nullable=False, index=True)
    challenge_id = db.Column(db.String(64), nullable=False, index=True)
    type = db.Column(
        db.String(30),
        nullable=False,
        default="CONTEST_SUBMISSION",
        comment="CONTEST_SUBMISSION | CHECKPOINT_SUBMISSION | SPECIFICATION_SUBMISSION",
    )
    storage_key = db.Column(
        db.String(512),
        nullable=True,
        comment="Object key of the submission file; defaults to '<id>.zip'",
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(64), nullable=True)

    artifacts = db.relationship(
        "SubmissionArtifact", back_populates="submission",
        lazy="dynamic", cascade="all, delete-orphan",
    )
    summations = db.relationship(
        "ReviewSummation", back_populates="submission",
        lazy="dynamic", cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("ix_submission_challenge_member", "challenge_id", "member_id"),
    )

    @property
    def file_key(self) -> str:
        return self.storage_key or f"{self.id}.zip"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "memberId": self.member_id,
            "challengeId": self.challenge_id,
            "type": self.type,
            "createdAt": _iso(self.created_at),
            "createdBy": self.created_by,
        }

    def __repr__(self):
        return f"<Submission {self.id} member={self.member_id} challenge={self.challenge_id}>"


class SubmissionArtifact(db.Model):
    """
    A file attached to a submission, stored in the artifacts bucket.

    ``is_internal`` is set when the artifact is uploaded and marks files the
    submitter must not see (scan output, reviewer notes).
    """

    __tablename__ = "submission_artifacts"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    submission_id = db.Column(
        db.String(36),
        db.ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name = db.Column(db.String(255), nullable=False, comment="Original upload file name")
    storage_key = db.Column(db.String(512), nullable=False, comment="<submissionId>/<artifactId>.<ext>")
    content_type = db.Column(db.String(120), nullable=True)
    is_internal = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(64), nullable=True)

    submission = db.relationship("Submission", back_populates="artifacts")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submissionId": self.submission_id,
            "fileName": self.file_name,
            "contentType": self.content_type,
            "internal": self.is_internal,
            "createdAt": _iso(self.created_at),
            "createdBy": self.created_by,
        }

    def __repr__(self):
        return f"<SubmissionArtifact {self.id} internal={self.is_internal}>"


class ReviewSummation(db.Model):
    """Aggregate review outcome for a submission."""

    __tablename__ = "review_summations"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    submission_id = db.Column(
        db.String(36),
        db.ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    aggregate_score = db.Column(db.Float, nullable=False, default=0.0)
    is_passing = db.Column(db.Boolean, nullable=False, default=False)
    is_final = db.Column(db.Boolean, nullable=False, default=False)
    reviewed_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    submission = db.relationship("Submission", back_populates="summations")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submissionId": self.submission_id,
            "aggregateScore": self.aggregate_score,
            "isPassing": self.is_passing,
            "isFinal": self.is_final,
            "reviewedDate": _iso(self.reviewed_date),
        }


class SubmissionAccessAudit(db.Model):
    """Append-only record of a submission file download."""

    __tablename__ = "submission_access_audits"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    submission_id = db.Column(
        db.String(36),
        db.ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    downloaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    handle = db.Column(
        db.String(64),
        nullable=False,
        comment="Accessor handle; machine callers are recorded by client id",
    )

    __table_args__ = (
        db.Index("ix_submission_access_audit_submission", "submission_id", "downloaded_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submissionId": self.submission_id,
            "downloadedAt": _iso(self.downloaded_at),
            "handle": self.handle,
        }

    def __repr__(self):
        return f"<SubmissionAccessAudit {self.submission_id} by {self.handle}>"
