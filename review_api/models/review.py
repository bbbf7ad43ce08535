"""
Review opportunities and the applications members file against them.

A ReviewOpportunity advertises review positions of one type on a challenge.
A ReviewApplication is one member's request to fill a role on an
opportunity; its lifecycle lives in services.review_application_service.
"""

from review_api.models import _iso, _utcnow, _uuid, db

# ── Constants ─────────────────────────────────────────────────────────────────

OPPORTUNITY_TYPES = frozenset({
    "REGULAR_REVIEW",
    "COMPONENT_DEV_REVIEW",
    "SPEC_REVIEW",
    "ITERATIVE_REVIEW",
    "SCENARIOS_REVIEW",
})

OPPORTUNITY_STATUSES = frozenset({"OPEN", "CLOSED", "CANCELLED"})

APPLICATION_STATUSES = frozenset({"PENDING", "APPROVED", "REJECTED", "CANCELLED"})

# Application role → the only opportunity type it may be filed against
ROLE_OPPORTUNITY_TYPE = {
    "PRIMARY_REVIEWER": "COMPONENT_DEV_REVIEW",
    "SECONDARY_REVIEWER": "COMPONENT_DEV_REVIEW",
    "PRIMARY_FAILURE_REVIEWER": "COMPONENT_DEV_REVIEW",
    "ACCURACY_REVIEWER": "COMPONENT_DEV_REVIEW",
    "STRESS_REVIEWER": "COMPONENT_DEV_REVIEW",
    "FAILURE_REVIEWER": "COMPONENT_DEV_REVIEW",
    "SPECIFICATION_REVIEWER": "SPEC_REVIEW",
    "ITERATIVE_REVIEWER": "ITERATIVE_REVIEW",
    "REVIEWER": "REGULAR_REVIEW",
}

APPLICATION_ROLES = frozenset(ROLE_OPPORTUNITY_TYPE)


class ReviewOpportunity(db.Model):
    """Open review positions of a single type on a challenge."""

    __tablename__ = "review_opportunities"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    challenge_id = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="OPEN",
        comment="OPEN | CLOSED | CANCELLED",
    )
    type = db.Column(
        db.String(30),
        nullable=False,
        default="REGULAR_REVIEW",
        comment="REGULAR_REVIEW | COMPONENT_DEV_REVIEW | SPEC_REVIEW | ITERATIVE_REVIEW | SCENARIOS_REVIEW",
    )
    open_positions = db.Column(db.Integer, nullable=False, default=1)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    duration = db.Column(db.Integer, nullable=True, comment="Review duration in seconds")
    base_payment = db.Column(db.Float, nullable=True)
    incremental_payment = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=_utcnow)
    updated_by = db.Column(db.String(64), nullable=True)

    applications = db.relationship(
        "ReviewApplication",
        back_populates="opportunity",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("challenge_id", "type", name="uq_review_opportunity_challenge_type"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "challengeId": self.challenge_id,
            "status": self.status,
            "type": self.type,
            "openPositions": self.open_positions,
            "startDate": _iso(self.start_date),
            "duration": self.duration,
            "basePayment": self.base_payment,
            "incrementalPayment": self.incremental_payment,
            "createdAt": _iso(self.created_at),
            "createdBy": self.created_by,
            "updatedAt": _iso(self.updated_at),
            "updatedBy": self.updated_by,
        }

    def __repr__(self):
        return f"<ReviewOpportunity {self.id} {self.type} challenge={self.challenge_id}>"


class ReviewApplication(db.Model):
    """
    A member's application for a role on a review opportunity.

    Business rules:
    - Created PENDING by the applicant.
    - Moves to APPROVED or REJECTED by an admin action.
    - One application per (user_id, opportunity_id, role).
    """

    __tablename__ = "review_applications"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    handle = db.Column(db.String(64), nullable=False)
    opportunity_id = db.Column(
        db.String(36),
        db.ForeignKey("review_opportunities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = db.Column(db.String(40), nullable=False, comment="See ROLE_OPPORTUNITY_TYPE")
    status = db.Column(
        db.String(20),
        nullable=False,
        default="PENDING",
        comment="PENDING | APPROVED | REJECTED | CANCELLED",
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=_utcnow)
    updated_by = db.Column(db.String(64), nullable=True)

    opportunity = db.relationship("ReviewOpportunity", back_populates="applications")

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "opportunity_id", "role", name="uq_review_application_user_opportunity_role"
        ),
        db.Index("ix_review_application_opportunity_status", "opportunity_id", "status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "handle": self.handle,
            "opportunityId": self.opportunity_id,
            "role": self.role,
            "status": self.status,
            "createdAt": _iso(self.created_at),
            "createdBy": self.created_by,
            "updatedAt": _iso(self.updated_at),
            "updatedBy": self.updated_by,
        }

    def __repr__(self):
        return f"<ReviewApplication {self.id} {self.role} {self.status}>"
