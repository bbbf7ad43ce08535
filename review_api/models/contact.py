"""Contact requests sent by challenge members to the challenge's managers."""

from review_api.models import _iso, _utcnow, _uuid, db


class ContactRequest(db.Model):
    __tablename__ = "contact_requests"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    resource_id = db.Column(db.String(64), nullable=False, comment="Caller's resource id on the challenge")
    challenge_id = db.Column(db.String(64), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=_utcnow)
    updated_by = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "resourceId": self.resource_id,
            "challengeId": self.challenge_id,
            "message": self.message,
            "createdAt": _iso(self.created_at),
            "createdBy": self.created_by,
        }

    def __repr__(self):
        return f"<ContactRequest {self.id} challenge={self.challenge_id}>"
