"""
Contact Request Service.

A reviewer or submitter on a challenge sends a message to the challenge's
copilots and managers. The request is stored first; the e-mail is
best-effort and its failures come back as ``warnings``.
"""

import logging

from review_api.core.exceptions import ValidationError
from review_api.models import db
from review_api.models.contact import ContactRequest
from review_api.services import authorization as authz
from review_api.services import notification_service
from review_api.services.helpers.lookups import fetch_challenge_resources

logger = logging.getLogger(__name__)

_REQUIRED = ("challengeId", "resourceId", "message")


def create_contact_request(identity, data: dict) -> dict:
    """Store a contact request and e-mail the challenge managers.

    Args:
        identity: Caller; must hold Reviewer or Submitter through the
            resource ``resourceId`` on the challenge.
        data: ``{"challengeId", "resourceId", "message"}``.

    Returns:
        The stored request plus ``warnings`` from the notification step.
    """
    missing = [f for f in _REQUIRED if not str(data.get(f) or "").strip()]
    if missing:
        raise ValidationError("Missing required fields", details={"missing": missing})
    if not isinstance(data["message"], str):
        raise ValidationError("message must be a string", details={"message": type(data["message"]).__name__})

    challenge_id = str(data["challengeId"]).strip()
    resource_id = str(data["resourceId"]).strip()

    resources = fetch_challenge_resources(challenge_id, identity.user_id)
    authz.check_contact_roles(identity, resources, challenge_id, resource_id)

    contact = ContactRequest(
        challenge_id=challenge_id,
        resource_id=resource_id,
        message=data["message"].strip(),
        created_by=identity.user_id,
        updated_by=identity.user_id,
    )
    db.session.add(contact)
    db.session.commit()
    logger.info("Contact request %s created for challenge %s", contact.id, challenge_id,
                extra={"user_id": identity.user_id})

    warnings = notification_service.notify_contact_managers(contact, identity.handle)
    return {**contact.to_dict(), "warnings": warnings}
