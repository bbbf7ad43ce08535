"""
Notification Service — templated e-mails sent through the event bus.

Notifications always run after the caller has committed its write. A
failed lookup or bus post is logged at WARNING and returned as a warning
string; nothing here raises, so a notification can never undo a
committed state change.

Functions:
    - notify_application_status:  one e-mail per applicant after approve/reject
    - notify_contact_managers:    one e-mail to the challenge managers
"""

from __future__ import annotations

import logging

from flask import current_app

from review_api.core.identity import ResourceRoleName
from review_api.integrations.challenge_gateway import challenge_gateway
from review_api.integrations.event_bus_gateway import event_bus_gateway
from review_api.integrations.member_gateway import member_gateway
from review_api.integrations.resource_gateway import resource_gateway

logger = logging.getLogger(__name__)

# Resource roles that receive contact-request e-mails
MANAGER_ROLES = frozenset({
    ResourceRoleName.COPILOT,
    ResourceRoleName.MANAGER,
    ResourceRoleName.CLIENT_MANAGER,
    ResourceRoleName.PAYMENT_MANAGER,
    ResourceRoleName.PAYMENTS_MANAGER,
})

_REVIEW_PHASE = "review"


def _warn(message: str, *args) -> str:
    text = message % args if args else message
    logger.warning(text)
    return text


def _email_map(user_ids) -> tuple[dict[str, str], str | None]:
    """Return ({userId: email}, error) for the given user ids."""
    result = member_gateway.get_user_emails(list(user_ids))
    if not result.ok:
        return {}, result.error
    return {
        str(row.get("userId")): row.get("email")
        for row in result.data
        if row.get("email")
    }, None


def review_phase_start(challenge: dict) -> str | None:
    """Scheduled start of the challenge's Review phase, if it has one."""
    for phase in challenge.get("phases") or []:
        if str(phase.get("name") or "").strip().lower() == _REVIEW_PHASE:
            return phase.get("scheduledStartDate") or phase.get("actualStartDate")
    return None


def challenge_url(challenge: dict, challenge_id: str) -> str:
    base = current_app.config["ONLINE_REVIEW_URL_BASE"]
    return f"{base}{challenge.get('legacyId') or challenge_id}"


def notify_application_status(applications: list, status: str) -> list[str]:
    """E-mail each applicant that their application is now ``status``.

    All ``applications`` must belong to the same opportunity.

    Returns:
        Warning strings, one per failure. Empty when every e-mail was queued.
    """
    if not applications:
        return []

    opportunity = applications[0].opportunity
    challenge_id = opportunity.challenge_id
    template_id = (
        current_app.config["SENDGRID_ACCEPT_REVIEW_APPLICATION_TEMPLATE"]
        if status == "APPROVED"
        else current_app.config["SENDGRID_REJECT_REVIEW_APPLICATION_TEMPLATE"]
    )

    challenge_result = challenge_gateway.get_challenge(challenge_id)
    if not challenge_result.ok:
        return [_warn("Review application e-mail skipped: challenge %s lookup failed (%s)",
                      challenge_id, challenge_result.error)]
    challenge = challenge_result.data

    emails, error = _email_map(a.user_id for a in applications)
    if error:
        return [_warn("Review application e-mail skipped: member lookup failed (%s)", error)]

    url = challenge_url(challenge, challenge_id)
    phase_start = review_phase_start(challenge)
    if phase_start is None and opportunity.start_date is not None:
        phase_start = opportunity.start_date.isoformat()

    warnings = []
    for application in applications:
        email = emails.get(str(application.user_id))
        if not email:
            warnings.append(_warn("No e-mail address for applicant %s (application %s)",
                                  application.user_id, application.id))
            continue
        result = event_bus_gateway.send_email(
            template_id,
            [email],
            {
                "handle": application.handle,
                "reviewPhaseStart": phase_start,
                "challengeUrl": url,
                "challengeName": challenge.get("name"),
            },
        )
        if not result.ok:
            warnings.append(_warn("E-mail to applicant %s failed: %s",
                                  application.user_id, result.error))
    return warnings


def notify_contact_managers(contact_request, handle: str | None) -> list[str]:
    """E-mail the challenge's copilots and managers about a contact request."""
    challenge_id = contact_request.challenge_id

    challenge_result = challenge_gateway.get_challenge(challenge_id)
    if not challenge_result.ok:
        return [_warn("Contact e-mail skipped: challenge %s lookup failed (%s)",
                      challenge_id, challenge_result.error)]

    resources_result = resource_gateway.get_member_resources_roles(challenge_id)
    if not resources_result.ok:
        return [_warn("Contact e-mail skipped: resource lookup failed for challenge %s (%s)",
                      challenge_id, resources_result.error)]

    member_ids = sorted({
        str(r.get("memberId"))
        for r in resources_result.data
        if r.get("memberId") is not None
        and ResourceRoleName.parse(r.get("roleName")) in MANAGER_ROLES
    })
    if not member_ids:
        return [_warn("No managers or copilots found for challenge %s", challenge_id)]

    emails, error = _email_map(member_ids)
    if error:
        return [_warn("Contact e-mail skipped: member lookup failed (%s)", error)]
    recipients = sorted(set(emails.values()))
    if not recipients:
        return [_warn("No e-mail addresses found for managers of challenge %s", challenge_id)]

    result = event_bus_gateway.send_email(
        current_app.config["SENDGRID_CONTACT_MANAGERS_TEMPLATE"],
        recipients,
        {
            "handle": handle,
            "challengeName": challenge_result.data.get("name"),
            "message": contact_request.message,
        },
    )
    if not result.ok:
        return [_warn("Contact e-mail for challenge %s failed: %s", challenge_id, result.error)]
    return []
