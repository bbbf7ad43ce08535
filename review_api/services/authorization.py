"""
Authorization rules for submissions, artifacts, workflow runs and comments.

Every function takes the caller Identity explicitly and receives its
external lookups as callables, so a rule only triggers the lookups it
actually needs:

    role_lookup(challenge_id, member_id)  -> frozenset[ResourceRoleName]
    challenge_lookup(challenge_id)        -> challenge dict
    has_passing_submission()              -> bool

Rules either return a decision value or raise ForbiddenError. They never
catch an authorization failure.

Usage:
    from review_api.services import authorization as authz

    access = authz.artifact_access(identity, submission, role_lookup=fetch_member_roles)
    visible = authz.visible_artifacts(access, artifacts)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Iterable

from review_api.core.exceptions import ForbiddenError
from review_api.core.identity import Identity, ResourceRoleName

logger = logging.getLogger(__name__)

RoleLookup = Callable[[str, str], frozenset]
ChallengeLookup = Callable[[str], dict]

COMPLETED = "COMPLETED"
CHECKPOINT_SUBMISSION = "CHECKPOINT_SUBMISSION"

# Any one of these on the challenge grants run access
RUN_ACCESS_ROLES = frozenset({
    ResourceRoleName.REVIEWER,
    ResourceRoleName.ITERATIVE_REVIEWER,
    ResourceRoleName.MANAGER,
    ResourceRoleName.COPILOT,
    ResourceRoleName.SUBMITTER,
})

CONTACT_REQUEST_ROLES = frozenset({
    ResourceRoleName.REVIEWER,
    ResourceRoleName.SUBMITTER,
})


def _deny(identity: Identity, message: str, **details) -> ForbiddenError:
    logger.warning("Access denied user=%s: %s %s", identity.user_id, message, details or "",
                   extra={"user_id": identity.user_id})
    return ForbiddenError(message, details=details or None)


def _status(challenge: dict) -> str:
    return str(challenge.get("status") or "").strip().upper()


# ═════════════════════════════════════════════════════════════════════════════
# Artifacts
# ═════════════════════════════════════════════════════════════════════════════


class ArtifactAccess(str, Enum):
    FULL = "full"
    PUBLIC_ONLY = "public_only"


def artifact_access(identity: Identity, submission, *, role_lookup: RoleLookup) -> ArtifactAccess:
    """Decide how much of a submission's artifact set the caller may see.

    1. Admin or machine                → FULL, no lookup.
    2. Submission owner                → PUBLIC_ONLY, no lookup.
    3. Copilot on the challenge        → FULL.
    4. Anyone else                     → ForbiddenError.
    """
    if identity.is_admin:
        return ArtifactAccess.FULL
    if identity.owns(submission.member_id):
        return ArtifactAccess.PUBLIC_ONLY
    roles = role_lookup(submission.challenge_id, identity.user_id)
    if ResourceRoleName.COPILOT in roles:
        return ArtifactAccess.FULL
    raise _deny(
        identity,
        "Only the submission owner or a challenge copilot can access artifacts",
        submissionId=submission.id,
        challengeId=submission.challenge_id,
    )


def visible_artifacts(access: ArtifactAccess, artifacts: Iterable) -> list:
    if access is ArtifactAccess.FULL:
        return list(artifacts)
    return [a for a in artifacts if not a.is_internal]


def check_artifact_fetch(identity: Identity, access: ArtifactAccess, artifact) -> None:
    """Raise ForbiddenError when an internal artifact is requested without FULL access."""
    if artifact.is_internal and access is not ArtifactAccess.FULL:
        raise _deny(identity, "Internal artifacts are not available to the submitter",
                    artifactId=artifact.id)


def check_artifact_write(identity: Identity, submission, action: str, *, internal: bool = False) -> None:
    """Uploads and deletes: owner or admin. Internal uploads: admin or machine."""
    if internal and not identity.is_admin:
        raise _deny(identity, "Only administrators can upload internal artifacts",
                    submissionId=submission.id)
    if identity.is_admin or identity.owns(submission.member_id):
        return
    raise _deny(identity, f"Only the submission owner can {action} artifacts",
                submissionId=submission.id)


# ═════════════════════════════════════════════════════════════════════════════
# Submission file download
# ═════════════════════════════════════════════════════════════════════════════


def check_submission_download(
    identity: Identity,
    submission,
    *,
    role_lookup: RoleLookup,
    challenge_lookup: ChallengeLookup,
    has_passing_submission: Callable[[], bool],
) -> str:
    """Return the name of the rule that allowed the download, or raise.

    Precedence, first match wins:
        admin / machine
        Screener on the challenge
        Checkpoint Screener and a CHECKPOINT_SUBMISSION
        Submitter, challenge COMPLETED and another passing submission
    """
    if identity.is_admin:
        return "admin"

    roles = role_lookup(submission.challenge_id, identity.user_id)

    if ResourceRoleName.SCREENER in roles:
        return "screener"

    if submission.type == CHECKPOINT_SUBMISSION and ResourceRoleName.CHECKPOINT_SCREENER in roles:
        return "checkpoint_screener"

    if ResourceRoleName.SUBMITTER in roles:
        challenge = challenge_lookup(submission.challenge_id)
        if _status(challenge) == COMPLETED and has_passing_submission():
            return "passing_submitter"

    raise _deny(
        identity,
        "You are not allowed to download this submission",
        submissionId=submission.id,
        challengeId=submission.challenge_id,
    )


# ═════════════════════════════════════════════════════════════════════════════
# AI workflow runs and comments
# ═════════════════════════════════════════════════════════════════════════════


def check_run_access(
    identity: Identity,
    submission,
    *,
    role_lookup: RoleLookup,
    challenge_lookup: ChallengeLookup,
) -> None:
    """Gate read/update access to a workflow run through its submission.

    Admin or machine always passes. Everyone else needs one of
    RUN_ACCESS_ROLES on the challenge; a caller whose only such role is
    Submitter may reach another member's run only once the challenge is
    COMPLETED.
    """
    if identity.is_admin:
        return

    roles = role_lookup(submission.challenge_id, identity.user_id)
    matching = roles & RUN_ACCESS_ROLES
    if not matching:
        raise _deny(identity, "Insufficient permissions",
                    challengeId=submission.challenge_id)

    if matching == {ResourceRoleName.SUBMITTER} and not identity.owns(submission.member_id):
        challenge = challenge_lookup(submission.challenge_id)
        if _status(challenge) != COMPLETED:
            raise _deny(
                identity,
                "Submitters cannot access other members' workflow runs before the challenge completes",
                submissionId=submission.id,
            )


def check_comment_owner(identity: Identity, comment) -> None:
    """Only the creator may update a comment. Admin does not bypass this."""
    if not identity.owns(comment.user_id):
        raise _deny(identity, "Only the comment author can update this comment",
                    commentId=comment.id)


def check_self_or_admin(identity: Identity, user_id: str) -> None:
    if identity.is_admin or identity.owns(user_id):
        return
    raise _deny(identity, "You can only view your own review applications", userId=user_id)


def check_contact_roles(identity: Identity, resources: list[dict], challenge_id: str,
                        resource_id: str | None = None) -> dict:
    """Return the caller's resource row that permits a contact request, or raise.

    When ``resource_id`` is given only that resource row is considered.
    """
    for resource in resources:
        if resource_id and str(resource.get("id")) != str(resource_id):
            continue
        if ResourceRoleName.parse(resource.get("roleName")) in CONTACT_REQUEST_ROLES:
            return resource
    raise _deny(identity, "Only reviewers and submitters on the challenge can contact its managers",
                challengeId=challenge_id, resourceId=resource_id)
