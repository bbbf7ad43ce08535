"""
Caller identity and role vocabulary.

Identity is resolved once per request by ``middleware.jwt_auth`` and then
passed explicitly to every service and rule function. Role names coming
from tokens or from the resource service are parsed into enums by exact,
case-insensitive comparison; unknown names parse to ``None`` and never
satisfy a rule.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class UserRole(str, Enum):
    """Global (token) roles."""
    ADMIN = "administrator"
    COPILOT = "copilot"
    SCREENER = "Screener"
    ITERATIVE_REVIEWER = "Iterative Reviewer"
    REVIEWER = "reviewer"
    SUBMITTER = "Submitter"
    PROJECT_MANAGER = "Manager"
    USER = "Topcoder Talent"

    @classmethod
    def parse(cls, name: str | None) -> "UserRole | None":
        return _parse(cls, name)


class ResourceRoleName(str, Enum):
    """Challenge-scoped roles returned by the resource service."""
    SUBMITTER = "Submitter"
    REVIEWER = "Reviewer"
    ITERATIVE_REVIEWER = "Iterative Reviewer"
    COPILOT = "Copilot"
    SCREENER = "Screener"
    CHECKPOINT_SCREENER = "Checkpoint Screener"
    MANAGER = "Manager"
    CLIENT_MANAGER = "Client Manager"
    PAYMENT_MANAGER = "Payment Manager"
    PAYMENTS_MANAGER = "Payments Manager"

    @classmethod
    def parse(cls, name: str | None) -> "ResourceRoleName | None":
        return _parse(cls, name)


def _parse(enum_cls, name):
    if not name:
        return None
    wanted = name.strip().casefold()
    for member in enum_cls:
        if member.value.casefold() == wanted:
            return member
    return None


def parse_resource_roles(resources: list[dict]) -> frozenset[ResourceRoleName]:
    """Collapse resource-service rows into the set of known role names."""
    parsed = (ResourceRoleName.parse(r.get("roleName")) for r in resources or [])
    return frozenset(role for role in parsed if role is not None)


# ── Scopes ────────────────────────────────────────────────────────────────

class Scope:
    """M2M token scopes understood by the route guard."""
    CREATE_REVIEW_APPLICATION = "create:review-application"
    READ_REVIEW_APPLICATION = "read:review-application"
    UPDATE_REVIEW_APPLICATION = "update:review-application"
    ALL_REVIEW_APPLICATION = "all:review-application"

    CREATE_REVIEW_OPPORTUNITY = "create:review-opportunity"
    READ_REVIEW_OPPORTUNITY = "read:review-opportunity"
    ALL_REVIEW_OPPORTUNITY = "all:review-opportunity"

    READ_SUBMISSION = "read:submission"
    CREATE_SUBMISSION_ARTIFACTS = "create:submission-artifacts"
    READ_SUBMISSION_ARTIFACTS = "read:submission-artifacts"
    DELETE_SUBMISSION_ARTIFACTS = "delete:submission-artifacts"
    ALL_SUBMISSION = "all:submission"

    CREATE_WORKFLOW = "create:workflow"
    READ_WORKFLOW = "read:workflow"
    UPDATE_WORKFLOW = "update:workflow"
    CREATE_WORKFLOW_RUN = "create:workflow-run"
    READ_WORKFLOW_RUN = "read:workflow-run"
    UPDATE_WORKFLOW_RUN = "update:workflow-run"
    ALL_WORKFLOW = "all:workflow"

    CREATE_CONTACT_REQUEST = "create:contact-request"
    ALL_CONTACT_REQUEST = "all:contact-request"


ALL_SCOPE_MAPPINGS: dict[str, tuple[str, ...]] = {
    Scope.ALL_REVIEW_APPLICATION: (
        Scope.CREATE_REVIEW_APPLICATION,
        Scope.READ_REVIEW_APPLICATION,
        Scope.UPDATE_REVIEW_APPLICATION,
    ),
    Scope.ALL_REVIEW_OPPORTUNITY: (
        Scope.CREATE_REVIEW_OPPORTUNITY,
        Scope.READ_REVIEW_OPPORTUNITY,
    ),
    Scope.ALL_SUBMISSION: (
        Scope.READ_SUBMISSION,
        Scope.CREATE_SUBMISSION_ARTIFACTS,
        Scope.READ_SUBMISSION_ARTIFACTS,
        Scope.DELETE_SUBMISSION_ARTIFACTS,
    ),
    Scope.ALL_WORKFLOW: (
        Scope.CREATE_WORKFLOW,
        Scope.READ_WORKFLOW,
        Scope.UPDATE_WORKFLOW,
        Scope.CREATE_WORKFLOW_RUN,
        Scope.READ_WORKFLOW_RUN,
        Scope.UPDATE_WORKFLOW_RUN,
    ),
    Scope.ALL_CONTACT_REQUEST: (Scope.CREATE_CONTACT_REQUEST,),
}


def expand_scopes(raw_scopes) -> frozenset[str]:
    """Split a space-delimited scope claim and expand ``all:*`` umbrellas."""
    if isinstance(raw_scopes, str):
        raw_scopes = raw_scopes.split()
    expanded: set[str] = set()
    for scope in raw_scopes or ():
        scope = scope.strip()
        if not scope:
            continue
        expanded.add(scope)
        expanded.update(ALL_SCOPE_MAPPINGS.get(scope, ()))
    return frozenset(expanded)


# ── Identity ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Identity:
    """Resolved caller, immutable for the lifetime of a request."""

    user_id: str | None
    handle: str | None = None
    roles: frozenset[str] = field(default_factory=frozenset)
    scopes: frozenset[str] = field(default_factory=frozenset)
    is_machine: bool = False

    @property
    def user_roles(self) -> frozenset[UserRole]:
        parsed = (UserRole.parse(r) for r in self.roles)
        return frozenset(r for r in parsed if r is not None)

    def has_role(self, role: UserRole) -> bool:
        return role in self.user_roles

    @property
    def is_admin(self) -> bool:
        return self.is_machine or self.has_role(UserRole.ADMIN)

    def owns(self, member_id) -> bool:
        return self.user_id is not None and member_id is not None and str(member_id) == str(self.user_id)
