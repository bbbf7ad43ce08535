"""
Route Guards — role and scope requirements for every API endpoint.

Architecture:
    ROUTE_RULES maps an endpoint name ("blueprint.function") to a RouteRule
    naming the global roles and M2M scopes that may call it. A single
    app.before_request hook resolves the rule for the current endpoint and
    walks GUARD_CHAIN, an ordered tuple of predicates over
    (identity, rule). Each predicate returns a GuardDecision to stop the
    chain or None to defer to the next one.

Chain order:
    1. public route                      → allow
    2. no identity                       → 401
    3. rule declares nothing             → allow
    4. a global role matches exactly     → allow
    5. an expanded scope matches         → allow
    6. machine token, roles-only rule    → 403 (M2M not allowed)
    7. anything else                     → 403

Challenge-scoped checks (resource roles, ownership, challenge status) are
not made here; services evaluate them through services.authorization.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import Flask, g, request

from review_api.core.identity import Identity, Scope, UserRole
from review_api.utils.errors import E, api_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteRule:
    roles: tuple[UserRole, ...] = ()
    scopes: tuple[str, ...] = ()
    public: bool = False


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    status: int = 200
    message: str = ""


ALLOW = GuardDecision(True)


# ── Route table ───────────────────────────────────────────────────────────────

_PUBLIC = RouteRule(public=True)
_ADMIN_ONLY = (UserRole.ADMIN,)
_MEMBER_ROLES = (UserRole.COPILOT, UserRole.ADMIN, UserRole.USER, UserRole.REVIEWER)
_RUN_READERS = (
    UserRole.ADMIN,
    UserRole.COPILOT,
    UserRole.PROJECT_MANAGER,
    UserRole.REVIEWER,
    UserRole.SUBMITTER,
    UserRole.USER,
)

ROUTE_RULES: dict[str, RouteRule] = {
    # Review opportunities
    "review_opportunity.create_opportunity": RouteRule(
        roles=(UserRole.ADMIN, UserRole.COPILOT), scopes=(Scope.CREATE_REVIEW_OPPORTUNITY,)),
    "review_opportunity.list_opportunities": _PUBLIC,
    "review_opportunity.get_opportunity": _PUBLIC,

    # Review applications
    "review_application.create_application": RouteRule(roles=(UserRole.REVIEWER,)),
    "review_application.list_pending": RouteRule(
        roles=_ADMIN_ONLY, scopes=(Scope.READ_REVIEW_APPLICATION,)),
    "review_application.list_by_user": RouteRule(
        roles=(UserRole.ADMIN, UserRole.REVIEWER), scopes=(Scope.READ_REVIEW_APPLICATION,)),
    "review_application.get_history": RouteRule(
        roles=(UserRole.ADMIN, UserRole.REVIEWER), scopes=(Scope.READ_REVIEW_APPLICATION,)),
    "review_application.list_by_opportunity": _PUBLIC,
    "review_application.approve_application": RouteRule(
        roles=_ADMIN_ONLY, scopes=(Scope.UPDATE_REVIEW_APPLICATION,)),
    "review_application.reject_application": RouteRule(
        roles=_ADMIN_ONLY, scopes=(Scope.UPDATE_REVIEW_APPLICATION,)),
    "review_application.reject_all_pending": RouteRule(
        roles=_ADMIN_ONLY, scopes=(Scope.UPDATE_REVIEW_APPLICATION,)),

    # Submissions and artifacts
    "submission.download_submission": RouteRule(
        roles=_MEMBER_ROLES, scopes=(Scope.READ_SUBMISSION,)),
    "submission.list_access_audit": RouteRule(
        roles=_ADMIN_ONLY, scopes=(Scope.READ_SUBMISSION,)),
    "submission.create_artifact": RouteRule(
        roles=_MEMBER_ROLES, scopes=(Scope.CREATE_SUBMISSION_ARTIFACTS,)),
    "submission.list_artifacts": RouteRule(
        roles=_MEMBER_ROLES, scopes=(Scope.READ_SUBMISSION,)),
    "submission.download_artifact": RouteRule(
        roles=_MEMBER_ROLES, scopes=(Scope.READ_SUBMISSION_ARTIFACTS,)),
    "submission.delete_artifact": RouteRule(
        roles=_MEMBER_ROLES, scopes=(Scope.DELETE_SUBMISSION_ARTIFACTS,)),

    # AI workflows
    "ai_workflow.create_workflow": RouteRule(roles=_ADMIN_ONLY, scopes=(Scope.CREATE_WORKFLOW,)),
    "ai_workflow.get_workflow": RouteRule(roles=_RUN_READERS, scopes=(Scope.READ_WORKFLOW,)),
    "ai_workflow.update_workflow": RouteRule(roles=_ADMIN_ONLY, scopes=(Scope.UPDATE_WORKFLOW,)),
    "ai_workflow.create_run": RouteRule(roles=_ADMIN_ONLY, scopes=(Scope.CREATE_WORKFLOW_RUN,)),
    "ai_workflow.list_runs": RouteRule(roles=_RUN_READERS, scopes=(Scope.READ_WORKFLOW_RUN,)),
    "ai_workflow.get_run": RouteRule(roles=_RUN_READERS, scopes=(Scope.READ_WORKFLOW_RUN,)),
    "ai_workflow.update_run": RouteRule(roles=_ADMIN_ONLY, scopes=(Scope.UPDATE_WORKFLOW_RUN,)),
    "ai_workflow.create_run_items": RouteRule(roles=_ADMIN_ONLY, scopes=(Scope.CREATE_WORKFLOW_RUN,)),
    "ai_workflow.list_run_items": RouteRule(roles=_RUN_READERS, scopes=(Scope.READ_WORKFLOW_RUN,)),
    "ai_workflow.update_run_item": RouteRule(roles=_RUN_READERS, scopes=(Scope.UPDATE_WORKFLOW_RUN,)),
    "ai_workflow.create_comment": RouteRule(roles=_RUN_READERS),
    "ai_workflow.update_comment": RouteRule(roles=_RUN_READERS),

    # Contact requests
    "contact_request.create_contact_request": RouteRule(
        roles=(UserRole.SUBMITTER, UserRole.REVIEWER, UserRole.USER),
        scopes=(Scope.CREATE_CONTACT_REQUEST,)),
}

# Blueprints whose endpoints never pass through the guard
SKIP_BLUEPRINTS = {"health", "static"}


# ── Predicates ────────────────────────────────────────────────────────────────


def _public_route(identity: Identity | None, rule: RouteRule) -> GuardDecision | None:
    return ALLOW if rule.public else None


def _require_identity(identity: Identity | None, rule: RouteRule) -> GuardDecision | None:
    if identity is None:
        return GuardDecision(False, 401, "Authentication required")
    return None


def _no_requirements(identity: Identity | None, rule: RouteRule) -> GuardDecision | None:
    return ALLOW if not rule.roles and not rule.scopes else None


def _role_match(identity: Identity | None, rule: RouteRule) -> GuardDecision | None:
    if rule.roles and identity.user_roles.intersection(rule.roles):
        return ALLOW
    return None


def _scope_match(identity: Identity | None, rule: RouteRule) -> GuardDecision | None:
    if rule.scopes and identity.scopes.intersection(rule.scopes):
        return ALLOW
    return None


def _machine_on_roles_only(identity: Identity | None, rule: RouteRule) -> GuardDecision | None:
    if identity.is_machine and rule.roles and not rule.scopes:
        return GuardDecision(False, 403, "M2M token not allowed for this endpoint")
    return None


def _deny(identity: Identity | None, rule: RouteRule) -> GuardDecision | None:
    return GuardDecision(False, 403, "Insufficient permissions")


GUARD_CHAIN = (
    _public_route,
    _require_identity,
    _no_requirements,
    _role_match,
    _scope_match,
    _machine_on_roles_only,
    _deny,
)


def evaluate_route(identity: Identity | None, rule: RouteRule) -> GuardDecision:
    """Walk GUARD_CHAIN and return the first definitive decision."""
    for predicate in GUARD_CHAIN:
        decision = predicate(identity, rule)
        if decision is not None:
            return decision
    return GuardDecision(False, 403, "Insufficient permissions")


def _auth_enabled(app: Flask) -> bool:
    return str(app.config.get("API_AUTH_ENABLED", "true")).lower() in ("1", "true", "yes")


def init_route_guards(app: Flask):
    """
    Register the single before_request hook enforcing ROUTE_RULES.

    Call once in create_app() after blueprints are registered.
    """

    @app.before_request
    def _enforce_route_rules():
        endpoint = request.endpoint
        if not endpoint:
            return None

        parts = endpoint.rsplit(".", 1)
        if len(parts) < 2 or parts[0] in SKIP_BLUEPRINTS:
            return None

        rule = ROUTE_RULES.get(endpoint)
        if rule is None:
            return None

        if not _auth_enabled(app):
            return None

        identity = getattr(g, "identity", None)
        decision = evaluate_route(identity, rule)
        if decision.allowed:
            return None

        if decision.status == 401:
            message = getattr(g, "auth_error", None) or decision.message
            return api_error(E.UNAUTHORIZED, message)

        logger.warning(
            "Route guard denied user=%s endpoint=%s: %s",
            identity.user_id if identity else None, endpoint, decision.message,
            extra={"user_id": identity.user_id if identity else None, "endpoint": endpoint},
        )
        return api_error(E.FORBIDDEN, decision.message)
