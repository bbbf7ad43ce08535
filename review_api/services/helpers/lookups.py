"""
Lookup helpers that turn gateway results into domain values or errors.

Gateways return GatewayResult and never raise; these helpers are where a
failed lookup becomes an exception, and they pick the kind:

    challenge missing (404)       → NotFoundError("Challenge")
    any other gateway failure     → UpstreamError(<service>)

Nothing is cached: each call goes to the owning service.
"""

from __future__ import annotations

import logging

from review_api.core.exceptions import NotFoundError, UpstreamError
from review_api.core.identity import ResourceRoleName, parse_resource_roles
from review_api.integrations.challenge_gateway import challenge_gateway
from review_api.integrations.resource_gateway import resource_gateway

logger = logging.getLogger(__name__)


def fetch_challenge(challenge_id: str) -> dict:
    result = challenge_gateway.get_challenge(challenge_id)
    if result.not_found:
        raise NotFoundError("Challenge", challenge_id)
    if not result.ok:
        raise UpstreamError("challenge", result.error)
    return result.data


def fetch_challenge_resources(challenge_id: str, member_id: str | None = None) -> list[dict]:
    result = resource_gateway.get_member_resources_roles(challenge_id, member_id)
    if not result.ok:
        raise UpstreamError("resource", result.error)
    return result.data


def fetch_member_roles(challenge_id: str, member_id: str) -> frozenset[ResourceRoleName]:
    """Return the caller's known resource roles on a challenge."""
    roles = parse_resource_roles(fetch_challenge_resources(challenge_id, member_id))
    logger.debug("Resource roles challenge=%s member=%s: %s",
                 challenge_id, member_id, sorted(r.value for r in roles))
    return roles
