"""Challenge service gateway — challenge detail lookup."""

from __future__ import annotations

import logging

from flask import current_app

from review_api.integrations.gateway import GatewayResult, ServiceGateway

logger = logging.getLogger(__name__)


class ChallengeGateway(ServiceGateway):
    """GET {CHALLENGE_API_URL}{challengeId}.

    Usage:
        from review_api.integrations.challenge_gateway import challenge_gateway
        result = challenge_gateway.get_challenge("chal-1")
        if result.ok:
            status = result.data["status"]
    """

    service_name = "challenge"

    def get_challenge(self, challenge_id: str) -> GatewayResult:
        """Return challenge detail: {id, name, legacyId, status, phases, ...}."""
        base = current_app.config["CHALLENGE_API_URL"].rstrip("/")
        result = self.request("GET", f"{base}/{challenge_id}")
        if result.ok and not isinstance(result.data, dict):
            return GatewayResult.failure("Unexpected challenge payload", result.status_code)
        return result


# Module-level singleton, import this instance in services.
# In tests, override via patch.object(challenge_gateway, "get_challenge", ...)
challenge_gateway = ChallengeGateway()
