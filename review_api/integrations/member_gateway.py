"""Member service gateway — e-mail lookup for notification recipients."""

from __future__ import annotations

import logging

from flask import current_app

from review_api.integrations.gateway import GatewayResult, ServiceGateway

logger = logging.getLogger(__name__)


class MemberGateway(ServiceGateway):
    service_name = "member"

    def get_user_emails(self, user_ids: list[str]) -> GatewayResult:
        """GET {MEMBER_API_URL}?fields=email,userId&userIds=[...].

        Returns:
            GatewayResult.data = [{"userId": ..., "email": ...}, ...]
        """
        ids = [str(u) for u in user_ids if u is not None]
        if not ids:
            return GatewayResult.success([])
        result = self.request(
            "GET",
            current_app.config["MEMBER_API_URL"],
            params={"fields": "email,userId", "userIds": f"[{','.join(ids)}]"},
        )
        if result.ok and not isinstance(result.data, list):
            return GatewayResult.failure("Unexpected member payload", result.status_code)
        return result


member_gateway = MemberGateway()
