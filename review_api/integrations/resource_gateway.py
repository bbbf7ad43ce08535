"""
Resource service gateway — challenge-scoped role assignments.

  GET {RESOURCE_API_URL}resource-roles             → [{id, name}, ...]
  GET {RESOURCE_API_URL}resources?challengeId=&memberId= → [{id, roleId, memberId, memberHandle}, ...]

``get_member_resources_roles`` joins the two and attaches ``roleName`` to
every resource row. Nothing here is cached.
"""

from __future__ import annotations

import logging

from flask import current_app

from review_api.integrations.gateway import GatewayResult, ServiceGateway

logger = logging.getLogger(__name__)


class ResourceGateway(ServiceGateway):
    service_name = "resource"

    def _url(self, path: str) -> str:
        return f"{current_app.config['RESOURCE_API_URL'].rstrip('/')}/{path}"

    def get_resource_roles(self) -> GatewayResult:
        """Return GatewayResult.data = {roleId: roleName}."""
        result = self.request("GET", self._url("resource-roles"))
        if not result.ok:
            return result
        roles = result.data if isinstance(result.data, list) else []
        return GatewayResult.success(
            {r.get("id"): r.get("name") for r in roles if r.get("id")},
            result.status_code,
            result.duration_ms,
        )

    def get_member_resources_roles(self, challenge_id: str, member_id: str | None = None) -> GatewayResult:
        """Return GatewayResult.data = resource rows with ``roleName`` attached.

        With ``member_id=None`` every resource on the challenge is returned.
        """
        roles_result = self.get_resource_roles()
        if not roles_result.ok:
            return roles_result

        params = {"challengeId": challenge_id}
        if member_id is not None:
            params["memberId"] = str(member_id)
        result = self.request("GET", self._url("resources"), params=params)
        if not result.ok:
            return result

        role_map = roles_result.data
        rows = result.data if isinstance(result.data, list) else []
        resources = []
        for row in rows:
            if member_id is not None and str(row.get("memberId")) != str(member_id):
                continue
            resources.append({**row, "roleName": role_map.get(row.get("roleId"))})
        return GatewayResult.success(resources, result.status_code, result.duration_ms)


resource_gateway = ResourceGateway()
