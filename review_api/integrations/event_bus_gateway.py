"""
Event bus gateway — posts platform events, including e-mail requests.

Envelope posted to BUS_API_URL:
    {
        "topic": "external.action.email",
        "originator": "review-api",
        "timestamp": "<ISO-8601>",
        "mime-type": "application/json",
        "payload": {...}
    }

E-mail payload:
    {
        "data": {...template data...},
        "from": {"email": EMAIL_FROM},
        "version": "v3",
        "sendgrid_template_id": "<template>",
        "recipients": ["a@example.com", ...]
    }
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app

from review_api.integrations.gateway import GatewayResult, ServiceGateway

logger = logging.getLogger(__name__)

EMAIL_TOPIC = "external.action.email"
ORIGINATOR = "review-api"

# The bus acknowledges with one of these
_ACCEPTED_STATUSES = frozenset({200, 202, 204})


class EventBusGateway(ServiceGateway):
    service_name = "event-bus"

    def post_event(self, topic: str, payload: dict) -> GatewayResult:
        event = {
            "topic": topic,
            "originator": ORIGINATOR,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "mime-type": "application/json",
            "payload": payload,
        }
        result = self.request("POST", current_app.config["BUS_API_URL"], json_body=event)
        if result.ok and result.status_code not in _ACCEPTED_STATUSES:
            return GatewayResult.failure(
                f"Event bus answered HTTP {result.status_code}", result.status_code, result.duration_ms
            )
        return result

    def send_email(self, template_id: str, recipients: list[str], data: dict) -> GatewayResult:
        """Queue one templated e-mail to ``recipients``."""
        payload = {
            "data": data,
            "from": {"email": current_app.config["EMAIL_FROM"]},
            "version": "v3",
            "sendgrid_template_id": template_id,
            "recipients": list(recipients),
        }
        result = self.post_event(EMAIL_TOPIC, payload)
        if result.ok:
            logger.info("E-mail queued template=%s recipients=%d", template_id, len(recipients))
        return result


event_bus_gateway = EventBusGateway()
