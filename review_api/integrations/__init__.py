"""review_api.integrations — External service gateway modules.

All outbound calls to platform services and object storage go through a
gateway in this package, never via bare `requests` or `boto3` calls in
services or blueprints.

Every HTTP call is:
  - Authenticated with a cached M2M client-credentials token
  - Bounded by GATEWAY_TIMEOUT and retried on 5xx / network errors only
  - Returned as a GatewayResult (gateways never raise)

Current gateways:
  challenge_gateway.ChallengeGateway     — challenge detail lookup
  resource_gateway.ResourceGateway       — challenge resource roles
  member_gateway.MemberGateway           — member e-mail lookup
  event_bus_gateway.EventBusGateway      — e-mail notifications via the bus
  storage_gateway.StorageGateway         — S3 object storage (boto3)
"""
