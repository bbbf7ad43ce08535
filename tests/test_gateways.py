"""
Gateway tests — mock requests session / boto3 client, no network.

Covers:
    - ServiceGateway.request: retry on 5xx and network errors only,
      immediate return on 4xx, single token refresh on 401, never raises
    - M2MTokenProvider: client-credentials POST, per-audience cache,
      refresh inside the expiry margin, missing credentials
    - ChallengeGateway / ResourceGateway / MemberGateway / EventBusGateway
      request shapes and payload handling
    - StorageGateway: S3 error mapping to GatewayResult
"""

import io
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests
from botocore.exceptions import ClientError, EndpointConnectionError

from review_api.integrations.challenge_gateway import ChallengeGateway
from review_api.integrations.event_bus_gateway import EMAIL_TOPIC, EventBusGateway
from review_api.integrations.gateway import M2MTokenProvider, ServiceGateway
from review_api.integrations.member_gateway import MemberGateway
from review_api.integrations.resource_gateway import ResourceGateway
from review_api.integrations.storage_gateway import StorageGateway


def _resp(status=200, body=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.content = b"x" if body is not None else b""
    resp.json.return_value = body
    resp.text = text or str(body)
    return resp


def _token_provider(token="m2m-token"):
    provider = MagicMock()
    provider.get_token.return_value = token
    return provider


@pytest.fixture()
def no_sleep():
    with patch("review_api.integrations.gateway.time.sleep") as sleep:
        yield sleep


def _gateway(cls=ServiceGateway, responses=None, side_effect=None, provider=None):
    session = MagicMock()
    if responses is not None:
        session.request.side_effect = responses
    if side_effect is not None:
        session.request.side_effect = side_effect
    return cls(session=session, token_provider=provider or _token_provider()), session


# ═════════════════════════════════════════════════════════════════════════════
# Retry policy
# ═════════════════════════════════════════════════════════════════════════════


class TestRequestRetry:
    def test_success_injects_bearer_token(self, no_sleep):
        gw, session = _gateway(responses=[_resp(200, {"id": "c1"})])
        result = gw.request("GET", "http://svc/c1")
        assert result.ok
        assert result.data == {"id": "c1"}
        headers = session.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer m2m-token"
        no_sleep.assert_not_called()

    def test_retries_5xx_then_succeeds(self, no_sleep):
        gw, session = _gateway(responses=[_resp(503), _resp(502), _resp(200, {"ok": True})])
        result = gw.request("GET", "http://svc/x")
        assert result.ok
        assert session.request.call_count == 3
        assert [c.args[0] for c in no_sleep.call_args_list] == [0.25, 1.0]

    def test_gives_up_after_two_retries(self, no_sleep):
        gw, session = _gateway(responses=[_resp(500, text="boom")] * 3)
        result = gw.request("GET", "http://svc/x")
        assert not result.ok
        assert result.status_code == 500
        assert session.request.call_count == 3

    @pytest.mark.parametrize("status", [400, 403, 404, 409])
    def test_4xx_is_not_retried(self, no_sleep, status):
        gw, session = _gateway(responses=[_resp(status, text="nope")])
        result = gw.request("GET", "http://svc/x")
        assert not result.ok
        assert result.status_code == status
        assert session.request.call_count == 1
        no_sleep.assert_not_called()

    def test_404_is_not_found(self, no_sleep):
        gw, _ = _gateway(responses=[_resp(404)])
        assert gw.request("GET", "http://svc/x").not_found

    def test_401_refreshes_token_once(self, no_sleep):
        provider = _token_provider()
        gw, session = _gateway(responses=[_resp(401), _resp(200, {"a": 1})], provider=provider)
        result = gw.request("GET", "http://svc/x")
        assert result.ok
        provider.invalidate.assert_called_once()
        assert session.request.call_count == 2
        no_sleep.assert_not_called()

    def test_second_401_is_returned(self, no_sleep):
        provider = _token_provider()
        gw, session = _gateway(responses=[_resp(401), _resp(401)], provider=provider)
        result = gw.request("GET", "http://svc/x")
        assert result.status_code == 401
        assert session.request.call_count == 2
        provider.invalidate.assert_called_once()

    def test_network_error_is_retried(self, no_sleep):
        gw, session = _gateway(side_effect=[requests.ConnectionError("reset"), _resp(200, {})])
        assert gw.request("GET", "http://svc/x").ok
        assert session.request.call_count == 2

    def test_timeouts_exhaust_to_failure(self, no_sleep):
        gw, session = _gateway(side_effect=requests.Timeout("slow"))
        result = gw.request("GET", "http://svc/x")
        assert not result.ok
        assert result.status_code is None
        assert "timed out" in result.error
        assert session.request.call_count == 3

    def test_token_value_error_is_failure_without_retry(self, no_sleep):
        provider = MagicMock()
        provider.get_token.side_effect = ValueError("M2M_CLIENT_ID / M2M_CLIENT_SECRET are not configured")
        gw, session = _gateway(provider=provider)
        result = gw.request("GET", "http://svc/x")
        assert not result.ok
        session.request.assert_not_called()
        no_sleep.assert_not_called()

    def test_token_endpoint_rejection_is_not_retried(self, no_sleep):
        provider = MagicMock()
        error = requests.HTTPError("401 Client Error")
        error.response = _resp(401)
        provider.get_token.side_effect = error
        gw, session = _gateway(provider=provider)
        result = gw.request("GET", "http://svc/x")
        assert result.status_code == 401
        assert provider.get_token.call_count == 1
        no_sleep.assert_not_called()

    def test_empty_body_is_empty_dict(self, no_sleep):
        gw, _ = _gateway(responses=[_resp(204)])
        result = gw.request("POST", "http://svc/x", json_body={"a": 1})
        assert result.ok
        assert result.data == {}


# ═════════════════════════════════════════════════════════════════════════════
# Token provider
# ═════════════════════════════════════════════════════════════════════════════


class TestM2MTokenProvider:
    def test_fetches_and_caches(self, app):
        session = MagicMock()
        session.post.return_value = _resp(200, {"access_token": "tok-1", "expires_in": 3600})
        provider = M2MTokenProvider(session=session)

        assert provider.get_token() == "tok-1"
        assert provider.get_token() == "tok-1"
        assert session.post.call_count == 1
        body = session.post.call_args.kwargs["json"]
        assert body["grant_type"] == "client_credentials"
        assert body["client_id"] == "test-client"
        assert body["audience"] == app.config["M2M_AUTH_AUDIENCE"]

    def test_refetches_inside_expiry_margin(self):
        session = MagicMock()
        session.post.side_effect = [
            _resp(200, {"access_token": "tok-1", "expires_in": 30}),
            _resp(200, {"access_token": "tok-2", "expires_in": 3600}),
        ]
        provider = M2MTokenProvider(session=session)
        assert provider.get_token() == "tok-1"
        assert provider.get_token() == "tok-2"

    def test_invalidate_clears_cache(self):
        session = MagicMock()
        session.post.return_value = _resp(200, {"access_token": "tok", "expires_in": 3600})
        provider = M2MTokenProvider(session=session)
        provider.get_token()
        provider.invalidate()
        provider.get_token()
        assert session.post.call_count == 2

    def test_expired_entry_is_ignored(self, app):
        provider = M2MTokenProvider(session=MagicMock())
        provider._token_cache[app.config["M2M_AUTH_AUDIENCE"]] = {
            "access_token": "old",
            "expires_at": datetime.now(timezone.utc) - timedelta(seconds=1),
        }
        provider.session.post.return_value = _resp(200, {"access_token": "new"})
        assert provider.get_token() == "new"

    def test_missing_credentials(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "M2M_CLIENT_SECRET", None)
        with pytest.raises(ValueError):
            M2MTokenProvider(session=MagicMock()).get_token()

    def test_missing_access_token(self):
        session = MagicMock()
        session.post.return_value = _resp(200, {"token_type": "Bearer"})
        with pytest.raises(ValueError):
            M2MTokenProvider(session=session).get_token()


# ═════════════════════════════════════════════════════════════════════════════
# Service gateways
# ═════════════════════════════════════════════════════════════════════════════


class TestChallengeGateway:
    def test_url_and_payload(self, no_sleep):
        gw, session = _gateway(ChallengeGateway, responses=[_resp(200, {"id": "c1", "status": "ACTIVE"})])
        result = gw.get_challenge("c1")
        assert result.data["status"] == "ACTIVE"
        assert session.request.call_args.args == ("GET", "http://localhost:4000/challenges/c1")

    def test_non_dict_payload_is_failure(self, no_sleep):
        gw, _ = _gateway(ChallengeGateway, responses=[_resp(200, ["unexpected"])])
        assert not gw.get_challenge("c1").ok


class TestResourceGateway:
    def test_joins_role_names_and_filters_member(self, no_sleep):
        roles = _resp(200, [{"id": "r-sub", "name": "Submitter"}, {"id": "r-cop", "name": "Copilot"}])
        resources = _resp(200, [
            {"id": "res-1", "memberId": "1001", "roleId": "r-sub"},
            {"id": "res-2", "memberId": 1001, "roleId": "r-cop"},
            {"id": "res-3", "memberId": "2002", "roleId": "r-cop"},
        ])
        gw, session = _gateway(ResourceGateway, responses=[roles, resources])

        result = gw.get_member_resources_roles("chal-1", "1001")

        assert [r["roleName"] for r in result.data] == ["Submitter", "Copilot"]
        second = session.request.call_args_list[1]
        assert second.args[1].endswith("/resources")
        assert second.kwargs["params"] == {"challengeId": "chal-1", "memberId": "1001"}

    def test_roles_failure_short_circuits(self, no_sleep):
        gw, session = _gateway(ResourceGateway, responses=[_resp(403)])
        assert not gw.get_member_resources_roles("chal-1").ok
        assert session.request.call_count == 1


class TestMemberGateway:
    def test_ids_are_bracketed(self, no_sleep):
        gw, session = _gateway(MemberGateway, responses=[_resp(200, [{"userId": 1, "email": "a@x"}])])
        result = gw.get_user_emails(["1", 2])
        assert result.ok
        assert session.request.call_args.kwargs["params"]["userIds"] == "[1,2]"

    def test_empty_ids_make_no_call(self, no_sleep):
        gw, session = _gateway(MemberGateway)
        assert gw.get_user_emails([]).data == []
        session.request.assert_not_called()


class TestEventBusGateway:
    def test_send_email_envelope(self, no_sleep, app):
        gw, session = _gateway(EventBusGateway, responses=[_resp(202, {})])
        result = gw.send_email("d-tpl", ["a@example.com"], {"handle": "alice"})
        assert result.ok
        event = session.request.call_args.kwargs["json"]
        assert event["topic"] == EMAIL_TOPIC
        assert event["originator"] == "review-api"
        assert event["payload"]["sendgrid_template_id"] == "d-tpl"
        assert event["payload"]["recipients"] == ["a@example.com"]
        assert event["payload"]["from"] == {"email": app.config["EMAIL_FROM"]}

    def test_unexpected_2xx_is_failure(self, no_sleep):
        gw, _ = _gateway(EventBusGateway, responses=[_resp(201, {})])
        assert not gw.post_event("topic", {}).ok


class TestStorageGateway:
    def _client_error(self, code, status):
        return ClientError(
            {"Error": {"Code": code, "Message": "msg"}, "ResponseMetadata": {"HTTPStatusCode": status}},
            "GetObject",
        )

    def test_get_object(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(b"data"), "ContentType": "application/zip",
                                          "ContentLength": 4}
        result = StorageGateway(client=client).get_object("bucket", "key")
        assert result.ok
        assert result.data["content_type"] == "application/zip"
        client.get_object.assert_called_once_with(Bucket="bucket", Key="key")

    def test_missing_key_is_not_found(self):
        client = MagicMock()
        client.get_object.side_effect = self._client_error("NoSuchKey", 404)
        assert StorageGateway(client=client).get_object("bucket", "key").not_found

    def test_access_denied_keeps_status(self):
        client = MagicMock()
        client.put_object.side_effect = self._client_error("AccessDenied", 403)
        result = StorageGateway(client=client).put_object("bucket", "key", b"x")
        assert result.status_code == 403
        assert not result.not_found

    def test_connection_error_is_failure(self):
        client = MagicMock()
        client.delete_object.side_effect = EndpointConnectionError(endpoint_url="https://s3")
        result = StorageGateway(client=client).delete_object("bucket", "key")
        assert not result.ok
        assert result.status_code is None

    def test_put_passes_metadata(self):
        client = MagicMock()
        StorageGateway(client=client).put_object("b", "k", b"x", content_type="text/plain",
                                                 metadata={"artifactid": "a1"})
        client.put_object.assert_called_once_with(
            Bucket="b", Key="k", Body=b"x", ContentType="text/plain", Metadata={"artifactid": "a1"},
        )
