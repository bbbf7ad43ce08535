"""
Shared HTTP gateway plumbing for platform services.

  - M2M client credentials with in-memory token cache + auto-refresh
  - Retry: max 2 retries on HTTP 5xx or network error, short backoff
  - 4xx responses are returned immediately (401 evicts the token once)
  - Timeout: GATEWAY_TIMEOUT seconds per attempt (default 5)
  - Structured GatewayResult returned to services; gateways never raise

Only the M2M token is cached. Role and challenge lookups are re-fetched on
every call.

Testability: pass a mock `session` (and optionally a `token_provider`) to
the gateway constructor instead of letting it create a real
requests.Session internally.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any

import requests
from flask import current_app

logger = logging.getLogger(__name__)

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [0.25, 1.0]   # sleep[0] after 1st fail, sleep[1] after 2nd

# ── Default request timeout (overridden by GATEWAY_TIMEOUT) ────────────────
_DEFAULT_TIMEOUT = 5.0

# Tokens are treated as expired this long before their real expiry
_TOKEN_EXPIRY_MARGIN_SECONDS = 60


class GatewayResult:
    """Structured return value from gateway calls.

    Attributes:
        ok:             True if the call succeeded (HTTP 2xx + no exception).
        status_code:    HTTP status code (None if network-level failure).
        data:           Parsed JSON response body (dict or list), else None.
        error:          Human-readable error message or None.
        duration_ms:    Round-trip latency of the last attempt in milliseconds.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: Any,
        error: str | None,
        duration_ms: int = 0,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms

    @classmethod
    def success(cls, data: Any, status_code: int | None = 200, duration_ms: int = 0) -> "GatewayResult":
        return cls(True, status_code, data, None, duration_ms)

    @classmethod
    def failure(cls, error: str, status_code: int | None = None, duration_ms: int = 0) -> "GatewayResult":
        return cls(False, status_code, None, error, duration_ms)

    @property
    def not_found(self) -> bool:
        return not self.ok and self.status_code == 404

    def __repr__(self):
        return f"<GatewayResult ok={self.ok} status={self.status_code} error={self.error!r}>"


def _timeout() -> float:
    return float(current_app.config.get("GATEWAY_TIMEOUT", _DEFAULT_TIMEOUT))


class M2MTokenProvider:
    """OAuth2 client-credentials token cache for service-to-service calls."""

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session: requests.Session | None = session
        # audience → {"access_token": str, "expires_at": datetime}
        self._token_cache: dict[str, dict] = {}

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _get_cached_token(self, audience: str) -> str | None:
        entry = self._token_cache.get(audience)
        if not entry:
            return None
        margin = timedelta(seconds=_TOKEN_EXPIRY_MARGIN_SECONDS)
        if datetime.now(timezone.utc) >= entry["expires_at"] - margin:
            return None
        return entry["access_token"]

    def get_token(self) -> str:
        """Return a valid M2M access token, fetching one if needed.

        Raises:
            requests.RequestException: If the token endpoint is unreachable
                or answers non-2xx.
            ValueError: If credentials are not configured or the response
                is missing access_token.
        """
        cfg = current_app.config
        audience = cfg.get("M2M_AUTH_AUDIENCE") or ""
        cached = self._get_cached_token(audience)
        if cached:
            return cached

        client_id = cfg.get("M2M_CLIENT_ID")
        client_secret = cfg.get("M2M_CLIENT_SECRET")
        if not client_id or not client_secret:
            raise ValueError("M2M_CLIENT_ID / M2M_CLIENT_SECRET are not configured")

        logger.info("Fetching M2M token audience=%s", audience)
        resp = self.session.post(
            cfg["M2M_AUTH_URL"],
            json={
                "grant_type": "client_credentials",
                "client_id": client_id,
                "client_secret": client_secret,
                "audience": audience,
            },
            timeout=_timeout(),
        )
        resp.raise_for_status()
        body = resp.json()

        access_token = body.get("access_token")
        if not access_token:
            raise ValueError("M2M token response missing access_token")

        expires_in = int(body.get("expires_in", 3600))
        self._token_cache[audience] = {
            "access_token": access_token,
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        return access_token

    def invalidate(self) -> None:
        """Evict cached tokens; next call re-fetches from the token endpoint."""
        self._token_cache.clear()


# Module-level singleton shared by all gateways
m2m_token_provider = M2MTokenProvider()


class ServiceGateway:
    """Base class for authenticated JSON gateways.

    Subclasses set ``service_name`` (used in logs) and build URLs from
    app config at call time.
    """

    service_name = "service"

    def __init__(
        self,
        session: requests.Session | None = None,
        token_provider: M2MTokenProvider | None = None,
    ) -> None:
        self._session: requests.Session | None = session
        self._token_provider = token_provider

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @property
    def token_provider(self) -> M2MTokenProvider:
        return self._token_provider or m2m_token_provider

    def request(
        self,
        method: str,
        url: str,
        *,
        json_body: dict | list | None = None,
        params: dict | None = None,
    ) -> GatewayResult:
        """Execute an authenticated request with retries.

        Implements:
          1. M2M token injection.
          2. 2xx → success result with parsed JSON body.
          3. 401 → evict token and retry once immediately.
          4. Other 4xx → failure result, no retry.
          5. 5xx / timeout / connection error → retry up to _RETRY_MAX times
             with backoff, then failure result.

        Returns:
            GatewayResult. Never raises; callers check .ok.
        """
        timeout = _timeout()
        token_refreshed = False
        last_error = "Unknown error"
        last_status: int | None = None
        duration_ms = 0

        for attempt in range(_RETRY_MAX + 1):
            try:
                token = self.token_provider.get_token()
                headers = {
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                }
                kwargs: dict[str, Any] = {"headers": headers, "timeout": timeout}
                if json_body is not None:
                    kwargs["json"] = json_body
                if params:
                    kwargs["params"] = params

                t0 = time.perf_counter()
                resp = self.session.request(method, url, **kwargs)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.status_code == 401 and not token_refreshed:
                    self.token_provider.invalidate()
                    token_refreshed = True
                    continue

                if resp.ok:
                    try:
                        data = resp.json() if resp.content else {}
                    except ValueError:
                        data = {}
                    return GatewayResult.success(data, resp.status_code, duration_ms)

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                if resp.status_code < 500:
                    logger.info(
                        "%s request rejected status=%d url=%s",
                        self.service_name, resp.status_code, url,
                    )
                    return GatewayResult.failure(last_error, resp.status_code, duration_ms)

                logger.warning(
                    "%s request failed attempt=%d/%d status=%d url=%s",
                    self.service_name, attempt + 1, _RETRY_MAX + 1, resp.status_code, url,
                    extra={"service": self.service_name},
                )

            except ValueError as exc:
                # Misconfigured credentials or malformed token response
                logger.error("%s token error: %s", self.service_name, exc)
                return GatewayResult.failure(str(exc))

            except requests.Timeout:
                last_status = None
                last_error = f"Request timed out after {timeout}s"
                logger.warning(
                    "%s request timed out attempt=%d/%d url=%s",
                    self.service_name, attempt + 1, _RETRY_MAX + 1, url,
                    extra={"service": self.service_name},
                )

            except requests.RequestException as exc:
                last_status = getattr(getattr(exc, "response", None), "status_code", None)
                last_error = str(exc)[:500]
                if last_status is not None and last_status < 500:
                    # Token endpoint refused the credentials
                    logger.error("%s token request rejected: %s", self.service_name, last_error)
                    return GatewayResult.failure(last_error, last_status)
                logger.warning(
                    "%s network error attempt=%d/%d url=%s error=%s",
                    self.service_name, attempt + 1, _RETRY_MAX + 1, url, last_error,
                    extra={"service": self.service_name},
                )

            if attempt < _RETRY_MAX:
                sleep_s = _RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)]
                time.sleep(sleep_s)

        return GatewayResult.failure(last_error, last_status, duration_ms)
