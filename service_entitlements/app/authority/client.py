"""
Client for the remote entitlement authority.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.errors import AuthorityRejectedError, AuthorityUnavailableError
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, retry_on_exception
from ..access.models import AccessRecord, Provenance


TRANSPORT_ERRORS = (httpx.TransportError,)
UNREACHABLE_ERRORS = (RetryError, CircuitBreakerOpenException) + TRANSPORT_ERRORS


class AuthorityClient:
    """Client for communicating with the entitlement authority.

    Every call ends in exactly one of three ways: a parsed success payload,
    :class:`AuthorityRejectedError` (the authority answered but not with a
    usable success), or :class:`AuthorityUnavailableError` (transport failure,
    timeout, exhausted retries or an open circuit).
    """

    def __init__(self,
                 base_url: str,
                 timeout: float = 10.0,
                 retry_config: Optional[RetryConfig] = None,
                 circuit_breaker: Optional[CircuitBreaker] = None,
                 metrics: Optional[MetricsCollector] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("entitlements.authority.client")
        self.metrics = metrics

        self.retry_config = retry_config or RetryConfig(
            max_attempts=2,
            base_delay=0.25,
            max_delay=2.0,
            exponential_base=2.0,
            jitter=True
        )

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exception=(RetryError,) + TRANSPORT_ERRORS,
            name="entitlement_authority"
        )

    async def get_access(self, user_id: str) -> AccessRecord:
        """GET /access/{user_id} parsed into an AccessRecord."""
        data = await self._request("get_access", "GET", f"/access/{quote(user_id, safe='')}")

        try:
            record = AccessRecord.model_validate(data)
        except PydanticValidationError as e:
            self._record("get_access", "rejected")
            self.logger.warning("Authority returned malformed access record", user_id=user_id, error=str(e))
            raise AuthorityRejectedError("Malformed access record", status_code=200, body=data)

        return record.with_provenance(Provenance.AUTHORITY)

    async def redeem_beta_code(self, code: str, user_id: str, email: Optional[str]) -> Dict[str, Any]:
        return await self._request(
            "redeem_beta_code",
            "POST",
            "/redeem-beta-code",
            json={"code": code, "user_id": user_id, "email": email}
        )

    async def start_trial(self, user_id: str) -> Dict[str, Any]:
        return await self._request("start_trial", "POST", "/start-trial", json={"user_id": user_id})

    async def create_checkout_session(self,
                                      plan_id: str,
                                      user_id: str,
                                      email: Optional[str],
                                      success_url: Optional[str] = None,
                                      cancel_url: Optional[str] = None,
                                      coupon_id: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "plan_id": plan_id,
            "user_id": user_id,
            "email": email,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if coupon_id:
            payload["coupon_id"] = coupon_id

        return await self._request("create_checkout_session", "POST", "/create-checkout-session", json=payload)

    async def _request(self, operation: str, method: str, path: str,
                       json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"

        @retry_on_exception(TRANSPORT_ERRORS, config=self.retry_config)
        async def _send() -> httpx.Response:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                return await client.request(method, url, json=json)

        try:
            response = await self.circuit_breaker.call(_send)
        except UNREACHABLE_ERRORS as exc:
            cause = exc.last_exception if isinstance(exc, RetryError) else exc
            self._record(operation, "unavailable")
            self.logger.warning("Entitlement authority unreachable", operation=operation, error=str(cause))
            raise AuthorityUnavailableError(details={"operation": operation, "error": str(cause)})

        body = _json_body(response)

        if not response.is_success or body is None:
            self._record(operation, "rejected")
            self.logger.warning(
                "Entitlement authority rejected request",
                operation=operation,
                status_code=response.status_code,
                body=response.text[:500]
            )
            raise AuthorityRejectedError(
                message=(body or {}).get("error") or f"Authority returned {response.status_code}",
                status_code=response.status_code,
                body=body
            )

        self._record(operation, "ok")
        return body

    def _record(self, operation: str, outcome: str):
        if self.metrics:
            self.metrics.record_authority_request(operation, outcome)


def _json_body(response: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None
