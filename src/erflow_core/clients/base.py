"""Base client for the assessment gateway's HTTP functions."""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from erflow_core.exceptions import (
    GatewayUnavailableError,
    InvalidGatewayResponseError,
    RateLimitedError,
)
from erflow_core.models import RateLimitBody
from erflow_core.utils import RateLimiter

logger = logging.getLogger(__name__)


class BaseServiceClient:
    """Base class for HTTP clients of the AI gateway's edge functions.

    Translates transport and HTTP failures into the gateway error taxonomy:
    - 429 → RateLimitedError (retry_after from Retry-After or the body)
    - transport errors, timeouts, 5xx → GatewayUnavailableError
    - other 4xx, non-JSON bodies → InvalidGatewayResponseError

    Usage:
        class TriageClient(BaseServiceClient):
            async def assess(self, body: dict) -> dict:
                return await self._post_json("triage-assessment", body)
    """

    functions_path = "/functions/v1"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize service client.

        Args:
            base_url: Gateway base URL (e.g., https://<project>.supabase.co)
            api_key: Key sent as bearer token and apikey header
            timeout: Request timeout in seconds (default: 30.0)
            rate_limiter: Optional local limiter checked before each request
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self._transport = transport

        logger.info(f"Initialized {self.__class__.__name__} with base_url={base_url}")

    def _url(self, function_name: str) -> str:
        return f"{self.base_url}{self.functions_path}/{function_name}"

    def _headers(self, correlation_id: Optional[str] = None) -> Dict[str, str]:
        """Generate request headers.

        Args:
            correlation_id: Optional correlation ID for request tracing

        Returns:
            Headers dict with auth and correlation headers
        """
        headers = {
            "Content-Type": "application/json",
        }

        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key

        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id

        return headers

    def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client instance with configured timeout.

        Returns:
            Configured AsyncClient ready for use with async context manager
        """
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _post_json(
        self,
        function_name: str,
        payload: Dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> Any:
        """POST a JSON body to one gateway function and decode the answer.

        Raises:
            RateLimitedError: Local limiter exhausted, or HTTP 429
            GatewayUnavailableError: Network failure, timeout or 5xx
            InvalidGatewayResponseError: Other 4xx or a non-JSON body
        """
        if self.rate_limiter is not None:
            self.rate_limiter.acquire(function_name)

        try:
            async with self._get_client() as client:
                response = await client.post(
                    self._url(function_name),
                    json=payload,
                    headers=self._headers(correlation_id=correlation_id),
                )
        except httpx.TransportError as e:
            logger.error(f"[Gateway] {function_name} unreachable: {e!r}")
            raise GatewayUnavailableError(f"{function_name} unreachable: {e}") from e

        return self._decode(function_name, response)

    @staticmethod
    def _decode(function_name: str, response: httpx.Response) -> Any:
        if response.status_code == 429:
            retry_after = _retry_after(response)
            logger.warning(f"[Gateway] {function_name} rate limited, retry after {retry_after}s")
            raise RateLimitedError(
                f"{function_name} rate limit exceeded. Please try again later.",
                retry_after=retry_after,
            )

        if response.status_code >= 500:
            logger.error(f"[Gateway] {function_name} failed with HTTP {response.status_code}")
            raise GatewayUnavailableError(
                f"{function_name} failed with HTTP {response.status_code}: {_error_text(response)}"
            )

        if response.status_code >= 400:
            raise InvalidGatewayResponseError(
                f"{function_name} rejected the request (HTTP {response.status_code}): "
                f"{_error_text(response)}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise InvalidGatewayResponseError(f"{function_name} returned a non-JSON body") from e


def _retry_after(response: httpx.Response) -> Optional[float]:
    header = response.headers.get("Retry-After")
    if header:
        try:
            return float(header)
        except ValueError:
            logger.warning(f"Unparseable Retry-After header: {header!r}")
    try:
        return RateLimitBody.model_validate(response.json()).retry_after
    except (ValueError, ValidationError):
        return None


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return str(body)[:200]
