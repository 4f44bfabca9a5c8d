from __future__ import annotations
from typing import Any, Mapping
from json import JSONDecodeError
from logging import getLogger
from time import perf_counter
import httpx
from gateway.config.upstream import upstream
from gateway.interfaces.operation import Operation, ExecutionResult


logger = getLogger(__name__)

DEFAULT_HEADERS = {
    "content-type": "application/json",
    "accept": "application/json",
    "accept-encoding": "gzip, deflate, br",
}

# Owned by the HTTP client, never copied from the inbound request
EXCLUDED_HEADERS = frozenset(
    (
        "host",
        "content-length",
        "connection",
        "keep-alive",
        "transfer-encoding",
        "te",
        "trailer",
        "upgrade",
        "proxy-authorization",
        "proxy-authenticate",
    )
)


class UpstreamError(Exception):
    code = "UPSTREAM_ERROR"


class UpstreamConnectionError(UpstreamError):
    pass


class UpstreamTimeoutError(UpstreamError):
    code = "UPSTREAM_TIMEOUT"


class UpstreamResponseError(UpstreamError):
    pass


def forwardable_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return dict(DEFAULT_HEADERS)
    forwarded = {
        key.lower(): value
        for key, value in headers.items()
        if key.lower() not in EXCLUDED_HEADERS
    }
    # The body is always JSON regardless of how the client talked to us
    forwarded["content-type"] = "application/json"
    # The reply is decoded here, not by the client, so only offer what httpx can decode
    forwarded["accept-encoding"] = DEFAULT_HEADERS["accept-encoding"]
    return forwarded


# -------------------------------------------------------------------------------------------
# REMOTE EXECUTOR
# -------------------------------------------------------------------------------------------
class RemoteExecutor:
    """One-shot transport adapter: Operation in, ExecutionResult out.

    Serves both live traffic (with the caller's headers) and introspection
    (with no caller, so the default JSON headers are sent). There is no retry,
    caching or batching here; every call is exactly one POST to `url`.
    """

    url: str
    timeout: float | None
    _client: httpx.AsyncClient | None

    def __init__(
        self,
        url: str = "",
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def execute(
        self, operation: Operation, headers: Mapping[str, str] | None = None
    ) -> ExecutionResult:
        body = {
            "query": operation.query,
            "variables": dict(operation.variables),
            "operationName": operation.operation_name,
            "extensions": dict(operation.extensions),
        }
        logger.info(
            "outgoing query",
            extra={
                "event": "outgoing-query",
                "query": body["query"],
                "variables": body["variables"],
                "operationName": body["operationName"],
                "extensions": body["extensions"],
            },
        )
        start_time = perf_counter()
        try:
            response = await self.client.post(
                self.url, json=body, headers=forwardable_headers(headers)
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                f"Upstream did not respond within {self.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamConnectionError(f"Upstream request failed: {e}") from e
        finally:
            duration = (perf_counter() - start_time) * 1000
            logger.info(
                "duration: %dms",
                duration,
                extra={"event": "call-duration", "duration_ms": round(duration, 3)},
            )
        return self._decode(response)

    @staticmethod
    def _decode(response: httpx.Response) -> ExecutionResult:
        try:
            payload: Any = response.json()
        except (JSONDecodeError, UnicodeDecodeError) as e:
            raise UpstreamResponseError(
                f"Upstream returned a non-JSON response (status {response.status_code})"
            ) from e
        is_result = isinstance(payload, dict) and ("data" in payload or "errors" in payload)
        if not is_result:
            raise UpstreamResponseError(
                f"Upstream returned an unexpected payload (status {response.status_code})"
            )
        # GraphQL-over-HTTP servers report request errors with 4xx plus a result body
        return ExecutionResult.from_json(payload)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


upstream_executor = RemoteExecutor(
    url=str(upstream.UPSTREAM_URL),
    timeout=upstream.UPSTREAM_TIMEOUT,
)
