"""
HTTP Data Fetcher

Request policy in front of a transport collaborator:
- Base URL joining, default headers, query parameter cleanup
- Request / response / error interceptors (sync or async)
- HTTP status and business status validation
- Raw pass-through for text / blob / arrayBuffer responses
"""

import inspect
import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Protocol, Set

import httpx

from ..config import ResponseFormat, RuntimeConfig
from ..core.path import PathResolver
from ..exceptions.errors import RequestError
from ..expression.builtins import to_plain
from ..expression.values import to_js_string

logger = logging.getLogger(__name__)

RAW_RESPONSE_TYPES = ("text", "blob", "arrayBuffer")


@dataclass
class RequestConfig:
    """Evaluated request description handed to the transport"""

    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    params: Optional[Dict[str, Any]] = None
    body: Any = None
    response_type: Optional[str] = None
    ignore_base_url: bool = False
    request_id: Optional[str] = None


@dataclass
class TransportResponse:
    """Settled transport response"""

    status: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    reason: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400


@dataclass
class FetchResult:
    """
    Outcome of a fetch

    Attributes:
        success: Transport and business status both succeeded
        data: Extracted payload (business data field or response_data_path)
        error: Failure cause
        status: HTTP status when a response arrived
        response: Full decoded response body
    """

    success: bool
    data: Any = None
    error: Optional[Exception] = None
    status: Optional[int] = None
    response: Any = None


class Transport(Protocol):
    """HTTP transport collaborator"""

    async def request(self, config: RequestConfig) -> TransportResponse: ...


class HttpxTransport:
    """
    Transport backed by httpx.AsyncClient

    Args:
        client: Shared client; a short-lived client is opened per request when omitted
        timeout: Request timeout in seconds for short-lived clients
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self._client = client
        self.timeout = timeout

    async def request(self, config: RequestConfig) -> TransportResponse:
        if self._client is not None:
            return await self._send(self._client, config)
        async with httpx.AsyncClient(timeout=self.timeout, trust_env=False) as client:
            return await self._send(client, config)

    async def _send(self, client: httpx.AsyncClient, config: RequestConfig) -> TransportResponse:
        kwargs: Dict[str, Any] = {"headers": config.headers}
        if config.params:
            kwargs["params"] = config.params
        if config.body is not None and config.method not in ("GET", "HEAD"):
            if isinstance(config.body, (str, bytes)):
                kwargs["content"] = config.body
            else:
                kwargs["content"] = json.dumps(to_plain(config.body), ensure_ascii=False)

        response = await client.request(config.method, config.url, **kwargs)
        return TransportResponse(
            status=response.status_code,
            data=self._decode(response, config.response_type),
            headers=dict(response.headers),
            reason=response.reason_phrase,
        )

    @staticmethod
    def _decode(response: httpx.Response, response_type: Optional[str]) -> Any:
        if response_type in ("blob", "arrayBuffer"):
            return response.content
        if response_type == "text":
            return response.text
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type and response.content:
            return response.json()
        return response.text


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class DataFetcher:
    """
    Data fetcher

    Applies the runtime request policy and turns every outcome into a
    FetchResult; transport failures never raise.
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        transport: Optional[Transport] = None,
    ):
        self.config = config or RuntimeConfig()
        self.transport = transport or HttpxTransport(timeout=self.config.request_timeout)
        self._in_flight: Set[str] = set()

    def configure(self, config: RuntimeConfig) -> None:
        self.config = config

    @property
    def response_format(self) -> ResponseFormat:
        return self.config.response_format

    def is_loading(self, request_id: Optional[str] = None) -> bool:
        """Whether a request is in flight; any request when no id is given"""
        if request_id is not None:
            return request_id in self._in_flight
        return bool(self._in_flight)

    # -- Request building -------------------------------------------------

    def build_url(self, url: str, ignore_base_url: bool = False) -> str:
        base = self.config.base_url
        if not base or ignore_base_url or url.startswith(("http://", "https://")):
            return url
        return base.rstrip("/") + "/" + url.lstrip("/")

    def build_request(self, request: RequestConfig) -> RequestConfig:
        """Apply base URL, default headers and parameter cleanup"""
        headers = {key: str(value) for key, value in self.config.default_headers.items()}
        headers.update({key: to_js_string(value) for key, value in (request.headers or {}).items()})
        if request.body is not None and not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "application/json"

        params = None
        if request.params:
            params = {
                key: to_js_string(value)
                for key, value in request.params.items()
                if value is not None
            }

        return replace(
            request,
            url=self.build_url(request.url, request.ignore_base_url),
            method=(request.method or "GET").upper(),
            headers=headers,
            params=params or None,
        )

    # -- Fetch -------------------------------------------------------------

    async def fetch(self, request: RequestConfig) -> FetchResult:
        """
        Execute a request

        Args:
            request: Evaluated request (templates already resolved)

        Returns:
            FetchResult; failures carry a RequestError or the interceptor's error
        """
        request_id = request.request_id or uuid.uuid4().hex
        self._in_flight.add(request_id)
        try:
            return await self._fetch(request)
        finally:
            self._in_flight.discard(request_id)

    async def _fetch(self, request: RequestConfig) -> FetchResult:
        config = self.build_request(request)

        if self.config.request_interceptor is not None:
            try:
                config = await _maybe_await(self.config.request_interceptor(config))
            except Exception as e:
                logger.warning(f"Request interceptor failed: {e}")
                return FetchResult(success=False, error=e)

        logger.debug(f"{config.method} {config.url}")
        try:
            response = await self.transport.request(config)
        except Exception as e:
            error = RequestError(f"Request failed: {e}", {"url": config.url})
            error.__cause__ = e
            return await self._fail(error)

        if not response.ok:
            error = RequestError(
                f"HTTP {response.status}: {response.reason}".rstrip(": "),
                {"status": response.status, "response": response.data},
            )
            return await self._fail(error, response.status, response.data)

        data = response.data
        if config.response_type in RAW_RESPONSE_TYPES:
            return FetchResult(success=True, data=data, status=response.status, response=data)

        if self.config.response_interceptor is not None:
            try:
                data = await _maybe_await(self.config.response_interceptor(data))
            except Exception as e:
                return FetchResult(success=False, error=e, status=response.status, response=data)

        return await self._validate(data, response.status)

    async def _validate(self, data: Any, status: int) -> FetchResult:
        policy = self.response_format
        if isinstance(data, dict) and data.get(policy.code_field) is not None:
            code = data[policy.code_field]
            if not policy.is_success_code(code):
                message = data.get(policy.msg_field) or "Request failed"
                error = RequestError(
                    str(message), {"status": status, "code": code, "response": data}
                )
                return await self._fail(error, status, data)
            return FetchResult(
                success=True, data=data.get(policy.data_field), status=status, response=data
            )

        return FetchResult(
            success=True, data=self._extract(data), status=status, response=data
        )

    def _extract(self, data: Any) -> Any:
        path = self.config.response_data_path
        if not path or data is None:
            return data
        return PathResolver.get(data, path)

    async def _fail(
        self, error: Exception, status: Optional[int] = None, response: Any = None
    ) -> FetchResult:
        logger.debug(f"Fetch failed: {error}")
        if self.config.error_interceptor is not None:
            try:
                await _maybe_await(self.config.error_interceptor(error))
            except Exception as e:
                error = e
        return FetchResult(success=False, error=error, status=status, response=response)
