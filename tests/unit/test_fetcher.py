"""
DataFetcher Unit Tests

Requests are served by httpx.MockTransport; no network access.
"""

import asyncio
import json

import httpx
import pytest

from vschema.config import ResponseFormat, RuntimeConfig
from vschema.exceptions.errors import RequestError
from vschema.executor.fetcher import DataFetcher, HttpxTransport, RequestConfig


def make_fetcher(handler, **config_kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DataFetcher(RuntimeConfig(**config_kwargs), HttpxTransport(client=client))


class TestBuildRequest:
    """Test request policy"""

    def test_base_url_join(self):
        """Test slash handling"""
        fetcher = DataFetcher(RuntimeConfig(base_url="https://api.test/v1/"))
        assert fetcher.build_url("/users") == "https://api.test/v1/users"
        assert fetcher.build_url("users") == "https://api.test/v1/users"

    def test_base_url_skipped(self):
        """Test absolute URLs and ignore_base_url"""
        fetcher = DataFetcher(RuntimeConfig(base_url="https://api.test"))
        assert fetcher.build_url("https://other.test/x") == "https://other.test/x"
        assert fetcher.build_url("/x", ignore_base_url=True) == "/x"

    def test_headers_and_params(self):
        """Test default headers, JSON content type and None params"""
        fetcher = DataFetcher(RuntimeConfig(default_headers={"X-App": "demo"}))
        request = fetcher.build_request(
            RequestConfig(
                url="/q",
                method="post",
                headers={"X-Page": 2},
                params={"a": 1, "b": None, "c": True},
                body={"x": 1},
            )
        )
        assert request.method == "POST"
        assert request.headers == {
            "X-App": "demo",
            "X-Page": "2",
            "Content-Type": "application/json",
        }
        assert request.params == {"a": "1", "c": "true"}

    def test_explicit_content_type_kept(self):
        """Test case-insensitive header check"""
        fetcher = DataFetcher()
        request = fetcher.build_request(
            RequestConfig(url="/q", headers={"content-type": "text/plain"}, body="hi")
        )
        assert "Content-Type" not in request.headers


class TestFetch:
    """Test fetch outcomes"""

    @pytest.mark.asyncio
    async def test_plain_json(self):
        """Test payload without business envelope"""
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json=[1, 2])

        fetcher = make_fetcher(handler, base_url="https://api.test")
        result = await fetcher.fetch(RequestConfig(url="/items", params={"page": 1}))
        assert result.success
        assert result.data == [1, 2]
        assert seen["url"] == "https://api.test/items?page=1"

    @pytest.mark.asyncio
    async def test_json_body_sent(self):
        """Test body serialization"""
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["method"] = request.method
            return httpx.Response(201, json={"ok": True})

        fetcher = make_fetcher(handler)
        result = await fetcher.fetch(
            RequestConfig(url="https://api.test/u", method="POST", body={"name": "Ada"})
        )
        assert result.success
        assert seen == {"body": {"name": "Ada"}, "method": "POST"}

    @pytest.mark.asyncio
    async def test_business_success(self):
        """Test envelope data extraction"""
        body = {"code": 200, "msg": "ok", "data": {"id": 1}}
        fetcher = make_fetcher(lambda request: httpx.Response(200, json=body))
        result = await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert result.success
        assert result.data == {"id": 1}
        assert result.response == body

    @pytest.mark.asyncio
    async def test_business_failure(self):
        """Test non-success code becomes a RequestError"""
        body = {"code": 500, "msg": "Denied"}
        fetcher = make_fetcher(lambda request: httpx.Response(200, json=body))
        result = await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert not result.success
        assert isinstance(result.error, RequestError)
        assert str(result.error) == "Denied"
        assert result.error.code == 500

    @pytest.mark.asyncio
    async def test_custom_response_format(self):
        """Test configured field names and code list"""
        body = {"status": 0, "message": "", "result": "r"}
        fetcher = make_fetcher(
            lambda request: httpx.Response(200, json=body),
            response_format=ResponseFormat(
                code_field="status", msg_field="message", data_field="result", success_code=[0, 1]
            ),
        )
        result = await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert result.data == "r"

    @pytest.mark.asyncio
    async def test_response_data_path(self):
        """Test extraction without envelope"""
        fetcher = make_fetcher(
            lambda request: httpx.Response(200, json={"payload": {"rows": [1]}}),
            response_data_path="payload.rows",
        )
        result = await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert result.data == [1]

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """Test non-2xx status"""
        fetcher = make_fetcher(lambda request: httpx.Response(404, json={"detail": "nope"}))
        result = await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert not result.success
        assert result.status == 404
        assert result.error.status == 404
        assert str(result.error).startswith("HTTP 404")

    @pytest.mark.asyncio
    async def test_raw_response_types(self):
        """Test text and blob skip validation"""
        fetcher = make_fetcher(lambda request: httpx.Response(200, content=b'{"code": 1}'))
        text = await fetcher.fetch(RequestConfig(url="https://api.test/x", response_type="text"))
        blob = await fetcher.fetch(RequestConfig(url="https://api.test/x", response_type="blob"))
        assert text.success and text.data == '{"code": 1}'
        assert blob.success and blob.data == b'{"code": 1}'

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test transport exceptions are converted"""

        def handler(request):
            raise httpx.ConnectError("refused")

        fetcher = make_fetcher(handler)
        result = await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert not result.success
        assert isinstance(result.error, RequestError)
        assert "refused" in str(result.error)
        assert not fetcher.is_loading()

    @pytest.mark.asyncio
    async def test_loading_state_released(self):
        """Test a request is loading only while in flight"""
        started = asyncio.Event()
        release = asyncio.Event()

        async def handler(request):
            started.set()
            await release.wait()
            return httpx.Response(200, json={"code": 200, "data": 1})

        fetcher = make_fetcher(handler)
        pending = asyncio.ensure_future(
            fetcher.fetch(RequestConfig(url="https://api.test/x", request_id="users"))
        )
        await started.wait()
        assert fetcher.is_loading("users")
        assert fetcher.is_loading()

        release.set()
        assert (await pending).success
        assert not fetcher.is_loading("users")
        assert not fetcher.is_loading()

    @pytest.mark.asyncio
    async def test_completed_requests_not_retained(self):
        """Test repeated fetches leave no loading entries behind"""
        fetcher = make_fetcher(lambda request: httpx.Response(200, json={"code": 200}))
        for _ in range(3):
            await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert fetcher._in_flight == set()


class TestInterceptors:
    """Test request/response/error interceptors"""

    @pytest.mark.asyncio
    async def test_request_interceptor(self):
        """Test the request can be rewritten"""
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={})

        def add_auth(config):
            config.headers["Authorization"] = "Bearer t"
            return config

        fetcher = make_fetcher(handler, request_interceptor=add_auth)
        await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert seen["auth"] == "Bearer t"

    @pytest.mark.asyncio
    async def test_async_response_interceptor(self):
        """Test awaitable interceptors"""

        async def unwrap(data):
            return data["inner"]

        fetcher = make_fetcher(
            lambda request: httpx.Response(200, json={"inner": {"v": 1}}),
            response_interceptor=unwrap,
        )
        result = await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert result.data == {"v": 1}

    @pytest.mark.asyncio
    async def test_error_interceptor_observes(self):
        """Test the interceptor sees the failure"""
        seen = []
        fetcher = make_fetcher(
            lambda request: httpx.Response(500), error_interceptor=seen.append
        )
        result = await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert seen == [result.error]

    @pytest.mark.asyncio
    async def test_error_interceptor_replaces(self):
        """Test a raising interceptor replaces the error"""

        def replace(error):
            raise ValueError("mapped")

        fetcher = make_fetcher(lambda request: httpx.Response(500), error_interceptor=replace)
        result = await fetcher.fetch(RequestConfig(url="https://api.test/x"))
        assert isinstance(result.error, ValueError)
