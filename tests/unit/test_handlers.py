"""
Unit tests for job handlers.
"""

import json

import httpx
import pytest

from tenant_scheduler.types.job import JobContext, JobResult
from tenant_scheduler.worker import handlers
from tenant_scheduler.worker.handlers import (
    execute_job,
    get_handler,
    handle_echo,
    list_handlers,
    register_handler,
)


class TestJobHandlers:
    """Tests for job handlers."""

    @pytest.fixture
    def job_context(self) -> JobContext:
        """Create a test job context."""
        return JobContext(
            job_id="1",
            tenant_id="t1",
            queue_name="alpha",
            engine_queue_id="t1-alpha",
            name="echo",
            payload={"data": {"message": "test"}},
            attempt=1,
        )

    def test_list_handlers(self):
        """Test listing registered handlers."""
        names = list_handlers()

        assert "echo" in names
        assert "webhook" in names

    def test_get_handler_exists(self):
        """Test getting an existing handler."""
        assert get_handler("echo") == handle_echo

    def test_get_handler_not_exists(self):
        """Test getting a non-existent handler."""
        assert get_handler("nonexistent") is None

    @pytest.mark.asyncio
    async def test_echo_handler(self, job_context: JobContext):
        """Test the echo handler."""
        result = await handle_echo(job_context)

        assert result.success is True
        assert result.output == {"echo": job_context.payload}

    @pytest.mark.asyncio
    async def test_execute_job_dispatches_on_name(self, job_context: JobContext):
        result = await execute_job(job_context)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_execute_job_with_unknown_name(self, job_context: JobContext):
        job_context.name = "nonexistent_handler"

        result = await execute_job(job_context)

        assert result.success is False
        assert "No handler registered" in result.error

    @pytest.mark.asyncio
    async def test_execute_job_catches_handler_exception(self, job_context: JobContext):
        @register_handler("explodes")
        async def explodes(context: JobContext) -> JobResult:
            raise RuntimeError("kaboom")

        job_context.name = "explodes"
        result = await execute_job(job_context)

        assert result.success is False
        assert "kaboom" in result.error


class TestWebhookHandler:
    """Tests for the webhook handler."""

    @pytest.fixture
    def mock_http(self, monkeypatch: pytest.MonkeyPatch) -> list[httpx.Request]:
        """Route the handler's HTTP client to an in-process transport."""
        seen: list[httpx.Request] = []
        real_client = httpx.AsyncClient

        def respond(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/fail":
                return httpx.Response(500, text="nope")
            return httpx.Response(200, text="ok")

        monkeypatch.setattr(
            handlers.httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(respond)),
        )
        return seen

    def make_context(self, payload: dict) -> JobContext:
        return JobContext(
            job_id="7",
            tenant_id="t1",
            queue_name="alpha",
            engine_queue_id="t1-alpha",
            name="webhook",
            payload=payload,
            attempt=1,
        )

    @pytest.mark.asyncio
    async def test_missing_url(self):
        result = await execute_job(self.make_context({}))

        assert result.success is False
        assert "url" in result.error

    @pytest.mark.asyncio
    async def test_posts_job_identity(self, mock_http: list[httpx.Request]):
        result = await execute_job(self.make_context({"url": "http://hooks.test/ok"}))

        assert result.success is True
        assert result.output["status_code"] == 200
        body = json.loads(mock_http[0].content)
        assert body["job_id"] == "7"
        assert body["name"] == "webhook"

    @pytest.mark.asyncio
    async def test_http_error_status_fails(self, mock_http: list[httpx.Request]):
        result = await execute_job(self.make_context({"url": "http://hooks.test/fail"}))

        assert result.success is False
        assert result.error == "HTTP 500"
