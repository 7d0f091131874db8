"""
Unit tests for Logfire middleware.

This test suite covers:
- Request/response processing
- Duration reporting and the X-Process-Time header
- Error handling
- Slow request detection
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import Request
from starlette.responses import Response

from edify_ai.server.middleware.logfire_middleware import LogfireMiddleware

LOG_API_REQUEST = "edify_ai.server.middleware.logfire_middleware.log_api_request"


def make_request(method: str = "GET", path: str = "/api/chat") -> AsyncMock:
    request = AsyncMock(spec=Request)
    request.method = method
    request.url.path = path
    request.state = MagicMock()
    return request


class TestLogfireMiddlewareDispatch:
    """Test LogfireMiddleware.dispatch method."""

    @pytest.mark.asyncio
    async def test_successful_request_is_reported(self):
        async def call_next(request):
            return Response(content="ok", status_code=200)

        middleware = LogfireMiddleware(app=AsyncMock())

        with patch(LOG_API_REQUEST) as mock_log:
            response = await middleware.dispatch(make_request(), call_next)

        assert response.status_code == 200
        mock_log.assert_called_once()
        kwargs = mock_log.call_args[1]
        assert kwargs["method"] == "GET"
        assert kwargs["path"] == "/api/chat"
        assert kwargs["status_code"] == 200
        assert kwargs["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_process_time_header(self):
        async def call_next(request):
            return Response(content="ok", status_code=201)

        middleware = LogfireMiddleware(app=AsyncMock())

        with patch(LOG_API_REQUEST):
            response = await middleware.dispatch(make_request("POST"), call_next)

        assert float(response.headers["X-Process-Time"]) >= 0

    @pytest.mark.asyncio
    async def test_start_time_is_stored_on_request(self):
        request = make_request()

        async def call_next(req):
            return Response(status_code=204)

        with patch(LOG_API_REQUEST):
            await LogfireMiddleware(app=AsyncMock()).dispatch(request, call_next)

        assert isinstance(request.state.start_time, float)

    @pytest.mark.asyncio
    async def test_failure_is_reported_as_500_and_reraised(self):
        async def call_next(request):
            raise RuntimeError("database unreachable")

        middleware = LogfireMiddleware(app=AsyncMock())

        with patch(LOG_API_REQUEST) as mock_log:
            with pytest.raises(RuntimeError, match="database unreachable"):
                await middleware.dispatch(make_request(), call_next)

        assert mock_log.call_args[1]["status_code"] == 500

    @pytest.mark.asyncio
    async def test_slow_request_is_logged_as_warning(self):
        async def call_next(request):
            return Response(status_code=200)

        middleware = LogfireMiddleware(app=AsyncMock(), slow_request_ms=-1)

        with patch(LOG_API_REQUEST), patch("edify_ai.server.middleware.logfire_middleware.logger") as mock_logger:
            await middleware.dispatch(make_request(), call_next)

        mock_logger.warning.assert_called_once()
        assert "Slow API request" in mock_logger.warning.call_args[0][0]
