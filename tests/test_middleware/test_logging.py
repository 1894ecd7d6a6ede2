"""Tests for logging middleware."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from tether_mcp.middleware.logging import LoggingMiddleware


@pytest.fixture
def mock_tool_context() -> MagicMock:
    """Create a mock middleware context for tool calls."""
    context = MagicMock()
    context.method = "tools/call"
    context.source = "client"
    context.message = MagicMock()
    context.message.name = "connect"
    context.message.arguments = {"host": "db"}
    return context


@pytest.fixture
def mock_resource_context() -> MagicMock:
    """Create a mock middleware context for resource reads."""
    context = MagicMock()
    context.method = "resources/read"
    context.source = "client"
    context.message = MagicMock()
    context.message.uri = "sessions://db-1a2b3c4d"
    return context


@pytest.mark.asyncio
async def test_logging_middleware_logs_tool_call(
    mock_tool_context: MagicMock,
) -> None:
    """LoggingMiddleware logs tool calls with name and arguments."""
    mock_logger = MagicMock()
    middleware = LoggingMiddleware(logger=mock_logger)
    call_next = AsyncMock(return_value="result")

    await middleware.on_call_tool(mock_tool_context, call_next)

    all_info_calls = str(mock_logger.info.call_args_list)
    all_log_calls = str(mock_logger.log.call_args_list)
    assert ">>> TOOL" in all_info_calls
    assert "connect" in all_info_calls
    assert "host='db'" in all_info_calls
    assert "<<< TOOL" in all_log_calls


@pytest.mark.asyncio
async def test_logging_middleware_logs_resource_read(
    mock_resource_context: MagicMock,
) -> None:
    """LoggingMiddleware logs resource reads with URI."""
    mock_logger = MagicMock()
    middleware = LoggingMiddleware(logger=mock_logger)
    call_next = AsyncMock(return_value="No sessions.")

    await middleware.on_read_resource(mock_resource_context, call_next)

    all_info_calls = str(mock_logger.info.call_args_list)
    all_log_calls = str(mock_logger.log.call_args_list)
    assert ">>> RESOURCE" in all_info_calls
    assert "sessions://db-1a2b3c4d" in all_info_calls
    assert "<<< RESOURCE" in all_log_calls


@pytest.mark.asyncio
async def test_logging_middleware_summarizes_session_snapshots(
    mock_tool_context: MagicMock,
) -> None:
    """Snapshot results are summarized by session id and state."""
    mock_logger = MagicMock()
    middleware = LoggingMiddleware(logger=mock_logger)
    snapshot = {"session_id": "db-1a2b3c4d", "connection_state": "READY"}
    call_next = AsyncMock(return_value=snapshot)

    await middleware.on_call_tool(mock_tool_context, call_next)

    assert "db-1a2b3c4d READY" in str(mock_logger.log.call_args_list)


@pytest.mark.asyncio
async def test_logging_middleware_unwraps_structured_content(
    mock_tool_context: MagicMock,
) -> None:
    """ToolResult-like objects are summarized by their structured content."""
    mock_logger = MagicMock()
    middleware = LoggingMiddleware(logger=mock_logger)
    result = MagicMock()
    result.structured_content = {"result": [{"session_id": "a"}, {"session_id": "b"}]}
    call_next = AsyncMock(return_value=result)

    await middleware.on_call_tool(mock_tool_context, call_next)

    assert "2 items" in str(mock_logger.log.call_args_list)


@pytest.mark.asyncio
async def test_logging_middleware_summarizes_string_results(
    mock_tool_context: MagicMock,
) -> None:
    """String results are summarized by length."""
    mock_logger = MagicMock()
    middleware = LoggingMiddleware(logger=mock_logger)
    call_next = AsyncMock(return_value="line1\nline2")

    await middleware.on_call_tool(mock_tool_context, call_next)

    assert "11 chars" in str(mock_logger.log.call_args_list)


@pytest.mark.asyncio
async def test_logging_middleware_includes_payloads_when_enabled(
    mock_tool_context: MagicMock,
) -> None:
    """LoggingMiddleware logs result payloads at debug level when enabled."""
    mock_logger = MagicMock()
    middleware = LoggingMiddleware(logger=mock_logger, include_payloads=True)
    call_next = AsyncMock(return_value={"session_id": "db-1", "connection_state": "FAILED"})

    await middleware.on_call_tool(mock_tool_context, call_next)

    assert "FAILED" in str(mock_logger.debug.call_args_list)


@pytest.mark.asyncio
async def test_logging_middleware_truncates_long_payloads(
    mock_tool_context: MagicMock,
) -> None:
    """LoggingMiddleware truncates payloads exceeding max length."""
    mock_logger = MagicMock()
    middleware = LoggingMiddleware(
        logger=mock_logger,
        include_payloads=True,
        max_payload_length=20,
    )
    call_next = AsyncMock(return_value="x" * 100)

    await middleware.on_call_tool(mock_tool_context, call_next)

    all_calls = str(mock_logger.debug.call_args_list)
    assert "[truncated]" in all_calls
    assert "x" * 100 not in all_calls


@pytest.mark.asyncio
async def test_logging_middleware_logs_tool_errors(
    mock_tool_context: MagicMock,
) -> None:
    """LoggingMiddleware logs tool errors at error level."""
    mock_logger = MagicMock()
    middleware = LoggingMiddleware(logger=mock_logger)
    call_next = AsyncMock(side_effect=ValueError("test error"))

    with pytest.raises(ValueError):
        await middleware.on_call_tool(mock_tool_context, call_next)

    mock_logger.error.assert_called_once()
    error_call = str(mock_logger.error.call_args)
    assert "!!! %s" in error_call
    assert "TOOL: connect" in error_call
    assert "ValueError" in error_call


@pytest.mark.asyncio
async def test_logging_middleware_slow_threshold(
    mock_tool_context: MagicMock,
) -> None:
    """LoggingMiddleware warns on slow requests."""
    mock_logger = MagicMock()
    middleware = LoggingMiddleware(logger=mock_logger, slow_threshold_ms=1.0)

    async def slow_handler(_: MagicMock) -> str:
        await asyncio.sleep(0.01)
        return "result"

    await middleware.on_call_tool(mock_tool_context, slow_handler)

    call_args = mock_logger.log.call_args_list
    assert call_args[0][0][0] == logging.WARNING
    assert "SLOW!" in str(call_args)


@pytest.mark.asyncio
async def test_logging_middleware_fast_request_is_info(
    mock_tool_context: MagicMock,
) -> None:
    """Fast requests are logged at INFO."""
    mock_logger = MagicMock()
    middleware = LoggingMiddleware(logger=mock_logger, slow_threshold_ms=10_000)
    call_next = AsyncMock(return_value=None)

    await middleware.on_call_tool(mock_tool_context, call_next)

    call_args = mock_logger.log.call_args_list
    assert call_args[0][0][0] == logging.INFO
    assert "null" in str(call_args)
    assert "ms" in str(call_args)
