"""Error handling middleware for the MCP surface."""

import logging
import traceback
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from fastmcp.server.middleware import MiddlewareContext

from tether_mcp.errors import EngineError
from tether_mcp.middleware.base import TetherMiddleware

ErrorCallback = Callable[[Exception, MiddlewareContext], None]


class ErrorHandlingMiddleware(TetherMiddleware):
    """Logs and counts failed requests, then re-raises.

    Engine errors are expected outcomes (unknown host, bad chain) and are
    logged at WARNING with their kind. Everything else is logged at ERROR,
    optionally with the traceback.

    Example:
        >>> middleware = ErrorHandlingMiddleware(include_traceback=True)
        >>> mcp.add_middleware(middleware)
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        include_traceback: bool = False,
        error_callback: ErrorCallback | None = None,
    ) -> None:
        """Initialize error handling middleware.

        Args:
            logger: Optional custom logger.
            include_traceback: Whether to include full traceback in logs.
            error_callback: Optional callback called as (exception, context).
        """
        super().__init__(logger=logger)
        self.include_traceback = include_traceback
        self.error_callback = error_callback
        self._error_counts: dict[str, int] = defaultdict(int)
        self._kind_counts: dict[str, int] = defaultdict(int)

    def get_error_stats(self) -> dict[str, int]:
        """Occurrences by exception type name."""
        return dict(self._error_counts)

    def get_kind_stats(self) -> dict[str, int]:
        """Occurrences of engine errors by error kind."""
        return dict(self._kind_counts)

    def reset_stats(self) -> None:
        """Reset error statistics."""
        self._error_counts.clear()
        self._kind_counts.clear()

    async def on_message(
        self,
        context: MiddlewareContext,
        call_next: Any,
    ) -> Any:
        """Run the request, recording any exception before re-raising it."""
        try:
            return await call_next(context)
        except Exception as e:
            self._record(e, context)
            raise

    def _record(self, error: Exception, context: MiddlewareContext) -> None:
        error_type = type(error).__name__
        method = context.method
        self._error_counts[error_type] += 1

        if isinstance(error, EngineError):
            self._kind_counts[error.kind.value] += 1
            self.logger.warning(
                "Request %s failed (%s): %s", method, error.kind.value, error.message
            )
        elif self.include_traceback:
            self.logger.error(
                "Error in %s: %s: %s\n%s", method, error_type, error, traceback.format_exc()
            )
        else:
            self.logger.error("Error in %s: %s: %s", method, error_type, error)

        if self.error_callback:
            try:
                self.error_callback(error, context)
            except Exception as callback_error:
                self.logger.warning("Error callback failed: %s", callback_error)
