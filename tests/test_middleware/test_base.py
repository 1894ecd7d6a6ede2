"""Tests for middleware base classes."""

import logging
from unittest.mock import MagicMock

from tether_mcp.middleware.base import TetherMiddleware
from tether_mcp.middleware.errors import ErrorHandlingMiddleware


class ConcreteMiddleware(TetherMiddleware):
    """Concrete implementation for testing."""

    async def on_message(self, context, call_next):
        return await call_next(context)


def test_tether_middleware_has_logger() -> None:
    """TetherMiddleware provides a logger attribute."""
    middleware = ConcreteMiddleware()
    assert isinstance(middleware.logger, logging.Logger)


def test_default_logger_is_subclass_module() -> None:
    """Each middleware logs under its own module name."""
    assert ErrorHandlingMiddleware().logger.name == "tether_mcp.middleware.errors"


def test_tether_middleware_accepts_custom_logger() -> None:
    """TetherMiddleware accepts custom logger."""
    custom_logger = MagicMock()
    middleware = ConcreteMiddleware(logger=custom_logger)
    assert middleware.logger is custom_logger
