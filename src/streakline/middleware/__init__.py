"""Middleware registration for the streak API.

Logging is configured first so the error handlers and the request-id access
line share one renderer with the streak service loggers.
"""

from fastapi import FastAPI

from streakline.config import Settings
from streakline.middleware.cors import setup_cors
from streakline.middleware.error_handler import setup_error_handlers
from streakline.middleware.logging import setup_logging
from streakline.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    FastAPI/Starlette executes middleware in reverse-add order (last added = outermost).
    CORS is added last so it also wraps error responses.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
