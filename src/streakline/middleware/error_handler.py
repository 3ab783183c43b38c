"""Global error handler: consistent JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from streakline.streaks.errors import ConcurrentUpdateError, RecordNotFoundError, StreakError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle validation errors with consistent JSON format."""
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(RecordNotFoundError)
    async def record_not_found_handler(_request: Request, exc: RecordNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConcurrentUpdateError)
    async def concurrent_update_handler(request: Request, exc: ConcurrentUpdateError) -> JSONResponse:
        """The caller may retry; the record was left untouched."""
        logger.warning(
            "streak_write_conflict",
            path=request.url.path,
            user_id=exc.user_id,
            attempts=exc.attempts,
        )
        return JSONResponse(status_code=409, content={"detail": "Streak record is busy, retry the request"})

    @app.exception_handler(StreakError)
    async def streak_error_handler(request: Request, exc: StreakError) -> JSONResponse:
        logger.error("streak_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"detail": "Streak engine error"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the raw exception objects pydantic puts in ``ctx``."""
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]
