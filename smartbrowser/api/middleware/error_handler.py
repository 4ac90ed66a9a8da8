"""Global error-handling middleware.

Catches application-specific exceptions and translates them into the
standard JSON envelope with the exception's HTTP status and error code.
Messages are scrubbed of paths and credentials before they leave.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from smartbrowser.api.schemas.common import fail
from smartbrowser.utils.exceptions import RateLimitError, SmartBrowserError
from smartbrowser.utils.logging import get_logger
from smartbrowser.utils.validator import scrub_error_message

logger = get_logger(__name__)


def error_response(exc: SmartBrowserError) -> JSONResponse:
    body = fail(scrub_error_message(str(exc)), exc.code)
    headers = {}
    if isinstance(exc, RateLimitError):
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(body),
        headers=headers or None,
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Wrap every request and convert known exceptions to JSON errors.

    Unknown exceptions are logged and returned as HTTP 500 with a
    generic message.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)

        except SmartBrowserError as exc:
            logger.warning(
                "handled_error",
                error_type=type(exc).__name__,
                code=exc.code,
                status_code=exc.status_code,
                detail=scrub_error_message(str(exc)),
                path=request.url.path,
            )
            return error_response(exc)

        except Exception as exc:
            logger.error(
                "unhandled_error",
                error_type=type(exc).__name__,
                detail=str(exc),
                path=request.url.path,
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content=jsonable_encoder(
                    fail("An unexpected error occurred.  Please try again later.", "INTERNAL_ERROR")
                ),
            )
