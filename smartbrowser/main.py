from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smartbrowser import __version__
from smartbrowser.api.endpoints import health
from smartbrowser.api.middleware.error_handler import ErrorHandlerMiddleware
from smartbrowser.api.middleware.logging_middleware import LoggingMiddleware
from smartbrowser.api.middleware.rate_limit import RateLimitMiddleware
from smartbrowser.api.router import api_router
from smartbrowser.api.schemas.common import fail
from smartbrowser.config import settings
from smartbrowser.dependencies import get_llm_client, wire_services
from smartbrowser.utils.logging import get_logger, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(debug=settings.debug, json_logs=settings.json_logs)
    logger = get_logger("startup")
    logger.info("Starting SmartBrowser", version=__version__)

    wire_services(app.state, llm_client=get_llm_client())
    app.state.session_pool.start_reaper()
    logger.info(
        "Services initialized",
        executors=app.state.orchestrator.get_available_executors(),
        max_sessions=settings.browser_max_contexts,
    )

    yield

    logger.info("Shutting down")
    await app.state.orchestrator.cleanup()
    await app.state.page_controller.cleanup()
    await app.state.session_pool.cleanup()


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{location}: {first.get('msg', 'invalid value')}" if location else "Invalid request"
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(fail(message, "VALIDATION_ERROR")),
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="SmartBrowser",
        description="Goal-driven browser automation with pooled sessions",
        version=__version__,
        lifespan=lifespan,
    )

    # Starlette wraps middleware in reverse: the last one added runs first.
    # 1. CORS (innermost)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # 2. Error handler (catches exceptions from the routes)
    app.add_middleware(ErrorHandlerMiddleware)
    # 3. Rate limiter
    app.add_middleware(
        RateLimitMiddleware,
        limit=settings.rate_limit_requests,
        window=settings.rate_limit_window,
    )
    # 4. Request/response logger (outermost -- times everything, 429s included)
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(health.router, tags=["health"])
    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "smartbrowser.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
