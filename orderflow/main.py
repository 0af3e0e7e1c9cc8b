# orderflow/main.py
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from orderflow.adapters.api.routers import admin, foods, health, orders, stream
from orderflow.shared.config import AppEnv, settings
from orderflow.shared.container import Container, container as default_container
from orderflow.shared.logging_config import configure_logging
from orderflow.shared.telemetry import instrument_fastapi, setup_telemetry

logger = structlog.get_logger()

# Modules using @inject / Provide[...]; they must be wired to the container.
WIRED_MODULES = [
    "orderflow.adapters.api.dependencies",
    "orderflow.adapters.api.routers.health",
    "orderflow.adapters.api.routers.stream",
]


def create_app(container: Optional[Container] = None) -> FastAPI:
    """
    Factory function to create the FastAPI application.
    Tests pass their own (overridden) container.
    """
    container = container or default_container
    container.wire(modules=WIRED_MODULES)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application Lifecycle Manager.
        1. Startup: logging, telemetry, schema, stale upload recovery, sweeper.
        2. Shutdown: stops the sweeper, closes live streams and the database.
        """
        configure_logging()
        setup_telemetry(settings.OTEL_SERVICE_NAME)
        logger.info("app_startup", env=settings.APP_ENV.value, storage=settings.STORAGE_BACKEND.value)

        database = container.database()
        await database.connect()

        # Uploads interrupted by the previous process never complete; fail them now.
        try:
            await container.reconciler().execute()
        except Exception as e:
            logger.error("startup_reconcile_failed", error=str(e))

        sweeper = container.sweeper()
        await sweeper.start()

        yield

        logger.info("app_shutdown")
        await sweeper.stop()
        container.operator_registry().close_all()
        container.customer_registry().close_all()
        await database.disconnect()

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Food order fulfillment pipeline",
        docs_url="/docs" if settings.APP_ENV != AppEnv.PRODUCTION else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.container = container

    # 1. CORS Configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Next-Cursor"],
    )

    # 2. Auto-Instrument FastAPI for Tracing
    instrument_fastapi(app)

    # 3. Global Exception Handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Standardizes HTTP errors (including 401/403 Auth failures).
        """
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "error",
                "code": exc.status_code,
                "message": exc.detail,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """
        Malformed input answers 400 with the standard error envelope.
        """
        problems = []
        for err in exc.errors():
            field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header"))
            problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
        logger.info("request_validation_failed", path=request.url.path, problems=problems)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "status": "error",
                "code": 400,
                "message": "; ".join(problems) or "Invalid request",
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catches unhandled exceptions to prevent leaking stack traces in Prod.
        """
        logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "status": "error",
                "code": 500,
                "message": "Internal Server Error" if not settings.DEBUG else str(exc),
            },
        )

    # 4. Mount Routes
    app.include_router(health.router)
    app.include_router(orders.router, prefix="/api")
    app.include_router(admin.router, prefix="/api")
    app.include_router(foods.router, prefix="/api")
    app.include_router(stream.router, prefix="/api")

    return app


# Entry point for Uvicorn (`uvicorn orderflow.main:app`)
app = create_app()
