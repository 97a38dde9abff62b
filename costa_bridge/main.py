import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from costa_bridge import __version__
from costa_bridge.api.router import api_router
from costa_bridge.bridge.errors import (
    BridgeError,
    CliNotFoundError,
    CliTimeoutError,
)
from costa_bridge.config import settings
from costa_bridge.runtime import CostaRuntime

logger = logging.getLogger("costa.api")

ERROR_STATUS = {
    CliNotFoundError: 503,
    CliTimeoutError: 504,
}


def create_app(runtime: Optional[CostaRuntime] = None) -> FastAPI:
    """
    Build the service app.

    Args:
        runtime: Runtime to serve; a default one is created at startup if omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic"""
        app.state.runtime = runtime or CostaRuntime.create()
        logger.info(f"Costa bridge starting up on port {settings.PORT}")
        await app.state.runtime.start()
        yield
        logger.info("Costa bridge shutting down...")
        await app.state.runtime.shutdown()

    app = FastAPI(
        title="Costa Bridge",
        description="Local bridge between editor UIs and the costa CLI",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError):
        status_code = ERROR_STATUS.get(type(exc), 502)
        return JSONResponse(status_code=status_code, content=exc.to_response().model_dump())

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    # Root health check
    @app.get("/")
    async def root():
        return {
            "service": "Costa Bridge",
            "version": __version__,
            "status": "running"
        }

    @app.get("/health")
    async def health_check(request: Request):
        stream = request.app.state.runtime.usage_stream
        return {
            "status": "healthy",
            "version": __version__,
            "usage_stream": stream.state.value,
        }

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "costa_bridge.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )


if __name__ == "__main__":
    run()
