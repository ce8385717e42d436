"""
FastAPI application for the PineScript engine.

Provides a REST API for validating, fixing, formatting and converting
PineScript, and for the on-disk script version history.

The application owns one PineScriptEngine in ``app.state.engine``. Build it
with ``create_app()``; there is no module-level app, so importing this module
has no side effects. Run with:

    uvicorn pinescript_engine.main:create_app --factory
"""

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ._version import __version__
from .api import scripts
from .config import Config
from .engine import PineScriptEngine
from .models.settings import EngineSettings

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[EngineSettings] = None, engine: Optional[PineScriptEngine] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Engine settings; resolved from Config (env > file > defaults) when omitted
        engine: Prebuilt engine (takes precedence over settings)
    """
    app = FastAPI(
        title="PineScript Engine API",
        description="Static analysis and transformation of PineScript v4/v5/v6",
        version=__version__,
    )
    app.state.engine = engine or PineScriptEngine(settings or Config().settings())

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"🌐 HTTP {request.method} {request.url.path}")
        response = await call_next(request)
        logger.info(f"🌐 Response: {response.status_code}")
        return response

    cors_origins_env = os.getenv("CORS_ORIGINS", "*")
    allowed_origins = ["*"] if cors_origins_env == "*" else cors_origins_env.split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(scripts.router, prefix="/api/scripts", tags=["scripts"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring."""
        return {"status": "healthy", "version": __version__}

    return app


def main() -> None:
    import uvicorn

    configure_logging()
    uvicorn.run(
        "pinescript_engine.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
