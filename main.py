# main.py
import os
if os.getenv("DEBUGPY", "0") == "1":
    import debugpy
    debugpy.listen(("0.0.0.0", 5678))

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config.logging_config import configure_logging
from config.settings import Settings
from database import Base, build_engine, build_session_factory
from middleware.rate_limit import limiter
from middleware.request_logging import RequestLoggingMiddleware
from routers.access_routes import router as access_router
from routers.billing_routes import router as billing_router
from routers.image_routes import router as image_router
from routers.webhook_routes import router as webhook_router
from services.errors import ConfigurationError, PaymentProviderError

logger = logging.getLogger(__name__)


async def _configuration_error(request: Request, exc: ConfigurationError):
    logger.error("configuration_error path=%s detail=%s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


async def _provider_error(request: Request, exc: PaymentProviderError):
    logger.error("payment_provider_error provider=%s path=%s", exc.provider, request.url.path)
    return JSONResponse(status_code=502, content={"error": f"{exc.provider} request failed"})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    configure_logging()
    settings = settings or Settings.from_env()

    app = FastAPI(title="Gallery Backend")

    # db startup
    engine = build_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    import models  # noqa: F401  registers every table on Base.metadata

    Base.metadata.create_all(bind=engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(ConfigurationError, _configuration_error)
    app.add_exception_handler(PaymentProviderError, _provider_error)

    # Include routers
    app.include_router(webhook_router)
    app.include_router(billing_router)
    app.include_router(access_router)
    app.include_router(image_router)

    if settings.payment_simulation_mode:
        logger.warning("payment_simulation_mode enabled: provider calls are mocked")
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
