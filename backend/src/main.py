"""Pricing API application.

Wires the price list, override, resolution and ERP sync routers together
with request-ID correlation, JSON logging, Prometheus metrics and the
domain error mapping from ``errors``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from connectors import register_default_connectors
from errors import register_exception_handlers
from observability.logging_config import configure_logging
from observability.middleware import REQUEST_ID_HEADER, RequestIDMiddleware
from observability.router import router as observability_router
from pricing.router import overrides_router, prices_router
from pricing.router import router as price_lists_router
from sync.router import router as sync_router

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

_DOCS_ENABLED = settings.ENVIRONMENT != "production"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Pricing API starting ({settings.ENVIRONMENT})")
    register_default_connectors()
    yield
    logger.info("Pricing API stopped")


app = FastAPI(
    title="Pricing API",
    description="Price resolution and ERP price list synchronization",
    version="0.1.0",
    docs_url="/docs" if _DOCS_ENABLED else None,
    redoc_url="/redoc" if _DOCS_ENABLED else None,
    openapi_url="/openapi.json" if _DOCS_ENABLED else None,
    lifespan=lifespan,
)

# Added last so it wraps CORS and every route
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

app.include_router(observability_router)
for domain_router in (price_lists_router, overrides_router, prices_router, sync_router):
    app.include_router(domain_router, prefix=API_PREFIX)


@app.get(API_PREFIX, include_in_schema=False)
async def api_root() -> dict[str, Any]:
    return {
        "version": "v1",
        "endpoints": {
            "price_lists": f"{API_PREFIX}/price-lists",
            "price_overrides": f"{API_PREFIX}/price-overrides",
            "prices": f"{API_PREFIX}/prices",
            "price_sync": f"{API_PREFIX}/price-sync",
        },
    }


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
