"""
ClaimGate - Rate-limited textbook link claims

Main application entry point.

One claim per network address per rolling window. The device-side
guard lives in claimgate.client; this app is the address gate.
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import Headers

from . import __version__
from .api.errors import CORS_HEADERS, register_exception_handlers
from .api.routes import router as claims_router
from .core import (
    ClaimPolicy,
    ClaimService,
    CompactionConfig,
    CompactionScheduler,
    default_catalog,
)
from .db import create_claim_store
from .observability import (
    MetricsCollector,
    RequestContextMiddleware,
    check_health,
    get_logger,
    setup_logging,
)

# Setup logging at import time
setup_logging()
logger = get_logger(__name__)


def _cors_origins() -> list[str]:
    raw = os.environ.get("CLAIMGATE_CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()] or ["*"]


class PreflightCORSMiddleware(CORSMiddleware):
    """
    CORS with the origin list applied to responses only.

    Preflights always get a 200: one Starlette would refuse (unlisted
    origin, method or header) is answered with the permissive headers the
    claim routes send.
    """

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers=request_headers)
        if response.status_code == 200:
            return response
        headers = dict(CORS_HEADERS)
        requested = request_headers.get("access-control-request-headers")
        if requested:
            headers["Access-Control-Allow-Headers"] = requested
        return Response(status_code=200, headers=headers)


def build_claim_service() -> ClaimService:
    """Claim service wired from environment configuration."""
    return ClaimService(
        store=create_claim_store(),
        catalog=default_catalog(),
        policy=ClaimPolicy.from_env(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    if getattr(app.state, "claim_service", None) is None:
        app.state.claim_service = build_claim_service()

    service: ClaimService = app.state.claim_service
    compaction = CompactionScheduler(service, config=app.state.compaction_config)
    app.state.compaction = compaction
    compaction.start()  # Starts background thread if enabled

    logger.info(
        "Application startup complete",
        store_type=type(service.store).__name__,
        window_days=service.policy.window_days,
        catalog_size=len(service.catalog),
        compaction_enabled=compaction.config.enabled,
    )

    yield

    compaction.stop()
    logger.info("Application shutdown complete")


def create_app(
    claim_service: Optional[ClaimService] = None,
    compaction_config: Optional[CompactionConfig] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        claim_service: Pre-built service (tests); built from env at startup if None
        compaction_config: Compaction settings; loaded from env if None
    """
    app = FastAPI(
        title="ClaimGate",
        description="""
## Textbook Link Claim Gate

Visitors pick one edition and receive its shared link.

### Rate limits

- **Per device**: enforced client-side by the device claim guard
- **Per network address**: enforced here, one claim per rolling window

### Claim flow

```
Received → IdentityResolved → Validated → WindowChecked → Committed → Responded
```

Any check can end the request as **Rejected** (400/429); a store
failure ends it as **Failed** (500).

### Storage Backends

- **InMemoryClaimStore**: Development/testing (default)
- **PostgresClaimStore**: Production, atomic conditional upsert

Set `DATABASE_URL` or `DATABASE_HOST` environment variables to use PostgreSQL.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.claim_service = claim_service
    app.state.compaction_config = compaction_config or CompactionConfig.from_env()
    app.state.metrics = MetricsCollector()

    app.add_middleware(RequestContextMiddleware)

    # Landing pages are served from other origins (CDN, static hosting)
    app.add_middleware(
        PreflightCORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=False,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(claims_router)

    @app.get("/health", tags=["System"])
    async def health():
        """
        Basic health check endpoint.

        Returns 200 if the service is running.
        For store connectivity, use /health/detailed
        """
        return {"status": "healthy", "service": "claimgate"}

    @app.get("/health/detailed", tags=["System"])
    def health_detailed(request: Request):
        """
        Detailed health check.

        Checks:
        - Service liveness
        - Claim store connectivity
        - Compaction scheduler status

        Returns 200 if healthy, 503 if unhealthy.
        """
        service = request.app.state.claim_service
        health_status = check_health(
            claim_store=service.store if service else None,
            compaction=getattr(request.app.state, "compaction", None),
        )

        return JSONResponse(
            status_code=200 if health_status.healthy else 503,
            content={
                "status": "healthy" if health_status.healthy else "unhealthy",
                "checks": health_status.checks,
                "duration_ms": health_status.duration_ms,
            },
        )

    @app.get("/metrics", tags=["System"])
    async def metrics(request: Request):
        """Claim counters and commit latency percentiles."""
        return request.app.state.metrics.get_summary()

    return app


app = create_app()
