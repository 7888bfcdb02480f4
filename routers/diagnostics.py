from datetime import datetime, timezone

from fastapi import APIRouter, Request

from origin_policy import decide
from schemas.gateway import CorsInfo, CorsTestResponse, HealthResponse

diagnostics_router = APIRouter(prefix="/api", tags=["diagnostics"])


@diagnostics_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    settings = request.app.state.settings
    return HealthResponse(
        status="ok",
        message="Server is running",
        timestamp=datetime.now(timezone.utc).isoformat(),
        environment=settings.environment,
        cors=CorsInfo(
            allowedOrigins=list(request.app.state.allow_list),
            frontendUrl=settings.frontend_url,
        ),
    )


@diagnostics_router.get("/cors-test", response_model=CorsTestResponse)
async def cors_test(request: Request):
    """Tell the caller whether its own Origin header passes the allow list."""
    decision = decide(request.headers.get("origin"), request.app.state.allow_list)
    return CorsTestResponse(
        success=True,
        message="CORS is working!",
        origin=decision.origin,
        allowed=decision.allowed,
    )
