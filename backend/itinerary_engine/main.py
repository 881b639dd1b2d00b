"""FastAPI application."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.itinerary_engine.api.routes.activities import router as activities_router
from backend.itinerary_engine.api.routes.explore import router as explore_router
from backend.itinerary_engine.api.routes.health import router as health_router
from backend.itinerary_engine.api.routes.metrics import router as metrics_router
from backend.itinerary_engine.errors import EngineError

logger = logging.getLogger(__name__)

app = FastAPI(title="Itinerary Engine API", version="0.1.0")

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(activities_router)
app.include_router(explore_router)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Render engine errors as {"error": code, "message": ..., **details}."""
    if exc.status_code >= 500:
        logger.warning(f"[api] {request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message, **exc.details()},
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Itinerary Engine API", "version": "0.1.0"}
