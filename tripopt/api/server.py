"""
api/server.py
-------------
FastAPI application entry point.

Run dev server:
    uvicorn tripopt.api.server:app --reload --port 8000
    python -m tripopt.api.server

Endpoints:
    GET    /v1/health
    POST   /v1/optimize
    POST   /v1/trips/{trip_id}/optimize
    GET    /v1/trips/{trip_id}/itinerary
    DELETE /v1/trips/{trip_id}/itinerary
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tripopt.api.routes import health, optimize

app = FastAPI(
    title="tripopt Itinerary Optimizer API",
    version="1.0.0",
    description=(
        "Multi-day itinerary optimizer: distance matrix, day distribution, "
        "route ordering and schedule synthesis over car, transit and walking routes."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# Allow the web frontend (any origin during development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router,    prefix="/v1", tags=["Health"])
app.include_router(optimize.router,  prefix="/v1", tags=["Optimize"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("tripopt.api.server:app", host="0.0.0.0", port=8000, reload=True)
