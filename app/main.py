# app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routers.jobs import router as jobs_router
from app.api.routers.listings import router as listings_router
from app.api.routers.metrics import router as metrics_router
from app.api.routers.reservations import router as reservations_router
from app.core.config import get_settings
from app.core.container import build_services
from app.core.logging import setup_logging
from app.core.scheduler import init_scheduler, shutdown_scheduler
from app.db.base import Base, init_models
from app.db.session import AsyncSessionLocal, async_engine, close_engines
from app.http_problem_handlers import register_exception_handlers
from app.obs.metrics import PrometheusMiddleware

logger = logging.getLogger("foodsaver")

settings = get_settings()
setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)
init_models()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_SCHEMA:
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    app.state.services = build_services(settings, AsyncSessionLocal)
    init_scheduler(settings)
    logger.info("foodsaver started env=%s db=%s", settings.ENV, async_engine.url.render_as_string())
    try:
        yield
    finally:
        shutdown_scheduler()
        await close_engines()


app = FastAPI(
    title="FoodSaver Reservations",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://127.0.0.1:8000",
        "http://localhost:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(PrometheusMiddleware)

register_exception_handlers(app)

# ===========================
#        core
# ===========================
app.include_router(reservations_router)
app.include_router(listings_router)

# ===========================
#        ops
# ===========================
app.include_router(jobs_router)
app.include_router(metrics_router)


@app.get("/")
async def root():
    return {"name": "FoodSaver Reservations", "version": "1.0.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}
