from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent

# Load .env only if exists (development fallback); must run before lodging.config is imported
env_path = ROOT_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI  # noqa: E402
from pymongo.errors import PyMongoError  # noqa: E402
from starlette.middleware.cors import CORSMiddleware  # noqa: E402

from lodging import config  # noqa: E402
from lodging.db import close_mongo, connect_mongo, get_db  # noqa: E402
from lodging.exception_handlers import register_exception_handlers  # noqa: E402
from lodging.indexes.booking_indexes import ensure_booking_indexes  # noqa: E402
from lodging.middleware.request_logging import RequestLoggingMiddleware  # noqa: E402
from lodging.routers.availability import router as availability_router  # noqa: E402
from lodging.routers.bookings import router as bookings_router  # noqa: E402
from lodging.routers.pricing import router as pricing_router  # noqa: E402
from lodging.routers.room_types import router as room_types_router  # noqa: E402
from lodging.seed import ensure_seed_data  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("lodging")

app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-Id"],
)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Routers (/api prefix is on each router)
app.include_router(room_types_router)
app.include_router(availability_router)
app.include_router(pricing_router)
app.include_router(bookings_router)


@app.get("/api/health")
async def health() -> dict[str, Any]:
    """Health check with database ping"""
    db = await get_db()
    try:
        await db.command("ping")
        ok = True
    except PyMongoError:
        logger.warning("health check: database ping failed")
        ok = False
    return {"ok": ok, "service": "lodging"}


@app.on_event("startup")
async def _startup() -> None:
    db = await connect_mongo()
    if config.ENSURE_INDEXES_ON_STARTUP:
        await ensure_booking_indexes(db)
    if config.SEED_DEMO_DATA:
        await ensure_seed_data(db)
    logger.info("Startup complete")


@app.on_event("shutdown")
async def _shutdown() -> None:
    await close_mongo()
    logger.info("Shutdown complete")
