"""
Elixr Subscriptions — FastAPI Backend
Subscription lifecycle and delivery scheduling service
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from db.database import engine
from routers import admin, cron, subscriptions
from services.notifications import dispatcher

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    dispatcher.start()
    logger.info("Elixr subscriptions API starting...")
    yield
    await dispatcher.stop()
    await engine.dispose()
    logger.info("Elixr subscriptions API shut down.")


app = FastAPI(
    title="Elixr Subscriptions API",
    description="Subscription lifecycle, pause/reactivation and delivery scheduling",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ────────────────────────────────────────────────
app.include_router(subscriptions.router, prefix="/api/subscriptions", tags=["Subscriptions"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
app.include_router(cron.router, prefix="/api/cron", tags=["Cron"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "Elixr Subscriptions API"}


@app.get("/health/db")
async def health_db():
    """Verify the DB connection and report the subscription row count."""
    try:
        async with engine.connect() as conn:
            row = (await conn.execute(text("SELECT current_database(), current_user"))).first()
            count_row = (await conn.execute(text("SELECT COUNT(*) FROM user_subscriptions"))).first()
    except (SQLAlchemyError, OSError) as e:
        logger.error("DB health check failed: %s", e)
        return {"status": "error", "detail": str(e)}
    return {
        "status": "ok",
        "database": row[0],
        "user": row[1],
        "subscriptions_count": count_row[0] if count_row else 0,
    }
