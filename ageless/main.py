import asyncio
import logging
import re
import sys
import uuid
import warnings
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from ageless.config import settings
from ageless.routers import (
    admin,
    auctions,
    auth,
    cart,
    catalog,
    imports,
    notifications,
    offers,
    orders,
    users,
    vendor,
    vendor_payouts,
    webhooks,
    wishlist,
)
from ageless.services.errors import MarketplaceError
from ageless.utils.logger import logger

# Global logging configuration
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True,
)

app = FastAPI(title="Ageless Literature API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=3600,
)


# Request logging middleware with request ID
@app.middleware("http")
async def request_logger(request: Request, call_next):
    rid = uuid.uuid4().hex[:8]
    request.state.rid = rid
    logging.info("→ %s %s rid=%s", request.method, request.url.path, rid)
    try:
        resp = await call_next(request)
        logging.info("← %s status=%s rid=%s", request.url.path, resp.status_code, rid)
        resp.headers["X-Request-ID"] = rid
        return resp
    except Exception as e:
        logging.exception("Unhandled error rid=%s: %s", rid, str(e))
        error_resp = JSONResponse(
            {"error": "internal_error", "rid": rid, "message": str(e), "type": type(e).__name__},
            status_code=500
        )
        error_resp.headers["X-Request-ID"] = rid
        return error_resp


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    rid = getattr(request.state, "rid", "unknown")
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} rid={rid}: {exc.message}")
    content = {"detail": exc.message}
    if exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(content, status_code=exc.status_code)


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(catalog.router)
app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(auctions.router)
app.include_router(offers.router)
app.include_router(notifications.router)
app.include_router(wishlist.router)
app.include_router(webhooks.router)
app.include_router(imports.vendor_router)
app.include_router(imports.admin_router)
app.include_router(vendor_payouts.router)
app.include_router(vendor.router)
app.include_router(vendor.public_router)
app.include_router(admin.router)


def _run_migrations(database_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(str(Path(__file__).resolve().parent.parent / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        command.upgrade(alembic_cfg, "head")


@app.on_event("startup")
async def startup_event():
    logger.info("Ageless Literature API starting up...")
    database_url = settings.DATABASE_URL

    if "postgresql" in database_url:
        masked_url = re.sub(r'://([^:]+):([^@]+)@', r'://\1:****@', database_url)
        logger.info(f"Database URL: {masked_url}")
        logger.info("Running database migrations...")
        try:
            _run_migrations(database_url)
            logger.info("Database migrations completed successfully")
        except Exception as e:
            logger.warning(f"Alembic migration failed: {e}")
            logger.warning("Continuing startup - tables may already exist or will be created manually")
            try:
                from ageless.models_sqlalchemy import engine
                from ageless.models_sqlalchemy.models import Base
                Base.metadata.create_all(bind=engine)
                logger.info("Tables created successfully")
            except Exception as e2:
                logger.error(f"Failed to create tables: {e2}")
    else:
        logger.info("Using SQLite database - creating tables")
        from ageless.models_sqlalchemy import engine
        from ageless.models_sqlalchemy.models import Base
        Base.metadata.create_all(bind=engine)

    if settings.START_BACKGROUND_WORKERS:
        logger.info("Starting background workers...")
        try:
            from ageless.workers import run_auction_status_loop

            asyncio.create_task(run_auction_status_loop(settings.AUCTION_STATUS_INTERVAL_SEC))
            logger.info(
                "Auction status worker started (runs every %s seconds)", settings.AUCTION_STATUS_INTERVAL_SEC
            )
        except Exception as e:
            logger.error(f"Failed to start background workers: {e}")
    else:
        logger.info("Background workers disabled (START_BACKGROUND_WORKERS=false)")


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.get("/healthz/db")
async def healthz_db():
    """Database health check endpoint"""
    try:
        from ageless.models_sqlalchemy import engine
        with engine.connect() as conn:
            result = conn.execute(text("SELECT 1"))
            result.fetchone()
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        logger.exception("Database health check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Database unavailable: {type(e).__name__}: {str(e)}"
        )


@app.get("/")
async def root():
    return {
        "message": "Ageless Literature API",
        "version": "1.0.0",
        "docs": "/docs"
    }
