# main.py

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import asyncio
import logging

from smartcare_auth.core.config import settings
from smartcare_auth.db.mongodb import connect_to_mongo, close_mongo_connection, get_client, ensure_indexes
from smartcare_auth.db.redis_client import reset_redis

from smartcare_auth.api.v1.routes.device_auth_route import router as device_auth_router
from smartcare_auth.api.v1.routes.trusted_device_route import router as trusted_device_router
from smartcare_auth.api.v1.routes.suspicious_login_route import router as suspicious_login_router

from smartcare_auth.services.trust_reconciler import reconcile_device_trust_loop

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# -----------------------------
# FASTAPI APP
# -----------------------------
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Device approval, trusted devices and suspicious login verification"
)

# -----------------------------
# CORS MIDDLEWARE
# -----------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------------
# ROUTERS
# -----------------------------
# Emailed links point at /device-auth/... directly
app.include_router(device_auth_router)
app.include_router(trusted_device_router, prefix="/api/v1")
app.include_router(suspicious_login_router, prefix="/api/v1")

_background_tasks = []


# -----------------------------
# STARTUP EVENT
# -----------------------------
@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Starting %s...", settings.PROJECT_NAME)
    await connect_to_mongo()

    client = get_client()
    db = client[settings.MONGO_DB_NAME]

    await ensure_indexes(db)
    logger.info("🔧 Indexes created")

    # Finish approvals whose device trust write did not land
    _background_tasks.append(
        asyncio.create_task(reconcile_device_trust_loop(db, settings.RECONCILE_INTERVAL_SECONDS))
    )


# -----------------------------
# SHUTDOWN EVENT
# -----------------------------
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("🛑 Shutting down API...")
    for task in _background_tasks:
        task.cancel()
    _background_tasks.clear()

    await close_mongo_connection()
    reset_redis()


# -----------------------------
# ROOT ENDPOINT
# -----------------------------
@app.get("/", tags=["Health"])
def root():
    return {
        "message": "Device Auth Backend Running",
        "version": "1.0.0",
        "docs": "/docs"
    }
