# smartcare_auth/services/trust_reconciler.py
import asyncio
import logging

from smartcare_auth.core.errors import TrustWriteError
from smartcare_auth.services.login_request_service import LoginRequestLedger, APPROVED

logger = logging.getLogger(__name__)


async def reconcile_device_trust(db, limit: int = 100) -> int:
    """
    Finish approvals whose device trust write never landed.
    Returns the number of requests repaired.
    """
    cursor = db.login_requests.find({"status": APPROVED, "device_trust_applied": False}).limit(limit)
    stuck = await cursor.to_list(length=limit)

    repaired = 0
    for doc in stuck:
        request = dict(doc)
        request["id"] = str(request.pop("_id"))
        try:
            await LoginRequestLedger.apply_device_trust(db, request)
            repaired += 1
        except TrustWriteError:
            logger.warning("Trust still not applied for %s, will retry", request["id"])

    if repaired:
        logger.info("✅ Reconciled device trust for %d approved requests", repaired)
    return repaired


async def reconcile_device_trust_loop(db, poll_interval: int = 60):
    """Background worker started with the application."""

    if not isinstance(poll_interval, (int, float)) or poll_interval <= 0:
        poll_interval = 60

    while True:
        try:
            await reconcile_device_trust(db)
        except Exception:
            logger.exception("❌ Error in reconcile_device_trust_loop")

        await asyncio.sleep(poll_interval)
