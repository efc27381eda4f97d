# ============================================================================
# smartcare_auth/services/waiting_room.py
# ============================================================================
"""
Waiting-room state machine for a device that is waiting for approval.

    checking -> pending | approved | denied | expired | error

Polls at a fixed interval until a terminal state (approved, denied,
expired) is reached or the poller is stopped. There is no backoff and
no retry limit.
"""

import asyncio
import inspect
import logging
from datetime import datetime
from enum import Enum
from typing import Optional, Callable

from motor.motor_asyncio import AsyncIOMotorDatabase

from smartcare_auth.core.config import settings
from smartcare_auth.db.models.login_request_model import LoginRequestStatus, login_request_id
from smartcare_auth.services.login_request_service import LoginRequestLedger, is_expired
from smartcare_auth.services.trusted_device_service import TrustedDeviceService

logger = logging.getLogger(__name__)


class WaitingRoomState(str, Enum):
    CHECKING = "checking"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    ERROR = "error"


TERMINAL_STATES = {WaitingRoomState.APPROVED, WaitingRoomState.DENIED, WaitingRoomState.EXPIRED}

STATUS_ERROR_MESSAGE = "Failed to check approval status"
MISSING_IDS_MESSAGE = "Missing user or device information"

ROLE_REDIRECTS = {
    "patient": "/dashboard",
    "doctor": "/doctor/dashboard",
    "admin": "/admin/dashboard",
}


def redirect_path_for_role(role: Optional[str]) -> str:
    return ROLE_REDIRECTS.get(role or "", "/")


async def _is_trusted(db, user_id: str, device_id: str) -> bool:
    device = await TrustedDeviceService.find_device(db, user_id, device_id)
    return bool(device) and device.get("trusted") is True


async def resolve_waiting_state(
    db: AsyncIOMotorDatabase,
    user_id: str,
    device_id: str,
    now: Optional[datetime] = None
) -> WaitingRoomState:
    """
    One polling step. Storage errors propagate to the caller.

    Trust is checked before the request because the approval path flips
    the request and the device record in two separate writes.
    """
    if await _is_trusted(db, user_id, device_id):
        return WaitingRoomState.APPROVED

    request = await LoginRequestLedger.find_login_request(db, login_request_id(user_id, device_id))

    if request is None:
        # Raced with the approval write, or the request is gone
        if await _is_trusted(db, user_id, device_id):
            return WaitingRoomState.APPROVED
        return WaitingRoomState.EXPIRED

    status = request.get("status")
    if status == LoginRequestStatus.APPROVED.value:
        return WaitingRoomState.APPROVED
    if status == LoginRequestStatus.DENIED.value:
        return WaitingRoomState.DENIED
    if is_expired(request, now):
        return WaitingRoomState.EXPIRED
    return WaitingRoomState.PENDING


async def _maybe_await(result):
    if inspect.isawaitable(result):
        await result


class WaitingRoomPoller:
    """
    Client-side poller. Reads only; safe to run from several tabs at once.

    ``on_state_change(state, error)`` fires on every state change and
    ``on_redirect(path)`` fires once, ``redirect_delay`` seconds after the
    device is approved. Both may be plain functions or coroutines.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        user_id: Optional[str],
        device_id: Optional[str],
        role: Optional[str] = None,
        interval: Optional[float] = None,
        redirect_delay: Optional[float] = None,
        on_state_change: Optional[Callable] = None,
        on_redirect: Optional[Callable] = None,
    ):
        self.db = db
        self.user_id = user_id
        self.device_id = device_id
        self.role = role
        self.interval = settings.POLL_INTERVAL_SECONDS if interval is None else interval
        self.redirect_delay = settings.REDIRECT_DELAY_SECONDS if redirect_delay is None else redirect_delay
        self.on_state_change = on_state_change
        self.on_redirect = on_redirect

        self.state = WaitingRoomState.CHECKING
        self.error: Optional[str] = None
        self.redirect_to: Optional[str] = None

        self._stopped = False
        self._task: Optional[asyncio.Task] = None
        self._redirect_task: Optional[asyncio.Task] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    async def _set_state(self, state: WaitingRoomState, error: Optional[str] = None):
        changed = state != self.state or error != self.error
        self.state = state
        self.error = error
        if changed and self.on_state_change:
            await _maybe_await(self.on_state_change(state, error))

    async def check_once(self) -> WaitingRoomState:
        if not self.user_id or not self.device_id:
            self._stopped = True
            await self._set_state(WaitingRoomState.ERROR, MISSING_IDS_MESSAGE)
            return self.state

        try:
            state = await resolve_waiting_state(self.db, self.user_id, self.device_id)
        except Exception:
            logger.exception("Error checking login request for user=%s device=%s", self.user_id, self.device_id)
            await self._set_state(WaitingRoomState.ERROR, STATUS_ERROR_MESSAGE)
            return self.state

        await self._set_state(state)

        if state == WaitingRoomState.APPROVED and self._redirect_task is None:
            self._redirect_task = asyncio.create_task(self._redirect_after_delay())

        return state

    async def _redirect_after_delay(self):
        await asyncio.sleep(self.redirect_delay)
        path = redirect_path_for_role(self.role)
        self.redirect_to = path
        if self.on_redirect:
            await _maybe_await(self.on_redirect(path))

    async def _run(self):
        while not self._stopped:
            await self.check_once()
            if self.is_terminal or self._stopped:
                break
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        """Check immediately, then every ``interval`` seconds."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self._task

    async def wait(self) -> WaitingRoomState:
        """Wait for a terminal state (and the pending redirect, if any)."""
        if self._task is not None:
            await self._task
        if self._redirect_task is not None:
            await self._redirect_task
        return self.state

    async def stop(self):
        """Stop polling and drop any scheduled redirect (component unmount)."""
        self._stopped = True
        for task in (self._task, self._redirect_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
