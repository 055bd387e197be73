# ─────────────────────────────────────────────────────────────────
# routes/devices.py - Device-Facing and Operator Endpoints
#
# This file owns HTTP request/response logic only:
#   GET  /wait            → long-poll for a command
#   POST /trigger         → wake a parked poll
#   POST /log, /report    → durable report + cache refresh
#   POST /status          → cache refresh only
#   GET  /status/latest   → read the cache
#   GET  /status/all      → every live cache entry
#
# It does NOT know how waiters are paired (rendezvous.py), how the
# log is persisted (event_log.py) or how entries expire
# (status_cache.py).
# ─────────────────────────────────────────────────────────────────

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse

from config import Settings
from deps import (
    get_event_log,
    get_rendezvous,
    get_settings,
    get_status_cache,
    require_device_key,
)
from event_log import EventLog
from models import ReportIn, ReportRecord, is_valid_device_key
from rendezvous import SENT, Rendezvous
from status_cache import StatusCache

logger = logging.getLogger("routes")

router = APIRouter(tags=["Devices"])


async def _watch_disconnect(request: Request, interval: float):
    """Return once the client behind `request` has gone away."""

    while not await request.is_disconnected():
        await asyncio.sleep(interval)


# ─────────────────────────────────────────────────────────────────
# GET /wait - Long-poll for a command
# ─────────────────────────────────────────────────────────────────

@router.get("/wait")
async def wait_for_command(
    request: Request,
    device_key: str = Depends(require_device_key),
    rendezvous: Rendezvous = Depends(get_rendezvous),
    settings: Settings = Depends(get_settings)
):
    """
    Parks the request until an operator triggers this device or the
    wait timeout elapses.

    Flow:
    1. Reject malformed device keys → 400
    2. Register the waiter (503 if the table is full)
    3. Race the wait against a disconnect watcher
    4. Answer {"cmd": "send"} or {"cmd": "none"}
    """

    wait_task = asyncio.create_task(rendezvous.wait(device_key))
    watch_task = asyncio.create_task(
        _watch_disconnect(request, settings.DISCONNECT_POLL_S)
    )

    try:
        done, _ = await asyncio.wait(
            {wait_task, watch_task},
            return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        watch_task.cancel()
        if not wait_task.done():
            wait_task.cancel()
            # Slot is released once the cancelled wait has unwound
            with contextlib.suppress(asyncio.CancelledError):
                await wait_task

    if wait_task in done:
        # Re-raises CapacityExceeded, which main.py turns into a 503
        return {"cmd": wait_task.result()}

    # Client hung up: this response goes nowhere
    return Response(status_code=204)


# ─────────────────────────────────────────────────────────────────
# POST /trigger - Wake a parked device
# ─────────────────────────────────────────────────────────────────

@router.post("/trigger", response_class=PlainTextResponse)
async def trigger_command(
    device_key: str = Depends(require_device_key),
    rendezvous: Rendezvous = Depends(get_rendezvous)
):
    """
    Delivers "send" to the device if it is waiting right now.

    Nobody waiting is a normal outcome (200), not an error.
    Missed triggers are not queued.
    """

    if rendezvous.trigger(device_key) == SENT:
        return f"Command sent to device '{device_key}'"

    return f"No device waiting for '{device_key}'"


# ─────────────────────────────────────────────────────────────────
# POST /log (alias /report) - Durable status report
# ─────────────────────────────────────────────────────────────────

@router.post("/log")
@router.post("/report")
async def report(
    body: ReportIn,
    event_log: EventLog = Depends(get_event_log),
    status_cache: StatusCache = Depends(get_status_cache)
):
    """
    Appends a record to the event log, then refreshes the cache.

    created_at is stamped here, never taken from the device.
    A PersistenceError propagates and becomes a 500; the cache is
    left untouched in that case.
    """

    fields = body.report_fields()
    record = ReportRecord(
        **fields,
        created_at=datetime.now(timezone.utc).isoformat()
    )

    total = await event_log.append(record)
    status_cache.put(body.device_key, fields)

    logger.info(f"✅ Report from '{body.device_key}' ({body.status}) | log size: {total}")

    return {"ok": True, "record": record, "total": total}


# ─────────────────────────────────────────────────────────────────
# /status - Ephemeral cache only
# ─────────────────────────────────────────────────────────────────

@router.post("/status")
async def update_status(
    body: ReportIn,
    status_cache: StatusCache = Depends(get_status_cache)
):
    """Refreshes the cache without writing to the durable log."""

    entry = status_cache.put(body.device_key, body.report_fields())
    return {"ok": True, "data": entry}


@router.get("/status/latest")
async def latest_status(
    device_key: Optional[str] = None,
    status_cache: StatusCache = Depends(get_status_cache)
):
    """
    Latest cached report for a device.

    Invalid, unknown and expired keys all answer {"ok": false}.
    """

    if not is_valid_device_key(device_key):
        return {"ok": False}

    entry = status_cache.get(device_key)
    if entry is None:
        return {"ok": False}

    return {"ok": True, "data": entry}


@router.get("/status/all")
async def all_statuses(status_cache: StatusCache = Depends(get_status_cache)):
    """Every device that reported within the TTL window."""

    return {"ok": True, "data": status_cache.live()}
