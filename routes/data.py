# ─────────────────────────────────────────────────────────────────
# routes/data.py - Durable Log Endpoints
#
#   GET /data.json   → full event log, oldest first
#   GET /data/clear  → wipe the event log
# ─────────────────────────────────────────────────────────────────

from typing import List

from fastapi import APIRouter, Depends

from deps import get_event_log
from event_log import EventLog
from models import ReportRecord


router = APIRouter(tags=["Data"])


@router.get("/data.json", response_model=List[ReportRecord])
async def dump_log(event_log: EventLog = Depends(get_event_log)):
    """Returns every persisted report in arrival order."""

    return await event_log.read_all()


@router.get("/data/clear")
async def clear_log(event_log: EventLog = Depends(get_event_log)):
    """
    Removes every record from the durable log.

    Uses the same temp-file-then-rename protocol as an append.
    """

    await event_log.clear()
    return {"ok": True, "message": "Log cleared"}
