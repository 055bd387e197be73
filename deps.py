# ─────────────────────────────────────────────────────────────────
# deps.py - FastAPI Dependencies
#
# Components are owned by the app (app.state), never by module
# globals. Routes ask for them through Depends(...).
# ─────────────────────────────────────────────────────────────────

from typing import Optional

from fastapi import Request

from config import Settings
from event_log import EventLog
from models import validate_device_key
from rendezvous import Rendezvous
from status_cache import StatusCache


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_rendezvous(request: Request) -> Rendezvous:
    return request.app.state.rendezvous


def get_event_log(request: Request) -> EventLog:
    return request.app.state.event_log


def get_status_cache(request: Request) -> StatusCache:
    return request.app.state.status_cache


def require_device_key(device_key: Optional[str] = None) -> str:
    """Query-string guard: a malformed key fails fast with 400."""

    return validate_device_key(device_key)
