# ─────────────────────────────────────────────────────────────────
# main.py - Application Entry Point
#
# Builds the FastAPI app, owns the three core components and wires
# them to the routers:
#
#   Rendezvous   → parked /wait polls, woken by /trigger
#   EventLog     → durable report log on disk
#   StatusCache  → latest report per device, short TTL
#
# Run with:
#   python main.py
# (the plain `uvicorn main:app` CLI works too, but only releases
# parked /wait polls at lifespan shutdown, after they time out)
# ─────────────────────────────────────────────────────────────────

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import Settings, settings as default_settings
from errors import BridgeError, CapacityExceeded
from event_log import EventLog
from logging_config import setup_logging
from rendezvous import Rendezvous
from routes import data, devices
from status_cache import StatusCache

logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: clean temp files a crash may have left next to the log.
    Shutdown: answer every parked poll with "none" so no countdown
    outlives the waiter table.
    """

    app.state.event_log.recover()
    logger.info(f"🚀 {app.title} ready | log file: {app.state.event_log.path}")

    yield

    app.state.rendezvous.close()
    logger.info("👋 Shutdown complete")


# ─────────────────────────────────────────────────────────────────
# ERROR HANDLERS - map the error taxonomy onto HTTP status codes
# ─────────────────────────────────────────────────────────────────

async def bridge_error_handler(request: Request, exc: BridgeError):
    headers = None
    if isinstance(exc, CapacityExceeded):
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": str(exc)},
        headers=headers
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Missing or malformed fields are a plain 400 for devices, not 422
    problems = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": "Invalid request", "detail": problems}
    )


# ─────────────────────────────────────────────────────────────────
# APP FACTORY
# ─────────────────────────────────────────────────────────────────

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build an app with its own, isolated set of components."""

    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Long-poll command bridge and status log for field devices",
        version=settings.PROJECT_VERSION,
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.rendezvous = Rendezvous(
        capacity=settings.MAX_WAITERS,
        default_timeout=settings.WAIT_TIMEOUT_S
    )
    app.state.event_log = EventLog(settings.DATA_FILE)
    app.state.status_cache = StatusCache(ttl=settings.STATUS_TTL_S)

    app.add_exception_handler(BridgeError, bridge_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(devices.router)
    app.include_router(data.router)

    @app.get("/")
    def root():
        return {
            "message": f"{settings.PROJECT_NAME} is running",
            "version": settings.PROJECT_VERSION,
            "docs": "/docs"
        }

    @app.get("/healthz")
    def healthz():
        return {
            "status": "ok",
            "waiters": app.state.rendezvous.pending_count,
            "cached": len(app.state.status_cache.live())
        }

    return app


# ─────────────────────────────────────────────────────────────────
# SERVER - release parked polls as soon as the exit signal arrives
#
# uvicorn waits for in-flight requests before running lifespan
# shutdown, so a parked /wait would hold the process open until its
# own timeout. The server answers them when SIGINT/SIGTERM lands.
# ─────────────────────────────────────────────────────────────────

class BridgeServer(uvicorn.Server):
    """uvicorn.Server that closes the rendezvous on the exit signal."""

    def __init__(self, config: uvicorn.Config, rendezvous: Rendezvous):
        super().__init__(config)
        self.rendezvous = rendezvous
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    async def serve(self, sockets=None):
        self.loop = asyncio.get_running_loop()
        await super().serve(sockets=sockets)

    def handle_exit(self, sig, frame):
        # Signal handlers may run mid-iteration; hop onto the loop
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.rendezvous.close)
        super().handle_exit(sig, frame)


def run(app: FastAPI):
    settings = app.state.settings
    config = uvicorn.Config(app, host=settings.HOST, port=settings.PORT)
    BridgeServer(config, app.state.rendezvous).run()


app = create_app()


if __name__ == "__main__":
    run(app)
