# ─────────────────────────────────────────────────────────────────
# status_cache.py - Ephemeral Device Status Cache
#
# Answers "what did this device last report?" for a short window
# without touching the durable log.
#
# Each entry carries its own expiry instant. Every read checks it
# (lazy expiry), so an expired key behaves as "not found" even if
# it has not been physically removed yet. sweep() only frees
# memory; correctness never depends on it.
# ─────────────────────────────────────────────────────────────────

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from models import StatusEntry

logger = logging.getLogger("status_cache")


class StatusCache:
    """
    device key → latest StatusEntry, each entry living for `ttl` seconds.

    `clock` drives expiry (monotonic seconds), `wall_clock` fills
    the human readable received_at / expires_at fields. Both are
    injectable so tests can move time forward.
    """

    def __init__(
        self,
        ttl: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self.ttl = ttl
        self._clock = clock
        self._wall_clock = wall_clock
        # device_key → (monotonic deadline, entry)
        self._entries: Dict[str, Tuple[float, StatusEntry]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def put(self, device_key: str, fields: dict) -> StatusEntry:
        """Store the latest report for device_key. Last write wins."""

        self.sweep()

        received = self._wall_clock()
        entry = StatusEntry(
            **{**fields, "device_key": device_key},
            received_at=received.isoformat(),
            expires_at=(received + timedelta(seconds=self.ttl)).isoformat()
        )
        self._entries[device_key] = (self._clock() + self.ttl, entry)

        logger.info(f"📝 Status cached for '{device_key}': {entry.status} (ttl {self.ttl}s)")
        return entry

    def get(self, device_key: str) -> Optional[StatusEntry]:
        item = self._entries.get(device_key)
        if item is None:
            return None

        deadline, entry = item
        if self._clock() >= deadline:
            del self._entries[device_key]
            return None

        return entry

    def live(self) -> List[StatusEntry]:
        now = self._clock()
        return [entry for deadline, entry in self._entries.values() if now < deadline]

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""

        now = self._clock()
        expired = [key for key, (deadline, _) in self._entries.items() if now >= deadline]
        for key in expired:
            del self._entries[key]
        return len(expired)
