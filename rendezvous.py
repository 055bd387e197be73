# ─────────────────────────────────────────────────────────────────
# rendezvous.py - Per-Device Command Rendezvous
#
# A device parks a long-poll with wait(). An operator calls
# trigger() for the same device key. If the poll is still parked,
# it wakes up with "send". Otherwise the trigger reports
# "not_found" and is forgotten: nothing is queued for later.
#
# Every parked poll is a Waiter:
#   - future         → one-shot channel, resolved exactly once
#   - deadline_task  → background countdown (asyncio.sleep) that
#                      resolves the future with "none" on timeout
#
# All table mutations happen between awaits on the event loop, so
# reading and removing a waiter is one indivisible step with
# respect to other triggers, deadlines and disconnects.
#
# Completion paths only remove the slot if it still holds THEIR
# waiter. A late deadline or disconnect never evicts a newer poll
# that replaced it under the same key.
# ─────────────────────────────────────────────────────────────────

import asyncio
import logging
from typing import Dict, Optional

from errors import CapacityExceeded

logger = logging.getLogger("rendezvous")

# wait() outcomes
CMD_SEND = "send"
CMD_NONE = "none"

# trigger() outcomes
SENT = "sent"
NOT_FOUND = "not_found"


class Waiter:
    """One parked poll for a device key."""

    __slots__ = ("device_key", "future", "deadline_task")

    def __init__(self, device_key: str, future: asyncio.Future):
        self.device_key = device_key
        self.future = future
        self.deadline_task: Optional[asyncio.Task] = None

    def deliver(self, cmd: str) -> bool:
        """Resolve the future once. Returns False if it was already done."""

        if self.future.done():
            return False
        self.future.set_result(cmd)
        return True

    def stop_countdown(self):
        if self.deadline_task is not None:
            self.deadline_task.cancel()


class Rendezvous:
    """
    Single-slot mailbox per device key.

    At most one Waiter exists per key. A new wait() on a key that
    already has one completes the old one with "none" first
    (last-writer-wins: a device re-polling supersedes its own
    stale poll).
    """

    def __init__(self, capacity: int = 10000, default_timeout: float = 60.0):
        self.capacity = capacity
        self.default_timeout = default_timeout
        self._waiters: Dict[str, Waiter] = {}
        self.closed = False

    @property
    def pending_count(self) -> int:
        return len(self._waiters)

    def is_waiting(self, device_key: str) -> bool:
        return device_key in self._waiters

    async def wait(self, device_key: str, timeout: Optional[float] = None) -> str:
        """
        Park until a trigger arrives or the timeout elapses.

        Returns "send" when triggered, "none" on timeout or when a
        newer poll for the same key supersedes this one.

        If the calling task is cancelled (the HTTP client hung up),
        the slot is cleared and CancelledError propagates.

        Raises CapacityExceeded when the table is full and this key
        has no waiter to replace.
        """

        if timeout is None:
            timeout = self.default_timeout

        # Shutting down: never park a poll that would hold the server open
        if self.closed:
            return CMD_NONE

        previous = self._waiters.pop(device_key, None)

        if previous is None and len(self._waiters) >= self.capacity:
            logger.warning(f"🚫 Waiter table full ({self.capacity}), rejecting '{device_key}'")
            raise CapacityExceeded(self.capacity)

        if previous is not None:
            previous.deliver(CMD_NONE)
            previous.stop_countdown()
            logger.info(f"🔁 '{device_key}' re-polled, previous wait superseded")

        loop = asyncio.get_running_loop()
        waiter = Waiter(device_key, loop.create_future())
        self._waiters[device_key] = waiter

        waiter.deadline_task = asyncio.create_task(self._countdown(waiter, timeout))

        logger.info(f"⏳ '{device_key}' waiting up to {timeout}s")

        try:
            return await waiter.future

        except asyncio.CancelledError:
            # Connection closed: free the slot, deliver nothing
            if self._release(waiter):
                logger.info(f"🔌 '{device_key}' disconnected while waiting")
            raise

        finally:
            waiter.stop_countdown()

    def trigger(self, device_key: str) -> str:
        """
        Hand "send" to the waiter parked under device_key.

        Never blocks. Returns "sent" if a live waiter received the
        command, "not_found" otherwise. A lost race is not retried.
        """

        waiter = self._waiters.pop(device_key, None)

        # A waiter whose future is already done lost to a deadline or
        # a disconnect that has not finished its own cleanup yet
        if waiter is None or not waiter.deliver(CMD_SEND):
            logger.info(f"📭 Trigger for '{device_key}': no device waiting")
            return NOT_FOUND

        waiter.stop_countdown()
        logger.info(f"📨 Trigger for '{device_key}': command sent")
        return SENT

    def close(self) -> int:
        """
        Shutdown: answer every parked poll with "none" and cancel
        every countdown. Later wait() calls answer "none" at once.
        Returns how many waiters were released.
        """

        self.closed = True
        waiters = list(self._waiters.values())
        self._waiters.clear()

        for waiter in waiters:
            try:
                waiter.deliver(CMD_NONE)
            except RuntimeError as exc:
                # Event loop already closed; nobody is listening anymore
                logger.debug(f"Could not release '{waiter.device_key}': {exc}")
            waiter.stop_countdown()

        if waiters:
            logger.info(f"🛑 Released {len(waiters)} pending waiter(s) on shutdown")

        return len(waiters)

    # ── INTERNALS ───────────────────────────────────────────────

    async def _countdown(self, waiter: Waiter, timeout: float):
        try:
            await asyncio.sleep(timeout)

        except asyncio.CancelledError:
            # Trigger, supersede, disconnect or shutdown got there first
            return

        self._release(waiter)
        if waiter.deliver(CMD_NONE):
            logger.info(f"⌛ '{waiter.device_key}' wait timed out after {timeout}s")

    def _release(self, waiter: Waiter) -> bool:
        """Remove waiter from the table only if it is still the registered one."""

        if self._waiters.get(waiter.device_key) is waiter:
            del self._waiters[waiter.device_key]
            return True
        return False
