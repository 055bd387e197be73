# ─────────────────────────────────────────────────────────────────
# errors.py - Error Taxonomy
#
# Every failure the core can report lives here. main.py maps each
# class to an HTTP status code, so routes never pick status codes
# for these failures themselves.
#
#   ValidationError   → 400  (bad device key / missing fields)
#   CapacityExceeded  → 503  (waiter table full, retry later)
#   PersistenceError  → 500  (durable write failed, may retry)
#
# "No waiter found" and "status not found" are NOT errors.
# They are normal outcomes returned as regular responses.
# ─────────────────────────────────────────────────────────────────


class BridgeError(Exception):
    """Base class for all errors raised by the bridge core."""

    status_code = 500


class ValidationError(BridgeError):
    """Malformed or missing input. Never retried by the server."""

    status_code = 400


class CapacityExceeded(BridgeError):
    """
    The pending-waiter table is full.

    Surfaced as 503 "server busy" with a Retry-After hint so the
    device backs off instead of hammering the server.
    """

    status_code = 503

    def __init__(self, capacity: int, retry_after: int = 5):
        super().__init__(f"Waiter table full ({capacity} pending). Retry later.")
        self.capacity = capacity
        self.retry_after = retry_after


class PersistenceError(BridgeError):
    """
    A durable write to the event log failed.

    The record must be assumed NOT durable. Callers may retry the
    same report; duplicate records are harmless.
    """

    status_code = 500
