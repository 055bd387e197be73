# ─────────────────────────────────────────────────────────────────
# models.py - Data Models (Pydantic Schemas)
#
# Pydantic checks every incoming body before it reaches the core:
#   1. All required fields are present
#   2. Each field has the right type
#   3. The device key matches [A-Za-z0-9_-]{1,64}
#
# Invalid data never reaches the rendezvous, the cache or the log.
# ─────────────────────────────────────────────────────────────────

import re
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from errors import ValidationError

DEVICE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

# Devices send timestamps and uptimes as numbers or strings
# depending on firmware. Both are stored exactly as received.
Scalar = Union[int, float, str]


def is_valid_device_key(value) -> bool:
    return isinstance(value, str) and DEVICE_KEY_PATTERN.fullmatch(value) is not None


def validate_device_key(value) -> str:
    """Return the key unchanged, or raise ValidationError."""

    if not is_valid_device_key(value):
        raise ValidationError(
            "device_key must be 1-64 characters of letters, digits, '_' or '-'"
        )
    return value


class ReportIn(BaseModel):
    """
    Shape of the JSON body for POST /log, /report and /status

    {
        "device_key": "dev-1",
        "device": "esp32",
        "status": "online",
        "timestamp": 1718000000,
        "uptime": 3600,
        "localip": "192.168.1.40",
        "resent": false
    }
    """

    model_config = ConfigDict(extra="ignore")

    device_key: str
    device: str = Field(min_length=1)     # human readable device label
    status: str = Field(min_length=1)
    timestamp: Optional[Scalar] = None    # device-side clock, untrusted
    uptime: Optional[Scalar] = None
    localip: Optional[str] = None
    resent: bool = False                  # device is replaying a missed report

    @field_validator("device_key")
    @classmethod
    def _check_device_key(cls, value: str) -> str:
        if not is_valid_device_key(value):
            raise ValueError("must be 1-64 characters of letters, digits, '_' or '-'")
        return value

    def report_fields(self) -> dict:
        """Map wire field names onto stored field names."""

        return {
            "device_key": self.device_key,
            "device_label": self.device,
            "status": self.status,
            "timestamp": self.timestamp,
            "uptime": self.uptime,
            "local_ip": self.localip,
            "resent": self.resent,
        }


class ReportRecord(BaseModel):
    """
    One entry of the durable event log.

    Immutable once built. created_at is assigned by the server at
    append time and is never taken from the request.
    """

    model_config = ConfigDict(frozen=True)

    device_key: str
    device_label: str
    status: str
    timestamp: Optional[Scalar] = None
    uptime: Optional[Scalar] = None
    local_ip: Optional[str] = None
    resent: bool = False
    created_at: str


class StatusEntry(BaseModel):
    """Latest report of a device, held in the status cache until expires_at."""

    model_config = ConfigDict(frozen=True)

    device_key: str
    device_label: str
    status: str
    timestamp: Optional[Scalar] = None
    uptime: Optional[Scalar] = None
    local_ip: Optional[str] = None
    resent: bool = False
    received_at: str
    expires_at: str
