"""Shared models for 2N Intercom."""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any


def _normalize_mac(value: str | None) -> str | None:
    if not value:
        return None
    # Accept formats like 7c-1e-b3-eb-40-a9 or 7C:1E:B3:...
    cleaned = re.sub(r"[^0-9A-Fa-f]", "", value)
    if len(cleaned) != 12:
        return None
    pairs = [cleaned[i : i + 2] for i in range(0, 12, 2)]
    return ":".join(p.upper() for p in pairs)


def _to_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("true", "1", "yes", "on"):
            return True
        if v in ("false", "0", "no", "off"):
            return False
    return None


@dataclass(frozen=True, slots=True)
class TwoNCredentials:
    """Connection parameters for a single device."""

    host: str
    username: str
    password: str = field(repr=False)
    port: int | None = None
    use_https: bool = False
    verify_ssl: bool = False


@dataclass(slots=True)
class TwoNResponse:
    """The {success, result, error} envelope every /api/* endpoint returns."""

    success: bool
    result: Any = None
    error_code: int | None = None
    error_message: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TwoNResponse:
        error = data.get("error")
        code: int | None = None
        message: str | None = None
        if isinstance(error, dict):
            try:
                code = int(error.get("code"))
            except (TypeError, ValueError):
                code = None
            if error.get("message") is not None:
                message = str(error.get("message"))
        return cls(
            success=bool(data["success"]),
            result=data.get("result"),
            error_code=code,
            error_message=message,
        )


@dataclass(slots=True)
class TwoNSystemInfo:
    """Metadata extracted from /api/system/info."""

    title: str
    variant: str | None = None
    serial: str | None = None
    mac: str | None = None
    sw_version: str | None = None
    hw_version: str | None = None
    build_type: str | None = None
    device_name: str | None = None

    @classmethod
    def from_result(cls, result: dict[str, Any]) -> TwoNSystemInfo:
        title = str(result.get("deviceName") or result.get("variant") or "2N").strip()
        return cls(
            title=title,
            variant=result.get("variant"),
            serial=result.get("serialNumber"),
            mac=_normalize_mac(result.get("macAddr")),
            sw_version=result.get("swVersion"),
            hw_version=result.get("hwVersion"),
            build_type=result.get("buildType"),
            device_name=result.get("deviceName"),
        )


@dataclass(slots=True)
class TwoNSwitchStatus:
    """State of a 2N "switch" (relay) from /api/switch/status."""

    switch_id: int
    active: bool
    locked: bool = False
    held: bool = False

    @classmethod
    def from_dict(cls, item: dict[str, Any]) -> TwoNSwitchStatus:
        return cls(
            switch_id=int(item["switch"]),
            active=bool(_to_bool(item.get("active"))),
            locked=bool(_to_bool(item.get("locked"))),
            held=bool(_to_bool(item.get("held"))),
        )


@dataclass(slots=True)
class TwoNEvent:
    """A single record returned by /api/log/pull."""

    id: int | None
    event: str
    utc_time: int | None = None
    up_time: int | None = None
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TwoNEvent:
        params = raw.get("params") or {}
        if not isinstance(params, dict):
            params = {}
        return cls(
            id=raw.get("id"),
            event=str(raw.get("event") or ""),
            utc_time=raw.get("utcTime"),
            up_time=raw.get("upTime"),
            params=dict(params),
        )
