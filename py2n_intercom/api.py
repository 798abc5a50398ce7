"""Async HTTP client for 2N IP intercoms (HTTP API).

Targets the /api/* endpoints as used by 2N IP Force / Style / Verso.

Auth:
- First contact: Basic header (or no header with auth_method="digest")
- Digest: negotiated on the first 401 challenge, then sent optimistically

All 2N endpoints used here are GET-based and answer with a JSON envelope
{"success": bool, "result": ..., "error": {"code": int, "message": str}}.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
import logging
from typing import Any
from urllib.parse import quote

import aiohttp
from aiohttp import hdrs
from yarl import URL

from .auth import _AuthState, parse_www_authenticate
from .const import (
    API_CAMERA_SNAPSHOT,
    API_LOG_CAPS,
    API_LOG_PULL,
    API_LOG_SUBSCRIBE,
    API_LOG_UNSUBSCRIBE,
    API_SWITCH_CTRL,
    API_SWITCH_STATUS,
    API_SYSTEM_INFO,
    AUTH_METHOD_BASIC,
    DEFAULT_EVENT_PULL_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SNAPSHOT_HEIGHT,
    DEFAULT_SNAPSHOT_WIDTH,
    DEFAULT_USE_HTTPS,
    DEFAULT_VERIFY_SSL,
    ERROR_CODE_SUBSCRIPTION_NOT_FOUND,
    RTSP_STREAM_PATH,
    SWITCH_ACTION_TRIGGER,
    SWITCH_ACTIONS,
)
from .models import TwoNCredentials, TwoNEvent, TwoNResponse, TwoNSwitchStatus, TwoNSystemInfo

_LOGGER = logging.getLogger(__name__)

_BODY_EXCERPT = 200


class TwoNApiError(Exception):
    """Raised on communication/auth errors with the 2N device."""


class TwoNAuthenticationError(TwoNApiError):
    """The device rejected the credentials (401 after a Digest retry)."""


class TwoNHttpError(TwoNApiError):
    """Non-200, non-401 HTTP status."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"HTTP {status}: {body}")
        self.status = status
        self.body = body


class TwoNParseError(TwoNApiError):
    """The response body is not a valid 2N JSON envelope."""


class TwoNDeviceError(TwoNApiError):
    """A well-formed envelope with success=false."""

    def __init__(self, code: int | None, message: str | None) -> None:
        super().__init__(f"device_error {code}: {message or 'unknown error'}")
        self.code = code
        self.message = message


class TwoNSubscriptionExpired(TwoNDeviceError):
    """The log subscription channel no longer exists on the device."""


class TwoNTimeoutError(TwoNApiError):
    """The request exceeded its time budget."""


class TwoNConnectionError(TwoNApiError):
    """Transport-level failure (DNS, refused connection, TLS, ...)."""


class TwoNNotSubscribedError(TwoNApiError):
    """A log pull was attempted without a subscription."""


@dataclass(slots=True)
class _RawResponse:
    status: int
    www_authenticate: str | None
    content_type: str
    body: bytes

    def excerpt(self) -> str:
        return self.body[:_BODY_EXCERPT].decode("utf-8", errors="replace")


def _parse_envelope(body: bytes) -> TwoNResponse:
    try:
        data = json.loads(body)
    except ValueError as err:
        raise TwoNParseError(f"invalid_json: {body[:_BODY_EXCERPT]!r}") from err
    if not isinstance(data, dict) or not isinstance(data.get("success"), bool):
        raise TwoNParseError(f"unexpected_response: {str(data)[:_BODY_EXCERPT]}")
    return TwoNResponse.from_dict(data)


def _raise_for_envelope(response: TwoNResponse) -> None:
    if response.success:
        return
    if response.error_code == ERROR_CODE_SUBSCRIPTION_NOT_FOUND:
        raise TwoNSubscriptionExpired(response.error_code, response.error_message)
    raise TwoNDeviceError(response.error_code, response.error_message)


class TwoNClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        host: str,
        username: str,
        password: str,
        *,
        port: int | None = None,
        auth_method: str = AUTH_METHOD_BASIC,
        use_https: bool = DEFAULT_USE_HTTPS,
        verify_ssl: bool = DEFAULT_VERIFY_SSL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._session = session
        self._ssl = verify_ssl
        self._request_timeout = request_timeout

        if host.startswith("http://") or host.startswith("https://"):
            self._base = URL(host)
            if port is not None:
                self._base = self._base.with_port(port)
        else:
            scheme = "https" if use_https else "http"
            self._base = URL.build(scheme=scheme, host=host, port=port)

        self.credentials = TwoNCredentials(
            host=self._base.host or host,
            username=username,
            password=password,
            port=self._base.port,
            use_https=self._base.scheme == "https",
            verify_ssl=verify_ssl,
        )
        self._auth = _AuthState(self.credentials, auth_method)

        _LOGGER.debug("2N client initialized for %s", self._base)

    @property
    def base_url(self) -> URL:
        return self._base

    def reset_auth(self) -> None:
        """Forget the cached Digest challenge."""
        self._auth.reset()

    def _build_url(self, path: str, params: dict[str, Any] | None) -> URL:
        url = self._base.join(URL(path))
        if params:
            url = url.with_query({k: str(v) for k, v in params.items()})
        return url

    async def _send(self, url: URL, authorization: str | None, timeout_total: float) -> _RawResponse:
        headers = {hdrs.ACCEPT: "application/json"}
        if authorization:
            headers[hdrs.AUTHORIZATION] = authorization

        async with self._session.request(
            "GET",
            url,
            headers=headers,
            ssl=self._ssl,
            timeout=aiohttp.ClientTimeout(total=timeout_total),
        ) as resp:
            body = await resp.read()
            return _RawResponse(
                status=resp.status,
                www_authenticate=resp.headers.get(hdrs.WWW_AUTHENTICATE),
                content_type=resp.headers.get(hdrs.CONTENT_TYPE, ""),
                body=body,
            )

    async def _request_raw(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        timeout_total: float | None = None,
    ) -> _RawResponse:
        url = self._build_url(path, params)
        uri = url.raw_path_qs
        timeout_total = timeout_total or self._request_timeout

        _LOGGER.debug("Request: GET %s", uri)
        try:
            resp = await self._send(url, self._auth.authorization("GET", uri), timeout_total)

            if resp.status == 401:
                challenge = parse_www_authenticate(resp.www_authenticate)
                if challenge is None:
                    raise TwoNAuthenticationError("unauthorized: no digest challenge")

                _LOGGER.debug("Got 401, switching to Digest (realm=%s)", challenge.realm)
                self._auth.store_challenge(challenge)
                resp = await self._send(url, self._auth.authorization("GET", uri), timeout_total)

                if resp.status == 401:
                    raise TwoNAuthenticationError("unauthorized")
        except asyncio.TimeoutError as err:
            raise TwoNTimeoutError(f"timeout after {timeout_total}s: {path}") from err
        except aiohttp.ClientError as err:
            raise TwoNConnectionError(str(err)) from err

        _LOGGER.debug("Response status: %s", resp.status)
        if resp.status != 200:
            raise TwoNHttpError(resp.status, resp.excerpt())
        return resp

    async def async_request(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        timeout_total: float | None = None,
    ) -> TwoNResponse:
        """GET a JSON endpoint and return its envelope.

        success=false envelopes are returned, not raised; callers decide what
        an endpoint-specific error means.
        """

        resp = await self._request_raw(path, params, timeout_total=timeout_total)
        response = _parse_envelope(resp.body)
        if not response.success:
            _LOGGER.debug(
                "API returned success=false for %s: %s %s", path, response.error_code, response.error_message
            )
        return response

    async def async_fetch_binary(self, path: str, params: dict[str, Any] | None = None) -> bytes:
        """GET a binary endpoint (e.g. a JPEG snapshot)."""

        resp = await self._request_raw(path, params)
        # Some firmwares answer 200 with a JSON error envelope instead of an image.
        if resp.content_type.startswith("application/json"):
            _raise_for_envelope(_parse_envelope(resp.body))
        return resp.body

    async def async_get_system_info(self) -> TwoNSystemInfo:
        response = await self.async_request(API_SYSTEM_INFO)
        _raise_for_envelope(response)
        if not isinstance(response.result, dict):
            raise TwoNParseError(f"unexpected_response: {response}")

        info = TwoNSystemInfo.from_result(response.result)
        _LOGGER.info("Device: %s (S/N: %s, FW: %s)", info.title, info.serial, info.sw_version)
        return info

    async def async_get_switch_status(self, switch_id: int) -> TwoNSwitchStatus:
        response = await self.async_request(API_SWITCH_STATUS, params={"switch": switch_id})
        _raise_for_envelope(response)

        result = response.result if isinstance(response.result, dict) else {}
        switches = result.get("switches") or []
        if not isinstance(switches, list):
            raise TwoNParseError(f"unexpected_response: {response}")

        for item in switches:
            if not isinstance(item, dict):
                continue
            try:
                status = TwoNSwitchStatus.from_dict(item)
            except (KeyError, TypeError, ValueError):
                continue
            if status.switch_id == switch_id:
                return status
        raise TwoNApiError(f"switch_not_found: {switch_id}")

    async def async_set_switch_state(self, switch_id: int, action: str) -> None:
        if action not in SWITCH_ACTIONS:
            raise ValueError(f"Unsupported switch action: {action}")

        _LOGGER.info("Setting switch %s to %s", switch_id, action)
        response = await self.async_request(API_SWITCH_CTRL, params={"switch": switch_id, "action": action})
        _raise_for_envelope(response)

    async def async_unlock_door(self, switch_id: int) -> None:
        await self.async_set_switch_state(switch_id, SWITCH_ACTION_TRIGGER)

    async def async_get_snapshot(
        self, *, width: int = DEFAULT_SNAPSHOT_WIDTH, height: int = DEFAULT_SNAPSHOT_HEIGHT
    ) -> bytes:
        """Fetch a single JPEG snapshot."""

        image = await self.async_fetch_binary(API_CAMERA_SNAPSHOT, params={"width": width, "height": height})
        _LOGGER.debug("Received snapshot %sx%s: %d bytes", width, height, len(image))
        return image

    def get_rtsp_url(self) -> str:
        """Return the RTSP pull URL of the device camera."""

        user = quote(self.credentials.username, safe="")
        password = quote(self.credentials.password, safe="")
        return f"rtsp://{user}:{password}@{self.credentials.host}/{RTSP_STREAM_PATH}"

    async def async_get_log_caps(self) -> list[str]:
        """Return the list of supported log event types ("/api/log/caps")."""

        response = await self.async_request(API_LOG_CAPS)
        _raise_for_envelope(response)
        result = response.result if isinstance(response.result, dict) else {}
        events = result.get("events") or []
        if not isinstance(events, list):
            return []
        return [e for e in events if isinstance(e, str) and e]

    async def async_log_subscribe(self, include: list[str]) -> str:
        """Create a log subscription channel and return its id."""

        response = await self.async_request(API_LOG_SUBSCRIBE, params={"include": ",".join(include)})
        _raise_for_envelope(response)
        result = response.result if isinstance(response.result, dict) else {}
        if result.get("id") is None:
            raise TwoNParseError(f"unexpected_response: {response}")
        return str(result["id"])

    async def async_log_unsubscribe(self, subscription_id: str) -> None:
        """Close a log subscription channel."""

        response = await self.async_request(API_LOG_UNSUBSCRIBE, params={"id": subscription_id})
        _raise_for_envelope(response)

    async def async_log_pull(
        self, subscription_id: str, *, timeout: int = DEFAULT_EVENT_PULL_TIMEOUT
    ) -> list[TwoNEvent]:
        """Pull events from the log subscription queue (long-poll).

        Raises TwoNSubscriptionExpired when the device no longer knows the id.
        """

        response = await self.async_request(
            API_LOG_PULL,
            params={"id": subscription_id, "timeout": timeout},
            timeout_total=max(self._request_timeout, int(timeout) + self._request_timeout),
        )
        _raise_for_envelope(response)
        result = response.result if isinstance(response.result, dict) else {}
        events = result.get("events") or []
        if not isinstance(events, list):
            return []
        return [TwoNEvent.from_dict(e) for e in events if isinstance(e, dict)]
