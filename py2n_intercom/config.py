"""Configuration for the 2N Intercom client."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

import aiohttp
import voluptuous as vol

from .api import TwoNApiError, TwoNAuthenticationError, TwoNClient
from .const import (
    AUTH_METHOD_BASIC,
    AUTH_METHODS,
    CONF_AUTH_METHOD,
    CONF_DOORBELL_BUTTON,
    CONF_EVENT_POLL_INTERVAL,
    CONF_EVENT_PULL_TIMEOUT,
    CONF_FFMPEG_PATH,
    CONF_HOST,
    CONF_INIT_RETRY_DELAY,
    CONF_PASSWORD,
    CONF_PORT,
    CONF_RTSP_URL,
    CONF_STATE_POLL_INTERVAL,
    CONF_SWITCH_ID,
    CONF_USE_HTTPS,
    CONF_USERNAME,
    CONF_VERIFY_SSL,
    CONF_VIDEO_CODEC,
    DEFAULT_DOORBELL_BUTTON,
    DEFAULT_EVENT_POLL_INTERVAL,
    DEFAULT_EVENT_PULL_TIMEOUT,
    DEFAULT_HTTPS_PORT,
    DEFAULT_INIT_RETRY_DELAY,
    DEFAULT_PORT,
    DEFAULT_STATE_POLL_INTERVAL,
    DEFAULT_SWITCH_ID,
    DEFAULT_USE_HTTPS,
    DEFAULT_VERIFY_SSL,
    DEFAULT_VIDEO_CODEC,
    VIDEO_CODECS,
)

_LOGGER = logging.getLogger(__name__)

_PORT = vol.All(vol.Coerce(int), vol.Range(min=1, max=65535))
_SECONDS = vol.All(vol.Coerce(float), vol.Range(min=0.1))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_HOST): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_PORT): _PORT,
        vol.Required(CONF_USERNAME): str,
        vol.Required(CONF_PASSWORD): str,
        vol.Optional(CONF_USE_HTTPS, default=DEFAULT_USE_HTTPS): bool,
        vol.Optional(CONF_VERIFY_SSL, default=DEFAULT_VERIFY_SSL): bool,
        vol.Optional(CONF_AUTH_METHOD, default=AUTH_METHOD_BASIC): vol.In(AUTH_METHODS),
        vol.Optional(CONF_SWITCH_ID, default=DEFAULT_SWITCH_ID): vol.All(vol.Coerce(int), vol.Range(min=1, max=64)),
        vol.Optional(CONF_DOORBELL_BUTTON, default=DEFAULT_DOORBELL_BUTTON): vol.Coerce(str),
        vol.Optional(CONF_RTSP_URL): vol.All(str, vol.Match(r"^rtsps?://")),
        vol.Optional(CONF_VIDEO_CODEC, default=DEFAULT_VIDEO_CODEC): vol.In(VIDEO_CODECS),
        vol.Optional(CONF_FFMPEG_PATH): str,
        vol.Optional(CONF_EVENT_POLL_INTERVAL, default=DEFAULT_EVENT_POLL_INTERVAL): _SECONDS,
        vol.Optional(CONF_EVENT_PULL_TIMEOUT, default=DEFAULT_EVENT_PULL_TIMEOUT): vol.All(
            vol.Coerce(int), vol.Range(min=0, max=60)
        ),
        vol.Optional(CONF_STATE_POLL_INTERVAL, default=DEFAULT_STATE_POLL_INTERVAL): _SECONDS,
        vol.Optional(CONF_INIT_RETRY_DELAY, default=DEFAULT_INIT_RETRY_DELAY): _SECONDS,
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(frozen=True, slots=True)
class TwoNConfig:
    """Validated configuration of one intercom."""

    host: str
    username: str
    password: str
    port: int
    use_https: bool = DEFAULT_USE_HTTPS
    verify_ssl: bool = DEFAULT_VERIFY_SSL
    auth_method: str = AUTH_METHOD_BASIC
    switch_id: int = DEFAULT_SWITCH_ID
    doorbell_button: str = DEFAULT_DOORBELL_BUTTON
    rtsp_url: str | None = None
    video_codec: str = DEFAULT_VIDEO_CODEC
    ffmpeg_path: str | None = None
    event_poll_interval: float = DEFAULT_EVENT_POLL_INTERVAL
    event_pull_timeout: int = DEFAULT_EVENT_PULL_TIMEOUT
    state_poll_interval: float = DEFAULT_STATE_POLL_INTERVAL
    init_retry_delay: float = DEFAULT_INIT_RETRY_DELAY

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TwoNConfig:
        """Validate raw config; raises voluptuous.Invalid."""

        data = CONFIG_SCHEMA(dict(raw))
        if CONF_PORT not in data:
            data[CONF_PORT] = DEFAULT_HTTPS_PORT if data[CONF_USE_HTTPS] else DEFAULT_PORT
        return cls(**data)

    def create_client(self, session: aiohttp.ClientSession) -> TwoNClient:
        return TwoNClient(
            session,
            self.host,
            self.username,
            self.password,
            port=self.port,
            auth_method=self.auth_method,
            use_https=self.use_https,
            verify_ssl=self.verify_ssl,
        )


class CannotConnect(Exception):
    """Error to indicate we cannot connect."""


class InvalidAuth(Exception):
    """Error to indicate there is invalid auth."""


async def async_validate_input(session: aiohttp.ClientSession, config: TwoNConfig) -> dict[str, Any]:
    """Validate the config allows us to connect.

    Returns a title and a stable unique id for the device.
    """
    client = config.create_client(session)

    try:
        info = await client.async_get_system_info()
    except TwoNAuthenticationError as err:
        raise InvalidAuth from err
    except TwoNApiError as err:
        _LOGGER.debug("Cannot connect to %s: %s", config.host, err)
        raise CannotConnect from err

    return {
        "title": info.title,
        "unique_id": info.mac or info.serial or config.host,
    }
