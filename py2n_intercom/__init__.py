"""Async client for 2N IP intercoms."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from typing import Any

import aiohttp

from .api import TwoNApiError, TwoNClient
from .camera import TwoNStreamManager
from .config import TwoNConfig
from .const import DEFAULT_EVENT_FILTER
from .coordinator import TwoNSwitchCoordinator
from .events import EventAction, EventActionType, PollResult, TwoNEventManager, classify_events
from .models import TwoNSwitchStatus, TwoNSystemInfo

_LOGGER = logging.getLogger(__name__)


class TwoNIntercom:
    """Runtime wiring of one intercom: client, event/switch loops and streaming.

    Initialisation is retried at a fixed delay until the device answers.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        config: TwoNConfig,
        *,
        action_callback: Callable[[EventAction], None] | None = None,
        switch_callback: Callable[[TwoNSwitchStatus], None] | None = None,
    ) -> None:
        self.config = config
        self.client: TwoNClient = config.create_client(session)
        self.coordinator = TwoNSwitchCoordinator(
            self.client,
            switch_id=config.switch_id,
            update_interval=config.state_poll_interval,
            listener=switch_callback,
        )
        self.stream_manager = TwoNStreamManager(
            self.client,
            rtsp_url=config.rtsp_url,
            video_codec=config.video_codec,
            ffmpeg_path=config.ffmpeg_path,
        )
        self.event_manager: TwoNEventManager | None = None
        self.system_info: TwoNSystemInfo | None = None
        # Logging capabilities (/api/log/caps)
        self.log_caps: set[str] = set()

        self._action_callback = action_callback
        self._init_task: asyncio.Task | None = None

    @property
    def initialized(self) -> bool:
        return self.system_info is not None

    async def async_initialize(self) -> None:
        """Identify the device, subscribe to events and start polling."""

        self.system_info = await self.client.async_get_system_info()

        # Read logging capabilities once so we can subscribe only to supported events.
        try:
            self.log_caps = set(await self.client.async_get_log_caps())
        except TwoNApiError as err:
            _LOGGER.debug("Log caps unavailable, using default event filter: %s", err)
            self.log_caps = set()

        event_filter = DEFAULT_EVENT_FILTER
        if self.log_caps:
            event_filter = [e for e in DEFAULT_EVENT_FILTER if e in self.log_caps]

        self.event_manager = TwoNEventManager(
            self.client,
            event_filter=event_filter,
            pull_timeout=self.config.event_pull_timeout,
            result_callback=self._handle_poll_result,
        )
        try:
            await self.event_manager.async_subscribe()
        except TwoNApiError as err:
            # Polling re-subscribes on its first tick.
            _LOGGER.error("Failed to subscribe to events: %s", err)
        self.event_manager.async_start(self.config.event_poll_interval)
        self.coordinator.async_start()

        _LOGGER.info("Connected to %s (S/N: %s)", self.system_info.title, self.system_info.serial)

    async def _async_initialize_until_ready(self) -> None:
        while True:
            try:
                await self.async_initialize()
                return
            except TwoNApiError as err:
                _LOGGER.error(
                    "Failed to initialize %s: %s; retrying in %ss", self.config.host, err, self.config.init_retry_delay
                )
            await asyncio.sleep(self.config.init_retry_delay)

    def async_start(self) -> None:
        if self._init_task and not self._init_task.done():
            return
        self._init_task = asyncio.create_task(self._async_initialize_until_ready(), name="py2n_intercom-init")

    def _handle_poll_result(self, result: PollResult) -> None:
        for event in result.events:
            _LOGGER.debug("Event received: %s - %s", event.event, event.params)

        for action in classify_events(result.events, self.config.doorbell_button):
            if action.type is EventActionType.SWITCH_CHANGED and action.switch_id in (None, self.config.switch_id):
                self.coordinator.async_set_active(bool(action.state))
            if action.is_doorbell:
                _LOGGER.info("Doorbell triggered (%s)", action.type.value)
            if self._action_callback is not None:
                self._action_callback(action)

    async def async_unlock(self) -> None:
        """Trigger the door release switch."""
        await self.client.async_unlock_door(self.config.switch_id)
        await self.coordinator.async_refresh()

    async def async_stop(self) -> None:
        task, self._init_task = self._init_task, None
        if task and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        if self.event_manager is not None:
            await self.event_manager.async_stop()
        await self.coordinator.async_stop()
        await self.stream_manager.async_stop_all()


async def async_setup(
    session: aiohttp.ClientSession,
    raw_config: dict[str, Any],
    *,
    action_callback: Callable[[EventAction], None] | None = None,
    switch_callback: Callable[[TwoNSwitchStatus], None] | None = None,
) -> TwoNIntercom:
    """Validate config and start an intercom runtime in the background."""

    intercom = TwoNIntercom(
        session,
        TwoNConfig.from_dict(raw_config),
        action_callback=action_callback,
        switch_callback=switch_callback,
    )
    intercom.async_start()
    return intercom
