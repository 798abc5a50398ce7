"""Switch (lock) state coordinator for 2N Intercom."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging

from .api import TwoNApiError, TwoNClient
from .const import DEFAULT_STATE_POLL_INTERVAL, DEFAULT_SWITCH_ID
from .models import TwoNSwitchStatus

_LOGGER = logging.getLogger(__name__)


class TwoNSwitchCoordinator:
    """Coordinator that periodically polls the status of one switch.

    The listener is called only when the relay's `active` flag changes,
    whether the change was polled or pushed from a SwitchStateChanged event.
    """

    def __init__(
        self,
        client: TwoNClient,
        *,
        switch_id: int = DEFAULT_SWITCH_ID,
        update_interval: float = DEFAULT_STATE_POLL_INTERVAL,
        listener: Callable[[TwoNSwitchStatus], None] | None = None,
    ) -> None:
        self.client = client
        self.switch_id = switch_id
        self.update_interval = update_interval
        self._listener = listener
        self.data: TwoNSwitchStatus | None = None
        self.last_update_success = False
        self._task: asyncio.Task | None = None

    async def async_refresh(self) -> TwoNSwitchStatus | None:
        try:
            status = await self.client.async_get_switch_status(self.switch_id)
        except TwoNApiError as err:
            _LOGGER.warning("Failed to poll switch %s: %s", self.switch_id, err)
            self.last_update_success = False
            return None

        self.last_update_success = True
        self.async_set_updated_data(status)
        return status

    def async_set_updated_data(self, status: TwoNSwitchStatus) -> None:
        previous = self.data
        self.data = status
        if previous is not None and previous.active == status.active:
            return
        _LOGGER.info("Switch %s is now %s", status.switch_id, "active" if status.active else "inactive")
        if self._listener is not None:
            self._listener(status)

    def async_set_active(self, active: bool) -> None:
        """Apply a pushed state change without an extra poll."""
        if self.data is None:
            status = TwoNSwitchStatus(switch_id=self.switch_id, active=active)
        else:
            status = TwoNSwitchStatus(
                switch_id=self.switch_id,
                active=active,
                locked=self.data.locked,
                held=self.data.held,
            )
        self.async_set_updated_data(status)

    async def _run(self) -> None:
        while True:
            await self.async_refresh()
            await asyncio.sleep(self.update_interval)

    def async_start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name=f"py2n_intercom-switch-{self.switch_id}")
        _LOGGER.info("Starting state polling for switch %s (every %ss)", self.switch_id, self.update_interval)

    async def async_stop(self) -> None:
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
