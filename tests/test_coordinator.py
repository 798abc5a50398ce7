from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from py2n_intercom.api import TwoNTimeoutError
from py2n_intercom.coordinator import TwoNSwitchCoordinator
from py2n_intercom.models import TwoNSwitchStatus


def _client(*statuses) -> MagicMock:
    client = MagicMock()
    client.async_get_switch_status = AsyncMock(side_effect=list(statuses))
    return client


@pytest.mark.asyncio
async def test_listener_called_on_change_only():
    listener = MagicMock()
    client = _client(
        TwoNSwitchStatus(switch_id=1, active=False),
        TwoNSwitchStatus(switch_id=1, active=False),
        TwoNSwitchStatus(switch_id=1, active=True),
    )
    coordinator = TwoNSwitchCoordinator(client, listener=listener)

    for _ in range(3):
        await coordinator.async_refresh()

    assert [c.args[0].active for c in listener.call_args_list] == [False, True]
    assert coordinator.data.active is True
    assert coordinator.last_update_success


@pytest.mark.asyncio
async def test_refresh_failure_keeps_last_data():
    client = _client(TwoNSwitchStatus(switch_id=2, active=True), TwoNTimeoutError("timeout"))
    coordinator = TwoNSwitchCoordinator(client, switch_id=2)

    await coordinator.async_refresh()
    assert await coordinator.async_refresh() is None

    assert coordinator.last_update_success is False
    assert coordinator.data.active is True
    client.async_get_switch_status.assert_awaited_with(2)


def test_pushed_state_keeps_flags():
    listener = MagicMock()
    coordinator = TwoNSwitchCoordinator(MagicMock(), listener=listener)
    coordinator.async_set_updated_data(TwoNSwitchStatus(switch_id=1, active=False, locked=True))

    coordinator.async_set_active(True)
    coordinator.async_set_active(True)

    assert coordinator.data == TwoNSwitchStatus(switch_id=1, active=True, locked=True)
    assert listener.call_count == 2


@pytest.mark.asyncio
async def test_polling_loop_survives_errors():
    client = MagicMock()
    client.async_get_switch_status = AsyncMock(side_effect=TwoNTimeoutError("timeout"))
    coordinator = TwoNSwitchCoordinator(client, update_interval=0.01)

    coordinator.async_start()
    coordinator.async_start()
    await asyncio.sleep(0.05)
    await coordinator.async_stop()
    calls = client.async_get_switch_status.await_count
    await asyncio.sleep(0.03)

    assert calls >= 2
    assert client.async_get_switch_status.await_count == calls
