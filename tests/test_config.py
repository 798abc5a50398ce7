from __future__ import annotations

import asyncio

import pytest
import voluptuous as vol

from py2n_intercom.api import TwoNClient
from py2n_intercom.config import CannotConnect, InvalidAuth, TwoNConfig, async_validate_input

from .conftest import FakeSession, challenge_response, json_response

BASE = {"host": "192.168.1.50", "username": "admin", "password": "secret"}


def test_defaults():
    config = TwoNConfig.from_dict(BASE)

    assert config.port == 80
    assert config.use_https is False
    assert config.verify_ssl is False
    assert config.auth_method == "basic"
    assert config.switch_id == 1
    assert config.doorbell_button == "1"
    assert config.video_codec == "libx264"
    assert config.event_poll_interval == 1.5
    assert config.init_retry_delay == 30.0


def test_https_default_port_and_coercion():
    config = TwoNConfig.from_dict({**BASE, "use_https": True, "switch_id": "2", "doorbell_button": 3, "foo": 1})

    assert config.port == 443
    assert config.switch_id == 2
    assert config.doorbell_button == "3"


@pytest.mark.parametrize(
    "override",
    [
        {"auth_method": "ntlm"},
        {"video_codec": "vp8"},
        {"port": 70000},
        {"rtsp_url": "http://cam/stream"},
        {"host": ""},
    ],
)
def test_invalid_values(override):
    with pytest.raises(vol.Invalid):
        TwoNConfig.from_dict({**BASE, **override})


def test_missing_credentials():
    with pytest.raises(vol.Invalid):
        TwoNConfig.from_dict({"host": "192.168.1.50"})


def test_create_client():
    config = TwoNConfig.from_dict({**BASE, "use_https": True, "port": 8443})

    client = config.create_client(FakeSession())

    assert isinstance(client, TwoNClient)
    assert str(client.base_url) == "https://192.168.1.50:8443"


@pytest.mark.asyncio
async def test_validate_input_returns_identity():
    session = FakeSession(
        [json_response({"success": True, "result": {"variant": "2N IP Style", "macAddr": "7C-1E-B3-00-11-22"}})]
    )

    info = await async_validate_input(session, TwoNConfig.from_dict(BASE))

    assert info == {"title": "2N IP Style", "unique_id": "7C:1E:B3:00:11:22"}


@pytest.mark.asyncio
async def test_validate_input_invalid_auth():
    session = FakeSession([challenge_response(), challenge_response()])

    with pytest.raises(InvalidAuth):
        await async_validate_input(session, TwoNConfig.from_dict(BASE))


@pytest.mark.asyncio
async def test_validate_input_cannot_connect():
    session = FakeSession([asyncio.TimeoutError()])

    with pytest.raises(CannotConnect):
        await async_validate_input(session, TwoNConfig.from_dict(BASE))
