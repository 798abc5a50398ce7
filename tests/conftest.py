"""Shared fakes for the 2N client tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from multidict import CIMultiDict
import pytest

from py2n_intercom.api import TwoNClient


class FakeResponse:
    def __init__(self, status: int = 200, body: bytes = b"", headers: dict[str, str] | None = None) -> None:
        self.status = status
        self._body = body
        self.headers = CIMultiDict(headers or {})

    async def read(self) -> bytes:
        return self._body

    async def __aenter__(self) -> FakeResponse:
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None


def json_response(data: Any, status: int = 200, headers: dict[str, str] | None = None) -> FakeResponse:
    merged = {"Content-Type": "application/json"}
    merged.update(headers or {})
    return FakeResponse(status=status, body=json.dumps(data).encode(), headers=merged)


def challenge_response(header: str = 'Digest realm="2N API", nonce="abc123nonce", qop="auth"') -> FakeResponse:
    return FakeResponse(status=401, body=b"Unauthorized", headers={"WWW-Authenticate": header})


class FakeSession:
    """Stands in for aiohttp.ClientSession; replays queued responses in order."""

    def __init__(self, responses: list[FakeResponse | BaseException] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    def queue(self, *items: FakeResponse | BaseException) -> None:
        self.responses.extend(items)

    def request(self, method: str, url, **kwargs) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def authorization(self, index: int) -> str | None:
        return self.calls[index]["headers"].get("Authorization")


class FakeProcess:
    """Mimics asyncio.subprocess.Process for the ffmpeg supervisor."""

    def __init__(self, stderr_data: bytes = b"", pid: int = 4242) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.killed = False
        self.stderr = asyncio.StreamReader()
        if stderr_data:
            self.stderr.feed_data(stderr_data)
        self._exited = asyncio.Event()

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)

    def exit(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
            self.stderr.feed_eof()
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(session: FakeSession) -> TwoNClient:
    return TwoNClient(session, "192.168.1.50", "admin", "p@ss word")
