"""Event listener for 2N Intercom (log subscription + periodic pull)."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
import logging

from .api import TwoNApiError, TwoNClient, TwoNNotSubscribedError, TwoNSubscriptionExpired
from .const import (
    DEFAULT_DOORBELL_BUTTON,
    DEFAULT_EVENT_FILTER,
    DEFAULT_EVENT_POLL_INTERVAL,
    DEFAULT_EVENT_PULL_TIMEOUT,
    EVENT_CALL_STATE_CHANGED,
    EVENT_INPUT_CHANGED,
    EVENT_KEY_PRESSED,
    EVENT_MOTION_DETECTED,
    EVENT_SWITCH_STATE_CHANGED,
)
from .models import TwoNEvent, _to_bool

_LOGGER = logging.getLogger(__name__)


class EventActionType(Enum):
    """Semantic outcome of a raw log event."""

    BUTTON_PRESSED = "button_pressed"
    INPUT_ACTIVATED = "input_activated"
    CALL_STARTED = "call_started"
    SWITCH_CHANGED = "switch_changed"
    MOTION_CHANGED = "motion_changed"


_DOORBELL_ACTIONS = {
    EventActionType.BUTTON_PRESSED,
    EventActionType.INPUT_ACTIVATED,
    EventActionType.CALL_STARTED,
}


@dataclass(frozen=True, slots=True)
class EventAction:
    type: EventActionType
    event: TwoNEvent
    state: bool | None = None
    switch_id: int | None = None

    @property
    def is_doorbell(self) -> bool:
        return self.type in _DOORBELL_ACTIONS


def classify_event(event: TwoNEvent, doorbell_button: str = DEFAULT_DOORBELL_BUTTON) -> EventAction | None:
    """Map a raw log event to an action, or None if it means nothing to us."""

    params = event.params

    if event.event == EVENT_KEY_PRESSED:
        if str(params.get("key")) == str(doorbell_button):
            return EventAction(EventActionType.BUTTON_PRESSED, event)
        return None

    if event.event == EVENT_INPUT_CHANGED:
        # Some units wire the bell push button to a logical input.
        if _to_bool(params.get("state")):
            return EventAction(EventActionType.INPUT_ACTIVATED, event, state=True)
        return None

    if event.event == EVENT_CALL_STATE_CHANGED:
        state = str(params.get("state") or "").lower()
        direction = str(params.get("direction") or "").lower()
        if state in ("ringing", "connecting") or direction == "outgoing":
            return EventAction(EventActionType.CALL_STARTED, event)
        return None

    if event.event == EVENT_SWITCH_STATE_CHANGED:
        try:
            sid = int(params.get("switch"))
        except (TypeError, ValueError):
            sid = None
        return EventAction(
            EventActionType.SWITCH_CHANGED,
            event,
            state=bool(_to_bool(params.get("state"))),
            switch_id=sid,
        )

    if event.event == EVENT_MOTION_DETECTED:
        state = str(params.get("state") or "").lower()
        return EventAction(EventActionType.MOTION_CHANGED, event, state=state == "in")

    return None


def classify_events(
    events: Iterable[TwoNEvent], doorbell_button: str = DEFAULT_DOORBELL_BUTTON
) -> list[EventAction]:
    actions: list[EventAction] = []
    for event in events:
        action = classify_event(event, doorbell_button)
        if action is not None:
            actions.append(action)
    return actions


@dataclass(slots=True)
class PollResult:
    """Outcome of one polling tick: events, or the error that prevented them."""

    events: list[TwoNEvent] = field(default_factory=list)
    error: Exception | None = None


class TwoNEventManager:
    """Maintain a log subscription channel and pull it at a fixed period."""

    def __init__(
        self,
        client: TwoNClient,
        *,
        event_filter: list[str] | None = None,
        pull_timeout: int = DEFAULT_EVENT_PULL_TIMEOUT,
        result_callback: Callable[[PollResult], None] | None = None,
    ) -> None:
        self._client = client
        self._event_filter = list(event_filter if event_filter is not None else DEFAULT_EVENT_FILTER)
        self._pull_timeout = pull_timeout
        self._result_callback = result_callback

        self._subscription_id: str | None = None
        self._subscription_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._ticks: set[asyncio.Task] = set()

    @property
    def subscription_id(self) -> str | None:
        return self._subscription_id

    @property
    def is_subscribed(self) -> bool:
        return self._subscription_id is not None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def async_subscribe(self) -> str:
        """Create a subscription channel; device rejection propagates."""
        async with self._subscription_lock:
            return await self._subscribe_locked()

    async def _subscribe_locked(self) -> str:
        self._subscription_id = await self._client.async_log_subscribe(self._event_filter)
        _LOGGER.info("Subscribed to 2N events, subscription id %s", self._subscription_id)
        return self._subscription_id

    async def async_pull(self, timeout: int | None = None) -> list[TwoNEvent]:
        """Pull pending events.

        An expired subscription is replaced transparently and yields [].
        """

        subscription_id = self._subscription_id
        if subscription_id is None:
            raise TwoNNotSubscribedError("not_subscribed")

        try:
            events = await self._client.async_log_pull(
                subscription_id,
                timeout=self._pull_timeout if timeout is None else timeout,
            )
        except TwoNSubscriptionExpired:
            _LOGGER.warning("2N subscription %s expired, re-subscribing", subscription_id)
            async with self._subscription_lock:
                # Another tick may have replaced it already.
                if self._subscription_id == subscription_id:
                    self._subscription_id = None
                    try:
                        await self._subscribe_locked()
                    except TwoNApiError as err:
                        _LOGGER.warning("Failed to re-subscribe to 2N events: %s", err)
            return []

        if events:
            _LOGGER.debug("Received %d event(s)", len(events))
        return events

    async def _ensure_subscribed(self) -> None:
        async with self._subscription_lock:
            if self._subscription_id is None:
                await self._subscribe_locked()

    async def _poll_once(self) -> PollResult:
        try:
            await self._ensure_subscribed()
            result = PollResult(events=await self.async_pull())
        except asyncio.CancelledError:
            raise
        except TwoNApiError as err:
            _LOGGER.warning("2N event poll error: %s", err)
            result = PollResult(error=err)
        except Exception as err:
            _LOGGER.exception("Unexpected error in 2N event listener")
            result = PollResult(error=err)

        if self._result_callback is not None:
            try:
                self._result_callback(result)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Error in 2N event result callback")
        return result

    async def _run(self, interval: float) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            next_tick += interval
            tick = asyncio.create_task(self._poll_once())
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    def async_start(self, interval: float = DEFAULT_EVENT_POLL_INTERVAL) -> None:
        """Start the periodic pull; a no-op when already running."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(interval), name="py2n_intercom-events")
        _LOGGER.info("Event polling started (every %ss)", interval)

    async def async_stop(self) -> None:
        """Stop polling and close the subscription channel (best-effort)."""
        tasks = [t for t in (self._task, *self._ticks) if t is not None and not t.done()]
        self._task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._ticks.clear()

        async with self._subscription_lock:
            subscription_id = self._subscription_id
            self._subscription_id = None
        if subscription_id is None:
            return
        try:
            await self._client.async_log_unsubscribe(subscription_id)
        except TwoNApiError as err:
            # Channel may already be gone; ignore.
            _LOGGER.debug("Failed to unsubscribe %s: %s", subscription_id, err)
        else:
            _LOGGER.info("Unsubscribed from 2N events")
