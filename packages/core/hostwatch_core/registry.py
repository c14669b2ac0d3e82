"""Connected channels and their subscription state."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator


class ChannelState(str, Enum):
    CONNECTED = "Connected"
    SUBSCRIBED = "Subscribed"
    UNSUBSCRIBED = "Unsubscribed"
    CLOSED = "Closed"


@dataclass(eq=False)
class SubscriberChannel:
    """One live client connection; `handle` only needs an async `send_text(str)`."""

    handle: Any
    channel_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: ChannelState = ChannelState.CONNECTED

    @property
    def subscribed(self) -> bool:
        return self.state is ChannelState.SUBSCRIBED

    async def send(self, payload: str) -> None:
        await self.handle.send_text(payload)


class SubscriptionRegistry:
    """Sole owner of the channel set; mutated only by connection lifecycle events."""

    def __init__(self) -> None:
        self._channels: dict[str, SubscriberChannel] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, channel: object) -> bool:
        return isinstance(channel, SubscriberChannel) and self._channels.get(channel.channel_id) is channel

    def __iter__(self) -> Iterator[SubscriberChannel]:
        return iter(list(self._channels.values()))

    @property
    def active_count(self) -> int:
        return sum(1 for ch in self._channels.values() if ch.subscribed)

    def add(self, handle: Any) -> SubscriberChannel:
        channel = SubscriberChannel(handle=handle)
        self._channels[channel.channel_id] = channel
        return channel

    def remove(self, channel: SubscriberChannel) -> bool:
        channel.state = ChannelState.CLOSED
        return self._channels.pop(channel.channel_id, None) is not None

    def subscribe(self, channel: SubscriberChannel) -> None:
        if channel in self:
            channel.state = ChannelState.SUBSCRIBED

    def unsubscribe(self, channel: SubscriberChannel) -> None:
        if channel in self:
            channel.state = ChannelState.UNSUBSCRIBED

    def subscribed(self) -> list[SubscriberChannel]:
        return [ch for ch in self._channels.values() if ch.subscribed]
