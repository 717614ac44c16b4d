"""
In-process publish/subscribe channel used to replicate snapshots.

Every message is delivered to every current subscriber of the channel name,
in subscription order. Subscribers may be plain callables or coroutine
functions.
"""

import inspect
from typing import Any, Callable, Dict, List

from .exceptions import ChannelUnavailable
from .logger import get_logger

log = get_logger("medal_tally.channel")

DATA_UPDATED = "data_updated"


def build_update_message(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Wrap a snapshot document in a replication message.

    @param document: Full snapshot document
    @return: Message carrying the snapshot as a full replacement
    """
    return {
        "type": DATA_UPDATED,
        "timestamp": document.get("lastUpdated"),
        "data": document,
    }


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop delivery."""

    def __init__(self, owner: Any, callback: Callable) -> None:
        self._owner = owner
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._owner._discard(self)


class BroadcastChannel:
    """A named topic; publish() fans a message out to all subscribers."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.closed = False
        self._subscriptions: List[Subscription] = []

    def subscribe(self, callback: Callable[[Dict[str, Any]], Any]) -> Subscription:
        """
        Register a message callback.

        @param callback: Called with each published message
        @return: Subscription handle
        @raise ChannelUnavailable: If the channel has been closed
        """
        if self.closed:
            raise ChannelUnavailable("Channel is closed", {"channel": self.name})
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        return subscription

    def _discard(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def publish(self, message: Dict[str, Any]) -> int:
        """
        Deliver a message to every subscriber.

        A failing subscriber is logged and does not stop delivery to the rest.

        @param message: Message to deliver
        @return: Number of subscribers the message was delivered to
        @raise ChannelUnavailable: If the channel has been closed
        """
        if self.closed:
            raise ChannelUnavailable("Channel is closed", {"channel": self.name})

        delivered = 0
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                result = subscription.callback(message)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                log.error(f"Subscriber on {self.name} failed: {e}")
        return delivered

    def close(self) -> None:
        self.closed = True
        for subscription in list(self._subscriptions):
            subscription.active = False
        self._subscriptions.clear()
