"""
Real-time event fan-out for order and measurement notifications.

Sessions join named channels ("order-<id>", "tailor-<id>") and receive every
event published on them while connected. Delivery is best-effort and
at-most-once: nothing is stored for sessions that are not connected, and a
failing session is dropped without affecting the publisher or other
subscribers.
"""
import asyncio
import itertools
import logging
from typing import Any, Dict, Optional, Protocol, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def order_channel(order_id: int) -> str:
    return f"order-{order_id}"


def tailor_channel(tailor_id: int) -> str:
    return f"tailor-{tailor_id}"


class Session(Protocol):
    """Anything that can receive an event frame."""

    def deliver(self, event: str, data: Any) -> None:
        ...


class ChannelMembership:
    """In-process membership tables: channel -> sessions and session -> channels."""

    def __init__(self):
        self._members: Dict[str, Set[Session]] = {}
        self._channels: Dict[Session, Set[str]] = {}

    def add(self, channel: str, session: Session) -> None:
        self._members.setdefault(channel, set()).add(session)
        self._channels.setdefault(session, set()).add(channel)

    def discard(self, channel: str, session: Session) -> None:
        members = self._members.get(channel)
        if members is not None:
            members.discard(session)
            if not members:
                del self._members[channel]
        channels = self._channels.get(session)
        if channels is not None:
            channels.discard(channel)

    def register(self, session: Session) -> None:
        self._channels.setdefault(session, set())

    def remove_session(self, session: Session) -> Set[str]:
        channels = self._channels.pop(session, set())
        for channel in channels:
            members = self._members.get(channel)
            if members is not None:
                members.discard(session)
                if not members:
                    del self._members[channel]
        return channels

    def members(self, channel: str) -> Set[Session]:
        return set(self._members.get(channel, ()))

    def channels_of(self, session: Session) -> Set[str]:
        return set(self._channels.get(session, ()))

    def sessions(self) -> Set[Session]:
        return set(self._channels)


class EventBus:
    """
    Publish/subscribe relay over injected channel membership.

    publish() and broadcast() never block on subscribers and never raise
    because of them.
    """

    def __init__(self, membership: Optional[ChannelMembership] = None):
        self.membership = membership if membership is not None else ChannelMembership()

    def connect(self, session: Session) -> None:
        """Register a session so it receives broadcasts before joining any channel."""
        self.membership.register(session)

    def join(self, channel: str, session: Session) -> None:
        self.membership.add(channel, session)
        logger.info(f"Session {session} joined {channel}")

    def leave(self, channel: str, session: Session) -> None:
        self.membership.discard(channel, session)

    def disconnect(self, session: Session) -> None:
        channels = self.membership.remove_session(session)
        logger.info(f"Session {session} disconnected from {len(channels)} channel(s)")

    def publish(self, channel: str, event: str, data: Any) -> int:
        """
        Deliver an event to every session joined to a channel.

        Returns:
            Number of sessions the event was handed to
        """
        members = self.membership.members(channel)
        if not members:
            logger.debug(f"No subscribers on {channel} for {event}")
            return 0
        return self._deliver_all(members, event, data)

    def broadcast(self, event: str, data: Any, exclude: Optional[Session] = None) -> int:
        """Deliver an event to every connected session except `exclude`."""
        sessions = self.membership.sessions()
        sessions.discard(exclude)
        return self._deliver_all(sessions, event, data)

    def _deliver_all(self, sessions, event: str, data: Any) -> int:
        delivered = 0
        for session in sessions:
            try:
                session.deliver(event, data)
                delivered += 1
            except Exception as e:
                logger.debug(f"Dropping session {session} after failed {event} delivery: {e}")
                self.disconnect(session)
        return delivered


_session_ids = itertools.count(1)


class WebSocketSession:
    """
    Session adapter for a FastAPI WebSocket connection.

    deliver() only enqueues the frame on the connection's event loop; pump()
    drains the queue in order, so per-subscriber delivery follows publish order.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.id = next(_session_ids)
        self._loop = asyncio.get_running_loop()
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._pump: Optional[asyncio.Future] = None

    def __repr__(self) -> str:
        return f"ws-{self.id}"

    def deliver(self, event: str, data: Any) -> None:
        self._loop.call_soon_threadsafe(self._outbox.put_nowait, {"event": event, "data": data})

    async def pump(self) -> None:
        while True:
            frame = await self._outbox.get()
            await self.websocket.send_json(frame)

    def start(self) -> None:
        """Start forwarding delivered frames to the socket."""
        self._pump = asyncio.ensure_future(self.pump())

    async def close(self) -> None:
        """Stop the pump and collect its outcome, including a failed send."""
        if self._pump is None:
            return
        self._pump.cancel()
        try:
            await self._pump
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.info(f"Realtime session {self!r} stopped sending: {e}")
        self._pump = None
