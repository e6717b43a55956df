"""
FastAPI dependencies shared by the HTTP and WebSocket routes.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from .crud import SqlAlchemyStorage
from .database import SessionLocal, get_db
from .lifecycle import OrderLifecycleManager
from .realtime import ChannelMembership, EventBus
from .storage import Storage

# One bus per process; every connected WebSocket session registers here
event_bus = EventBus(ChannelMembership())


def get_events() -> EventBus:
    return event_bus


def get_session_factory():
    """Session factory for long-lived connections that open a session per message."""
    return SessionLocal


def get_storage(db: Session = Depends(get_db)) -> Storage:
    return SqlAlchemyStorage(db)


def get_manager(
    storage: Storage = Depends(get_storage),
    events: EventBus = Depends(get_events),
) -> OrderLifecycleManager:
    return OrderLifecycleManager(storage, events)
