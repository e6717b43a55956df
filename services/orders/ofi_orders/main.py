"""
Orders Service API

This module implements the FastAPI application for the tailoring marketplace:
order placement and lifecycle, real-time order tracking over WebSockets,
payment settlement (see payments.py) and the customer, tailor and design
records orders reference.

Endpoints:
    GET /healthz: Health check endpoint for orchestration systems
    POST /orders: Place an order
    GET /orders/{order_id}: Order with its design, tailor and customer
    PUT /orders/{order_id}/status: Advance or cancel an order
    GET /orders/{order_id}/events: Order timeline
    GET /orders/{order_id}/commission: Commission and checkout preview
    GET /orders/user/{user_id}: Orders placed by a customer
    GET /orders/tailor/{tailor_id}: Orders received by a tailor
    GET /dashboard/active-orders/{user_id}: A customer's open orders
    WS /ws: Real-time order tracking

Attributes:
    app (FastAPI): The FastAPI application instance configured with the title "orders-service"
"""
import json
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse

from . import cache, models, schemas
from .crud import SqlAlchemyStorage
from .database import init_db, session_scope
from .dependencies import get_events, get_manager, get_session_factory, get_storage
from .errors import (
    ConcurrentUpdateError, GatewayError, InvalidTransitionError, NotFoundError,
    OrderServiceError, SignatureError, ValidationError,
)
from .lifecycle import OrderLifecycleManager
from .payments import router as payments_router
from .realtime import EventBus, WebSocketSession, order_channel, tailor_channel
from .seed import seed_marketplace
from .storage import Storage

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SEED_DATA = os.getenv("SEED_DATA", "false").lower() == "true"
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "1.0.0")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if SEED_DATA:
        with session_scope() as db:
            seed_marketplace(SqlAlchemyStorage(db))
    yield


app = FastAPI(title="orders-service", version=SERVICE_VERSION, lifespan=lifespan)
app.include_router(payments_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    if request.url.path != "/healthz":
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} in {elapsed_ms:.0f}ms")
    return response


def _error_body(exc: OrderServiceError, **extra) -> dict:
    return {"detail": exc.message, "code": exc.code, **extra}


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_body(exc, field=exc.field))


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=_error_body(exc, entity=exc.entity_name, entity_id=str(exc.entity_id)),
    )


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(exc, current_status=exc.current_status, requested_status=exc.requested_status),
    )


@app.exception_handler(ConcurrentUpdateError)
async def concurrent_update_handler(request: Request, exc: ConcurrentUpdateError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_body(exc))


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    logger.error(f"Payment gateway failure on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=_error_body(exc))


@app.exception_handler(SignatureError)
async def signature_error_handler(request: Request, exc: SignatureError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_body(exc))


@app.get("/healthz", response_model=dict)
def health():
    """
    Health check endpoint for the orders service.

    Returns:
        dict: status ("healthy"), current UTC timestamp and service version

    Example:
        GET /healthz
        Response: {"status": "healthy", "timestamp": "...", "version": "1.0.0"}
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": SERVICE_VERSION,
    }


# Customers and tailors

@app.post("/users", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def create_user(user: schemas.UserCreate, storage: Storage = Depends(get_storage)):
    if storage.get_user_by_email(user.email) is not None:
        raise ValidationError("A user with this email already exists", field="email")
    return storage.create_user(user.model_dump())


@app.get("/users/{user_id}", response_model=schemas.User)
def get_user(user_id: int, storage: Storage = Depends(get_storage)):
    user = storage.get_user(user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


@app.post("/tailors", response_model=schemas.Tailor, status_code=status.HTTP_201_CREATED)
def create_tailor(tailor: schemas.TailorCreate, storage: Storage = Depends(get_storage)):
    if storage.get_tailor_by_email(tailor.email) is not None:
        raise ValidationError("A tailor with this email already exists", field="email")
    return storage.create_tailor(tailor.model_dump())


@app.get("/tailors/{tailor_id}", response_model=schemas.Tailor)
def get_tailor(tailor_id: int, storage: Storage = Depends(get_storage)):
    tailor = storage.get_tailor(tailor_id)
    if tailor is None:
        raise NotFoundError("Tailor", tailor_id)
    return tailor


@app.post("/designs", response_model=schemas.Design, status_code=status.HTTP_201_CREATED)
def create_design(design: schemas.DesignCreate, storage: Storage = Depends(get_storage)):
    if storage.get_tailor(design.tailor_id) is None:
        raise NotFoundError("Tailor", design.tailor_id)
    return storage.create_design(design.model_dump())


@app.get("/designs/{design_id}", response_model=schemas.Design)
def get_design(design_id: int, storage: Storage = Depends(get_storage)):
    design = storage.get_design(design_id)
    if design is None:
        raise NotFoundError("Design", design_id)
    return design


# Measurements and style preferences

def _publish_measurement(events: EventBus, measurement: models.Measurement) -> None:
    payload = schemas.Measurement.model_validate(measurement).model_dump(mode="json")
    events.broadcast("measurement-updated", payload)


@app.post("/measurements", response_model=schemas.Measurement, status_code=status.HTTP_201_CREATED)
async def create_measurement(
    measurement: schemas.MeasurementCreate,
    storage: Storage = Depends(get_storage),
    events: EventBus = Depends(get_events),
):
    """Record a customer's measurements and notify connected clients."""
    if storage.get_user(measurement.user_id) is None:
        raise NotFoundError("User", measurement.user_id)
    db_measurement = storage.create_measurement(measurement.model_dump())
    _publish_measurement(events, db_measurement)
    return db_measurement


@app.put("/measurements/{measurement_id}", response_model=schemas.Measurement)
async def update_measurement(
    measurement_id: int,
    measurement: schemas.MeasurementUpdate,
    storage: Storage = Depends(get_storage),
    events: EventBus = Depends(get_events),
):
    """Update the given measurement fields and notify connected clients."""
    db_measurement = storage.update_measurement(measurement_id, measurement.model_dump(exclude_unset=True))
    if db_measurement is None:
        raise NotFoundError("Measurement", measurement_id)
    _publish_measurement(events, db_measurement)
    return db_measurement


@app.get("/measurements/user/{user_id}", response_model=Optional[schemas.Measurement])
def get_user_measurement(user_id: int, storage: Storage = Depends(get_storage)):
    """Latest measurement record of a customer, or null if none was taken."""
    return storage.get_measurement_by_user(user_id)


@app.post("/style-preferences", response_model=schemas.StylePreference, status_code=status.HTTP_201_CREATED)
def create_style_preference(preference: schemas.StylePreferenceCreate, storage: Storage = Depends(get_storage)):
    if storage.get_user(preference.user_id) is None:
        raise NotFoundError("User", preference.user_id)
    return storage.create_style_preference(preference.model_dump())


@app.get("/style-preferences/user/{user_id}", response_model=Optional[schemas.StylePreference])
def get_user_style_preference(user_id: int, storage: Storage = Depends(get_storage)):
    return storage.get_style_preference_by_user(user_id)


# Reviews

@app.post("/reviews", response_model=schemas.Review, status_code=status.HTTP_201_CREATED)
def create_review(review: schemas.ReviewCreate, storage: Storage = Depends(get_storage)):
    """
    Review a tailor for an order and refresh the tailor's rating.

    Raises:
        NotFoundError: 404 if the order does not exist
        ValidationError: 400 if the order was not placed by this user with this tailor
    """
    order = storage.get_order(review.order_id)
    if order is None:
        raise NotFoundError("Order", review.order_id)
    if order.user_id != review.user_id or order.tailor_id != review.tailor_id:
        raise ValidationError("Order does not belong to this user and tailor", field="order_id")

    try:
        db_review = storage.add_review(review.model_dump())
        storage.refresh_tailor_review_stats(review.tailor_id)
        storage.commit()
    except Exception:
        storage.rollback()
        raise
    return db_review


@app.get("/reviews/tailor/{tailor_id}", response_model=List[schemas.Review])
def get_tailor_reviews(tailor_id: int, storage: Storage = Depends(get_storage)):
    return storage.get_reviews_by_tailor(tailor_id)


# Orders

@app.post("/orders", response_model=schemas.Order, status_code=status.HTTP_201_CREATED)
async def create_order(order: schemas.OrderCreate, manager: OrderLifecycleManager = Depends(get_manager)):
    """
    Place an order in the pending state.

    The tailor's channel receives a new-order event once the order is stored.

    Raises:
        ValidationError: 400 if total_amount is not the sum of its components
        NotFoundError: 404 if the customer, tailor or design does not exist
    """
    return manager.create_order(order)


@app.get("/orders/user/{user_id}", response_model=List[schemas.OrderWithDetails])
def list_user_orders(user_id: int, manager: OrderLifecycleManager = Depends(get_manager)):
    return manager.list_orders_for_user(user_id)


@app.get("/orders/tailor/{tailor_id}", response_model=List[schemas.OrderWithDetails])
def list_tailor_orders(tailor_id: int, manager: OrderLifecycleManager = Depends(get_manager)):
    return manager.list_orders_for_tailor(tailor_id)


@app.get("/orders/{order_id}", response_model=schemas.OrderWithDetails)
def get_order(order_id: int, manager: OrderLifecycleManager = Depends(get_manager)):
    """
    Get an order with its design, tailor and customer.

    Detail views are cached in Redis and invalidated on every status change.
    """
    cache_key = cache.order_detail_key(order_id)
    cached = cache.get_cache(cache_key)
    if cached is not None:
        return cached

    order = manager.get_order(order_id)
    detail = schemas.OrderWithDetails.model_validate(order).model_dump(mode="json")
    cache.set_cache(cache_key, detail)
    return detail


@app.put("/orders/{order_id}/status", response_model=schemas.Order)
async def update_order_status(
    order_id: int,
    update: schemas.OrderStatusUpdate,
    manager: OrderLifecycleManager = Depends(get_manager),
):
    """
    Advance an order to its next phase, or cancel it.

    Subscribers of the order's channel receive order-status-changed with the
    persisted order.

    Raises:
        ValidationError: 400 if the status is unknown
        InvalidTransitionError: 400 if the status is not reachable from the current one
        NotFoundError: 404 if the order does not exist
        ConcurrentUpdateError: 409 if concurrent writers kept winning the race
    """
    return manager.transition_status(order_id, update.status)


@app.get("/orders/{order_id}/events", response_model=List[schemas.OrderEvent])
def get_order_events(order_id: int, manager: OrderLifecycleManager = Depends(get_manager)):
    """Timeline of an order, oldest first."""
    return manager.order_timeline(order_id)


@app.get("/orders/{order_id}/commission", response_model=schemas.OrderCommission)
def get_order_commission(order_id: int, manager: OrderLifecycleManager = Depends(get_manager)):
    order = manager.get_order(order_id)
    return manager.preview_commission(order)


@app.get("/dashboard/active-orders/{user_id}", response_model=List[schemas.OrderWithDetails])
def list_active_orders(user_id: int, manager: OrderLifecycleManager = Depends(get_manager)):
    """Orders of a customer that are neither completed nor cancelled."""
    return manager.list_active_orders_for_user(user_id)


# Real-time order tracking

def _handle_frame(frame, session: WebSocketSession, events: EventBus, session_factory) -> None:
    if not isinstance(frame, dict):
        session.deliver("error", {"code": "BAD_FRAME", "message": "Frames must be JSON objects"})
        return

    event = frame.get("event")
    data = frame.get("data")

    try:
        if event == "join-order-room":
            channel = order_channel(int(data))
            events.join(channel, session)
            session.deliver("joined", {"channel": channel})
        elif event == "join-tailor-room":
            channel = tailor_channel(int(data))
            events.join(channel, session)
            session.deliver("joined", {"channel": channel})
        elif event == "leave-room":
            events.leave(str(data), session)
        elif event == "measurement-update":
            events.broadcast("measurement-updated", data, exclude=session)
        elif event == "order-status-update":
            order_id = int(data["orderId"])
            new_status = str(data["status"])
            with session_scope(session_factory) as db:
                OrderLifecycleManager(SqlAlchemyStorage(db), events).transition_status(order_id, new_status)
        else:
            session.deliver("error", {"code": "UNKNOWN_EVENT", "message": f"Unknown event: {event}"})
    except OrderServiceError as e:
        session.deliver("error", {"code": e.code, "message": e.message})
    except (KeyError, TypeError, ValueError):
        session.deliver("error", {"code": "BAD_FRAME", "message": f"Malformed data for {event}"})


@app.websocket("/ws")
async def realtime_updates(
    websocket: WebSocket,
    events: EventBus = Depends(get_events),
    session_factory=Depends(get_session_factory),
):
    """
    Real-time channel for order tracking.

    Frames are JSON objects {"event": ..., "data": ...}. Clients join
    order-<id> or tailor-<id> channels and receive new-order,
    order-status-changed and measurement-updated events.
    """
    await websocket.accept()
    session = WebSocketSession(websocket)
    events.connect(session)
    logger.info(f"Realtime session {session!r} connected")

    session.start()
    try:
        while True:
            message = await websocket.receive_text()
            try:
                frame = json.loads(message)
            except ValueError:
                session.deliver("error", {"code": "BAD_FRAME", "message": "Frames must be JSON"})
                continue
            _handle_frame(frame, session, events, session_factory)
    except WebSocketDisconnect:
        pass
    finally:
        events.disconnect(session)
        await session.close()
        logger.info(f"Realtime session {session!r} disconnected")
