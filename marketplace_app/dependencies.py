"""
FastAPI dependencies for dependency injection.

Infrastructure (cache, queue, geo lookup, click dispatcher) is built
once from settings; services get a fresh request session. Realtime
objects live on app.state so every app (and every test) owns its own.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, WebSocket, status
from sqlalchemy.orm import Session

from marketplace_app.cache.factory import CacheFactory, CacheBackend
from marketplace_app.cache.strategies import CacheStrategy
from marketplace_app.config import settings
from marketplace_app.database.connection import get_db, SessionLocal
from marketplace_app.geo.factory import GeoLookupFactory, GeoBackend
from marketplace_app.geo.strategies import GeoLookupStrategy
from marketplace_app.queue.factory import QueueFactory, QueueBackend
from marketplace_app.queue.strategies import QueueStrategy
from marketplace_app.realtime.presence import PresenceTracker
from marketplace_app.realtime.registry import ConnectionRegistry
from marketplace_app.realtime.router import MessageRouter
from marketplace_app.services.click_dispatch import (
    ClickDispatcher,
    DirectClickDispatcher,
    QueueClickDispatcher,
)
from marketplace_app.services.click_recorder import ClickRecorder
from marketplace_app.services.tracking_service import TrackingResolver


@lru_cache()
def get_cache() -> CacheStrategy:
    """Resolution cache (singleton)"""
    backend = CacheBackend(settings.cache_backend)
    return CacheFactory.create(backend)


@lru_cache()
def get_queue() -> QueueStrategy:
    """Click queue (singleton)"""
    backend = QueueBackend(settings.queue_backend)
    return QueueFactory.create(backend)


@lru_cache()
def get_geo_lookup() -> GeoLookupStrategy:
    """Geo-IP lookup (singleton)"""
    backend = GeoBackend(settings.geo_backend)
    return GeoLookupFactory.create(backend)


@lru_cache()
def get_click_dispatcher() -> ClickDispatcher:
    """
    Where captured clicks go after the redirect.

    "task" records in-process as a background task, "queue" publishes
    to the click queue for the click worker.
    """
    if settings.click_dispatch_backend == "queue":
        return QueueClickDispatcher(get_queue())
    if settings.click_dispatch_backend == "task":
        return DirectClickDispatcher(ClickRecorder(SessionLocal, get_geo_lookup()))
    raise ValueError(f"Unknown click dispatch backend: {settings.click_dispatch_backend}")


def get_tracking_resolver(
    db: Session = Depends(get_db),
    cache: CacheStrategy = Depends(get_cache),
) -> TrackingResolver:
    return TrackingResolver(db=db, cache=cache)


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Identity of the REST caller.

    Stand-in for the auth provider: trusts the X-User-Id header.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header"
        )
    return x_user_id


def get_ws_user_id(websocket: WebSocket) -> Optional[str]:
    """Identity of a websocket peer (user_id query param or X-User-Id header)"""
    return websocket.query_params.get("user_id") or websocket.headers.get("x-user-id") or None


def build_message_router(session_factory=SessionLocal) -> MessageRouter:
    """Fresh registry, typing tracker and router wired together"""
    return MessageRouter(
        registry=ConnectionRegistry(),
        presence=PresenceTracker(),
        session_factory=session_factory,
    )


def get_message_router(request: Request) -> MessageRouter:
    return request.app.state.message_router


def get_ws_message_router(websocket: WebSocket) -> MessageRouter:
    return websocket.app.state.message_router
