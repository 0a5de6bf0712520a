"""
Test configuration and fixtures for the marketplace app.
This centralizes all test setup, making individual tests clean.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from main import app
from marketplace_app.cache.factory import CacheFactory
from marketplace_app.cache.strategies import InMemoryCache
from marketplace_app.database.connection import Base, get_db
from marketplace_app.dependencies import build_message_router, get_cache, get_click_dispatcher
from marketplace_app.geo.factory import GeoLookupFactory
from marketplace_app.geo.strategies import GeoLocation, InMemoryGeoLookup
from marketplace_app.models import Application, Offer
from marketplace_app.queue.factory import QueueFactory
from marketplace_app.services.application_service import ApplicationService
from marketplace_app.services.click_dispatch import DirectClickDispatcher
from marketplace_app.services.click_recorder import ClickRecorder
from marketplace_app.services.tracking_code_factory import TrackingCodeFactory

# Test database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

GEO_TABLE = {
    "203.0.113.5": GeoLocation(country="DE", city="Berlin"),
    "1.2.3.4": GeoLocation(country="AU", city="Sydney"),
}


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    This ensures tests are isolated and don't affect each other.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Session factory for code that opens its own sessions"""
    return TestingSessionLocal


@pytest.fixture(scope="function")
def recorder(session_factory):
    """Click recorder writing to the test database"""
    return ClickRecorder(session_factory, InMemoryGeoLookup(GEO_TABLE))


@pytest.fixture(scope="function")
def message_router(session_factory):
    router = build_message_router(session_factory)
    yield router
    router.presence.close()


@pytest.fixture(scope="function")
def client(db_session, recorder, message_router):
    """
    Create a test client with database, cache and click dispatch
    overridden. Clicks are recorded in-process as background tasks,
    which TestClient runs before returning the response.
    """
    def override_get_db():
        yield db_session

    cache = InMemoryCache()
    dispatcher = DirectClickDispatcher(recorder)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_click_dispatcher] = lambda: dispatcher
    app.state.message_router = message_router

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_factories():
    """Factories cache their instances; start every test from scratch"""
    yield
    CacheFactory.clear_instance()
    QueueFactory.clear_instance()
    GeoLookupFactory.clear_instance()
    TrackingCodeFactory._instances.clear()


@pytest.fixture
def offer(db_session):
    offer = Offer(
        company_id="company-user-1",
        title="Running shoes",
        product_url="https://shop.example.com/shoes",
    )
    db_session.add(offer)
    db_session.commit()
    db_session.refresh(offer)
    return offer


@pytest.fixture
def approved_application(db_session, offer):
    """An approved application of creator-user-1 with its tracking code"""
    service = ApplicationService(db_session)
    application = service.create_application(offer.id, "creator-user-1", "I'd love to promote this")
    return service.approve_application(application.id)


@pytest.fixture
def make_application(db_session):
    """Insert applications directly, bypassing approval"""
    def _make(offer_id, creator_id="creator-user-1", tracking_code=None):
        application = Application(
            offer_id=offer_id,
            creator_id=creator_id,
            status="approved" if tracking_code else "pending",
            tracking_code=tracking_code,
        )
        db_session.add(application)
        db_session.commit()
        db_session.refresh(application)
        return application
    return _make
