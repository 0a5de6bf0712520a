import logging

from fastapi import FastAPI

from marketplace_app.config import settings
from marketplace_app.database.connection import engine, Base
from marketplace_app.api.v1 import analytics, applications, conversations, realtime, redirect
from marketplace_app.dependencies import build_message_router

# Import models to ensure they're registered with Base
from marketplace_app.models import Offer, Application, ClickEvent, DailyAnalytics, Conversation, Message  # noqa: F401

logging.basicConfig(level=settings.log_level)

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Creator/company marketplace: tracking links, click attribution and realtime chat",
    debug=settings.debug
)

# Live connections and typing state of this app instance
app.state.message_router = build_message_router()


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.environment}


######## Include routers
app.include_router(conversations.router, prefix="/api/v1")
app.include_router(applications.router, prefix="/api/v1")
app.include_router(analytics.router, prefix="/api/v1")
app.include_router(realtime.router)
app.include_router(redirect.router)
