from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Text, Numeric, UniqueConstraint, Index
)
from sqlalchemy.sql import func
from marketplace_app.database.connection import Base
from marketplace_app.models.base import new_id


class ClickEvent(Base):
    """
    One row per tracked request. Append-only: the pipeline never updates
    or deletes these rows, and the daily rollup is recomputed from them.

    offer_id and creator_id are denormalized from the application so
    analytics queries never need a join.
    clicked_at is stored as naive UTC.
    """
    __tablename__ = "click_events"
    __table_args__ = (
        Index("ix_click_events_application_clicked_at", "application_id", "clicked_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    application_id = Column(String(36), nullable=False)
    offer_id = Column(String(36), nullable=False, index=True)
    creator_id = Column(String(36), nullable=False, index=True)
    ip_address = Column(String(64), nullable=False)
    user_agent = Column(Text)
    referer = Column(Text)
    country = Column(String(64))
    city = Column(String(128))
    device_type = Column(String(20))
    browser = Column(String(20))
    clicked_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DailyAnalytics(Base):
    """
    Daily rollup per application.

    clicks and unique_clicks are maintained by the click pipeline;
    conversions and earnings belong to the conversion-crediting flow
    and are never written here.
    """
    __tablename__ = "analytics"
    __table_args__ = (
        UniqueConstraint("application_id", "date", name="uq_analytics_application_date"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    application_id = Column(String(36), nullable=False, index=True)
    offer_id = Column(String(36), nullable=False)
    creator_id = Column(String(36), nullable=False, index=True)
    clicks = Column(Integer, nullable=False, default=0)
    unique_clicks = Column(Integer, nullable=False, default=0)
    conversions = Column(Integer, nullable=False, default=0)
    earnings = Column(Numeric(10, 2), nullable=False, default=0)
    earnings_paid = Column(Numeric(10, 2), nullable=False, default=0)
    date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
