from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func
from marketplace_app.database.connection import Base
from marketplace_app.models.base import new_id


class Offer(Base):
    """
    Affiliate offer published by a company.

    Only the fields the attribution pipeline reads are modelled here;
    the rest of the offer catalogue is managed by the CRUD side of the app.
    """
    __tablename__ = "offers"

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(36), nullable=False, index=True)
    title = Column(String(100), nullable=False)
    # Redirect destination for every tracking code pointing at this offer
    product_url = Column(String, nullable=False)
    status = Column(String(20), nullable=False, default="approved")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Application(Base):
    """
    A creator's application to promote an offer.

    tracking_code is assigned once, when the application is approved
    (manually or by the auto-approval worker), and never changes afterwards.
    """
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=new_id)
    # No FK constraint: a deleted offer must surface as an inconsistency, not cascade
    offer_id = Column(String(36), nullable=False, index=True)
    creator_id = Column(String(36), nullable=False, index=True)
    message = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="pending")
    # unique=True creates the lookup index used by /track/{code}
    tracking_code = Column(String(64), unique=True, nullable=True, index=True)
    tracking_link = Column(String, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    auto_approval_scheduled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
