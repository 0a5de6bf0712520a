import datetime
from decimal import Decimal

from marketplace_app.schemas.base import CamelModel


class DailyAnalyticsResponse(CamelModel):
    application_id: str
    offer_id: str
    creator_id: str
    date: datetime.date
    clicks: int
    unique_clicks: int
    conversions: int
    earnings: Decimal


class CreatorTotalsResponse(CamelModel):
    creator_id: str
    total_clicks: int
    unique_clicks: int
    conversions: int
    total_earnings: Decimal
