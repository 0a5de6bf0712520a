from decimal import Decimal
from typing import Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from marketplace_app.models import DailyAnalytics


class AnalyticsService:
    """Read side of the daily click rollup"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_application(self, application_id: str) -> List[DailyAnalytics]:
        """Daily rows of one application, newest first"""
        return self.db.query(DailyAnalytics).filter(
            DailyAnalytics.application_id == application_id
        ).order_by(DailyAnalytics.date.desc()).all()

    def get_creator_totals(self, creator_id: str) -> Dict:
        clicks, unique_clicks, conversions, earnings = self.db.query(
            func.coalesce(func.sum(DailyAnalytics.clicks), 0),
            func.coalesce(func.sum(DailyAnalytics.unique_clicks), 0),
            func.coalesce(func.sum(DailyAnalytics.conversions), 0),
            func.coalesce(func.sum(DailyAnalytics.earnings), 0),
        ).filter(DailyAnalytics.creator_id == creator_id).one()

        return {
            "creator_id": creator_id,
            "total_clicks": int(clicks),
            "unique_clicks": int(unique_clicks),
            "conversions": int(conversions),
            "total_earnings": Decimal(str(earnings)),
        }
