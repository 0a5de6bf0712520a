import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import update, func, distinct
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace_app.config import settings
from marketplace_app.models import Application, ClickEvent, DailyAnalytics

logger = logging.getLogger(__name__)


def to_utc_naive(value: datetime) -> datetime:
    """Click timestamps are stored as naive UTC; naive input is assumed UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class AggregateUpdater:
    """
    Maintains the daily analytics row for an application.

    unique_clicks is always recomputed from click_events, so every run
    repairs whatever drift a previous run left behind. clicks is a
    SQL-side increment; a concurrent first-click-of-the-day collision is
    retried once as an increment. Known relaxation: clicks is a
    best-effort analytics figure and may under-count under heavy
    concurrent load. It is never used for billing.

    conversions and earnings are owned by the conversion-crediting flow
    and are never written here.
    """

    def __init__(self, timezone_name: str = None):
        self.tz = ZoneInfo(timezone_name or settings.analytics_timezone)

    def day_bucket(self, clicked_at: datetime) -> Tuple[date, datetime, datetime]:
        """
        Calendar day of a click in the reference timezone.

        Returns:
            (day, start, end) where start/end are the naive-UTC bounds
            of that local day, end exclusive.
        """
        if clicked_at.tzinfo is None:
            clicked_at = clicked_at.replace(tzinfo=timezone.utc)

        day = clicked_at.astimezone(self.tz).date()
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        # Not start + 24h: DST days are 23 or 25 hours long
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return day, to_utc_naive(start), to_utc_naive(end)

    def count_clicks(self, db: Session, application_id: str, start: datetime, end: datetime) -> Tuple[int, int]:
        """(total, distinct IPs) among the stored click events in [start, end)"""
        total, unique = db.query(
            func.count(ClickEvent.id),
            func.count(distinct(ClickEvent.ip_address)),
        ).filter(
            ClickEvent.application_id == application_id,
            ClickEvent.clicked_at >= start,
            ClickEvent.clicked_at < end,
        ).one()
        return total or 0, unique or 0

    def apply_click(self, db: Session, application: Application, clicked_at: datetime) -> DailyAnalytics:
        """Fold one already-stored click into its day's aggregate row"""
        day, start, end = self.day_bucket(clicked_at)
        _, unique_clicks = self.count_clicks(db, application.id, start, end)

        if self._increment(db, application.id, day, unique_clicks):
            db.commit()
        else:
            try:
                db.add(DailyAnalytics(
                    application_id=application.id,
                    offer_id=application.offer_id,
                    creator_id=application.creator_id,
                    clicks=1,
                    unique_clicks=unique_clicks,
                    date=day,
                ))
                db.commit()
            except IntegrityError:
                # Another click created today's row between our update and insert
                db.rollback()
                _, unique_clicks = self.count_clicks(db, application.id, start, end)
                self._increment(db, application.id, day, unique_clicks)
                db.commit()

        return self.get_row(db, application.id, day)

    def rebuild_day(self, db: Session, application: Application, day: date) -> DailyAnalytics:
        """
        Recompute both counters of one day from click_events.

        Repairs the clicks under-count the incremental path can leave.
        """
        start = to_utc_naive(datetime.combine(day, time.min, tzinfo=self.tz))
        end = to_utc_naive(datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz))
        clicks, unique_clicks = self.count_clicks(db, application.id, start, end)

        row = self.get_row(db, application.id, day)
        if row is None:
            row = DailyAnalytics(
                application_id=application.id,
                offer_id=application.offer_id,
                creator_id=application.creator_id,
                date=day,
            )
            db.add(row)
        row.clicks = clicks
        row.unique_clicks = unique_clicks
        db.commit()
        db.refresh(row)

        logger.info(f"Rebuilt analytics for {application.id} on {day}: {clicks} clicks, {unique_clicks} unique")
        return row

    def get_row(self, db: Session, application_id: str, day: date):
        return db.query(DailyAnalytics).filter(
            DailyAnalytics.application_id == application_id,
            DailyAnalytics.date == day,
        ).first()

    def _increment(self, db: Session, application_id: str, day: date, unique_clicks: int) -> bool:
        result = db.execute(
            update(DailyAnalytics)
            .where(
                DailyAnalytics.application_id == application_id,
                DailyAnalytics.date == day,
            )
            .values(
                clicks=DailyAnalytics.clicks + 1,
                unique_clicks=unique_clicks,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
