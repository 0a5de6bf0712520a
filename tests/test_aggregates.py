"""
Tests for click recording and the daily rollup.
"""
import asyncio
from datetime import date, datetime, timezone

from marketplace_app.geo.strategies import GeoLookupStrategy
from marketplace_app.models import ClickEvent, DailyAnalytics
from marketplace_app.queue.models import ClickContext
from marketplace_app.services.aggregate_updater import AggregateUpdater
from marketplace_app.services.click_recorder import ClickRecorder


class BrokenGeoLookup(GeoLookupStrategy):
    async def lookup(self, ip):
        raise TimeoutError("geo service timed out")


class SlowGeoLookup(GeoLookupStrategy):
    """Yields to the loop so concurrent recordings interleave"""

    async def lookup(self, ip):
        await asyncio.sleep(0.01)
        return None


def click(application_id, ip="203.0.113.5", when=None, user_agent="unknown"):
    return ClickContext(
        application_id=application_id,
        ip_address=ip,
        user_agent=user_agent,
        timestamp=when or datetime.now(timezone.utc),
    )


class TestClickRecorder:

    def test_records_event_and_rollup(self, recorder, approved_application, db_session):
        event = asyncio.run(recorder.record(click(approved_application.id)))

        assert event is not None
        assert event.country == "DE"
        assert event.city == "Berlin"
        db_session.expire_all()
        row = db_session.query(DailyAnalytics).one()
        assert (row.clicks, row.unique_clicks) == (1, 1)
        assert row.offer_id == approved_application.offer_id
        assert row.creator_id == approved_application.creator_id

    def test_unknown_application_writes_nothing(self, recorder, db_session):
        assert asyncio.run(recorder.record(click("no-such-application"))) is None

        db_session.expire_all()
        assert db_session.query(ClickEvent).count() == 0
        assert db_session.query(DailyAnalytics).count() == 0

    def test_geo_failure_falls_back_to_unknown(self, approved_application, session_factory):
        recorder = ClickRecorder(session_factory, BrokenGeoLookup())

        event = asyncio.run(recorder.record(click(approved_application.id)))

        assert event.country == "Unknown"
        assert event.city == "Unknown"

    def test_ipv4_mapped_address_is_normalized(self, recorder, approved_application):
        event = asyncio.run(recorder.record(click(approved_application.id, ip="::ffff:203.0.113.5")))
        assert event.ip_address == "203.0.113.5"

    def test_concurrent_clicks_from_one_address(self, approved_application, session_factory, db_session):
        recorder = ClickRecorder(session_factory, SlowGeoLookup())
        when = datetime(2025, 6, 1, 10, tzinfo=timezone.utc)
        total = 8

        async def scenario():
            return await asyncio.gather(*[
                recorder.record(click(approved_application.id, ip="198.51.100.7", when=when))
                for _ in range(total)
            ])

        events = asyncio.run(scenario())

        assert all(event is not None for event in events)
        db_session.expire_all()
        assert db_session.query(ClickEvent).count() == total
        row = db_session.query(DailyAnalytics).one()
        assert row.unique_clicks == 1
        assert 1 <= row.clicks <= total

    def test_timestamp_stored_as_naive_utc(self, recorder, approved_application):
        when = datetime(2025, 6, 1, 12, 30, tzinfo=timezone.utc)
        event = asyncio.run(recorder.record(click(approved_application.id, when=when)))
        assert event.clicked_at == datetime(2025, 6, 1, 12, 30)


class TestAggregateUpdater:

    def test_day_bucket_in_reference_timezone(self):
        updater = AggregateUpdater("Asia/Tokyo")

        day, start, end = updater.day_bucket(datetime(2025, 6, 1, 20, 0, tzinfo=timezone.utc))

        # 20:00 UTC is already the next morning in Tokyo
        assert day == date(2025, 6, 2)
        assert start == datetime(2025, 6, 1, 15, 0)
        assert end == datetime(2025, 6, 2, 15, 0)

    def test_day_bucket_on_dst_change(self):
        updater = AggregateUpdater("America/New_York")

        day, start, end = updater.day_bucket(datetime(2025, 3, 9, 12, 0, tzinfo=timezone.utc))

        assert day == date(2025, 3, 9)
        assert start == datetime(2025, 3, 9, 5, 0)
        assert end == datetime(2025, 3, 10, 4, 0)

    def test_naive_input_is_treated_as_utc(self):
        day, _, _ = AggregateUpdater("UTC").day_bucket(datetime(2025, 6, 1, 23, 59))
        assert day == date(2025, 6, 1)

    def test_clicks_on_different_days_get_separate_rows(self, recorder, approved_application, db_session):
        asyncio.run(recorder.record(click(approved_application.id, when=datetime(2025, 6, 1, 10, tzinfo=timezone.utc))))
        asyncio.run(recorder.record(click(approved_application.id, when=datetime(2025, 6, 1, 11, tzinfo=timezone.utc))))
        asyncio.run(recorder.record(click(approved_application.id, when=datetime(2025, 6, 2, 9, tzinfo=timezone.utc))))

        db_session.expire_all()
        rows = {row.date: row for row in db_session.query(DailyAnalytics).all()}
        assert rows[date(2025, 6, 1)].clicks == 2
        assert rows[date(2025, 6, 1)].unique_clicks == 1
        assert rows[date(2025, 6, 2)].clicks == 1

    def test_unique_clicks_only_count_the_same_day(self, recorder, approved_application, db_session):
        asyncio.run(recorder.record(click(approved_application.id, ip="1.1.1.1", when=datetime(2025, 6, 1, 10, tzinfo=timezone.utc))))
        asyncio.run(recorder.record(click(approved_application.id, ip="2.2.2.2", when=datetime(2025, 6, 2, 10, tzinfo=timezone.utc))))
        asyncio.run(recorder.record(click(approved_application.id, ip="1.1.1.1", when=datetime(2025, 6, 2, 11, tzinfo=timezone.utc))))

        db_session.expire_all()
        row = db_session.query(DailyAnalytics).filter(DailyAnalytics.date == date(2025, 6, 2)).one()
        assert (row.clicks, row.unique_clicks) == (2, 2)

    def test_rebuild_day_repairs_counters(self, recorder, approved_application, db_session):
        when = datetime(2025, 6, 1, 10, tzinfo=timezone.utc)
        for ip in ("1.1.1.1", "1.1.1.1", "3.3.3.3"):
            asyncio.run(recorder.record(click(approved_application.id, ip=ip, when=when)))

        db_session.expire_all()
        row = db_session.query(DailyAnalytics).one()
        row.clicks = 1
        row.unique_clicks = 0
        db_session.commit()

        rebuilt = AggregateUpdater("UTC").rebuild_day(db_session, approved_application, date(2025, 6, 1))

        assert (rebuilt.clicks, rebuilt.unique_clicks) == (3, 2)

    def test_rollup_leaves_conversions_alone(self, recorder, approved_application, db_session):
        when = datetime(2025, 6, 1, 10, tzinfo=timezone.utc)
        asyncio.run(recorder.record(click(approved_application.id, when=when)))

        db_session.expire_all()
        row = db_session.query(DailyAnalytics).one()
        row.conversions = 4
        db_session.commit()

        asyncio.run(recorder.record(click(approved_application.id, when=when)))

        db_session.expire_all()
        row = db_session.query(DailyAnalytics).one()
        assert row.clicks == 2
        assert row.conversions == 4
