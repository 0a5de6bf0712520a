import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from marketplace_app.geo.strategies import GeoLookupStrategy, GeoLocation
from marketplace_app.models import Application, ClickEvent
from marketplace_app.queue.models import ClickContext
from marketplace_app.services.aggregate_updater import AggregateUpdater, to_utc_naive
from marketplace_app.services.client_context import normalize_ip
from marketplace_app.services.user_agent import classify_device, classify_browser

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown"


class ClickRecorder:
    """
    Writes one ClickEvent per tracked request and folds it into the
    daily aggregate.

    Runs outside the request path (background task or queue worker)
    and opens its own session for every click.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        geo_lookup: GeoLookupStrategy,
        aggregate_updater: Optional[AggregateUpdater] = None,
    ):
        self.session_factory = session_factory
        self.geo_lookup = geo_lookup
        self.aggregate_updater = aggregate_updater or AggregateUpdater()

    async def record(self, click: ClickContext) -> Optional[ClickEvent]:
        """
        Persist a click.

        Returns the stored event, or None when the application no longer
        exists (nothing is written in that case).
        """
        db = self.session_factory()
        try:
            application = db.get(Application, click.application_id)
            if application is None:
                logger.error(f"Click dropped: application {click.application_id} not found")
                return None

            ip_address = normalize_ip(click.ip_address)
            location = await self._locate(ip_address)

            event = ClickEvent(
                application_id=application.id,
                offer_id=application.offer_id,
                creator_id=application.creator_id,
                ip_address=ip_address,
                user_agent=click.user_agent,
                referer=click.referer,
                country=location.country or UNKNOWN_LOCATION,
                city=location.city or UNKNOWN_LOCATION,
                device_type=classify_device(click.user_agent),
                browser=classify_browser(click.user_agent),
                clicked_at=to_utc_naive(click.timestamp),
            )
            db.add(event)
            db.commit()
            db.refresh(event)
            # callers read the event after this session is gone
            db.expunge(event)

            self.aggregate_updater.apply_click(db, application, event.clicked_at)

            logger.info(
                f"Logged click for application {application.id} from "
                f"{event.city}, {event.country} ({event.device_type}, {event.browser})"
            )
            return event

        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def _locate(self, ip_address: str) -> GeoLocation:
        try:
            location = await self.geo_lookup.lookup(ip_address)
        except Exception as e:
            logger.warning(f"Geo lookup error for {ip_address}: {e}")
            location = None
        return location or GeoLocation()
