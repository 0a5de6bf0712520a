import json
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from sqlalchemy.orm import Session

from marketplace_app.cache.strategies import CacheStrategy
from marketplace_app.config import settings
from marketplace_app.exceptions import TrackingCodeNotFound, OfferMissingError
from marketplace_app.models import Application, Offer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingTarget:
    """Where a tracking code leads and whom the click belongs to"""
    application_id: str
    offer_id: str
    product_url: str


class TrackingResolver:
    """
    Resolves tracking codes to redirect targets using Cache-Aside.

    Flow:
    1. Check cache
    2. On miss, look up the application by exact tracking code,
       then its offer
    3. Cache the target (successful resolutions only)

    Unknown codes raise TrackingCodeNotFound; an application whose
    offer no longer exists raises OfferMissingError instead of
    redirecting somewhere undefined.
    """

    def __init__(self, db: Session, cache: Optional[CacheStrategy] = None):
        self.db = db
        self.cache = cache

    async def resolve(self, code: str) -> TrackingTarget:
        # Nothing that long can match the column; skip the query
        if not code or len(code) > settings.tracking_code_max_length:
            raise TrackingCodeNotFound(code)

        cache_key = f"track:{code}"

        if self.cache:
            cached = await self.cache.get(cache_key)
            if cached:
                try:
                    return TrackingTarget(**json.loads(cached))
                except (ValueError, TypeError) as e:
                    logger.warning(f"Discarding unreadable cache entry {cache_key}: {e}")
                    await self.cache.delete(cache_key)

        application = self.db.query(Application).filter(
            Application.tracking_code == code
        ).first()
        if application is None:
            raise TrackingCodeNotFound(code)

        offer = self.db.get(Offer, application.offer_id)
        if offer is None or not offer.product_url:
            logger.error(
                f"Tracking code {code!r}: application {application.id} "
                f"references missing offer {application.offer_id}"
            )
            raise OfferMissingError(application.id, application.offer_id)

        target = TrackingTarget(
            application_id=application.id,
            offer_id=offer.id,
            product_url=offer.product_url,
        )

        if self.cache:
            await self.cache.set(cache_key, json.dumps(asdict(target)), ttl=settings.cache_ttl)

        return target

    async def invalidate(self, code: str) -> None:
        if self.cache:
            await self.cache.delete(f"track:{code}")
