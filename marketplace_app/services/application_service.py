import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from marketplace_app.config import settings
from marketplace_app.exceptions import ApplicationNotFound
from marketplace_app.models import Application
from marketplace_app.services.tracking_code_factory import TrackingCodeFactory
from marketplace_app.services.tracking_code_strategies import TrackingCodeStrategy

logger = logging.getLogger(__name__)

APPROVED_STATUSES = ("approved", "active")


class ApplicationService:
    """
    Application lifecycle as far as tracking is concerned.

    approve_application is the single mutation that assigns a tracking
    code; manual approval and the auto-approval worker both go through it.
    """

    def __init__(self, db: Session, code_strategy: Optional[TrackingCodeStrategy] = None):
        self.db = db
        self.code_strategy = code_strategy or TrackingCodeFactory.create_strategy()

    def create_application(self, offer_id: str, creator_id: str, message: str = "") -> Application:
        """Create a pending application with its auto-approval deadline"""
        application = Application(
            offer_id=offer_id,
            creator_id=creator_id,
            message=message,
            status="pending",
            auto_approval_scheduled_at=datetime.now(timezone.utc)
            + timedelta(minutes=settings.auto_approval_delay_minutes),
        )
        self.db.add(application)
        self.db.commit()
        self.db.refresh(application)
        return application

    def get_application(self, application_id: str) -> Application:
        application = self.db.get(Application, application_id)
        if application is None:
            raise ApplicationNotFound(application_id)
        return application

    def approve_application(self, application_id: str, automatic: bool = False) -> Application:
        """
        Approve an application and assign its tracking code and link.

        The tracking code is immutable: approving an application that
        already has one leaves it untouched.
        """
        application = self.get_application(application_id)

        if application.tracking_code:
            return application

        code = self.code_strategy.generate(application, self.db, automatic=automatic)
        application.status = "approved"
        application.tracking_code = code
        application.tracking_link = f"{settings.base_url}/track/{code}"
        application.approved_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(application)

        logger.info(
            f"Approved application {application.id} "
            f"({'automatic' if automatic else 'manual'}), tracking code {code}"
        )
        return application

    def get_due_for_auto_approval(self, now: Optional[datetime] = None) -> List[Application]:
        """Pending applications whose auto-approval time has passed"""
        now = now or datetime.now(timezone.utc)
        return self.db.query(Application).filter(
            Application.status == "pending",
            Application.auto_approval_scheduled_at.isnot(None),
            Application.auto_approval_scheduled_at <= now,
        ).order_by(Application.auto_approval_scheduled_at).all()
