from datetime import datetime
from typing import Optional

from marketplace_app.schemas.base import CamelModel


class ApplicationResponse(CamelModel):
    id: str
    offer_id: str
    creator_id: str
    status: str
    tracking_code: Optional[str] = None
    tracking_link: Optional[str] = None
    approved_at: Optional[datetime] = None
    auto_approval_scheduled_at: Optional[datetime] = None
