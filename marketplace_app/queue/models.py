"""
Data models for queue messages.
"""

from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ClickContext(BaseModel):
    """
    Request context captured by the redirect endpoint.

    This is everything the click recorder needs to write one ClickEvent.
    It is handed to a background task or published to the click queue,
    so it must stay JSON-serializable.
    """

    application_id: str = Field(..., description="Application owning the tracking code")
    ip_address: str = Field("unknown", description="Normalized client IP address")
    user_agent: str = Field("unknown", description="User agent string")
    referer: str = Field("direct", description="HTTP referer")
    timestamp: datetime = Field(default_factory=_utc_now, description="When the click occurred")

    # Set by queue backends that need acknowledgment
    message_id: Optional[str] = Field(None, exclude=True)

    model_config = {
        "json_schema_extra": {
            "example": {
                "application_id": "5f0c6f9e-2f1e-4f59-9d0e-0d3c7f0b8a11",
                "ip_address": "203.0.113.5",
                "user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile Safari",
                "referer": "https://instagram.com",
                "timestamp": "2025-10-29T10:30:00Z",
            }
        }
    }
