"""
Tracking code generation strategies.
Uses Strategy Pattern to allow different generation algorithms.
"""

import time
import uuid
from abc import ABC, abstractmethod

from sqlalchemy.orm import Session

from marketplace_app.models import Application


class TrackingCodeStrategy(ABC):
    """Abstract base class for tracking code generation strategies"""

    @abstractmethod
    def generate(self, application: Application, db_session: Session, automatic: bool = False) -> str:
        """
        Generate the tracking code for an application being approved.

        Args:
            application: The application being approved
            db_session: Session for strategies that must check uniqueness
            automatic: True when the auto-approval worker approves

        Returns:
            A tracking code not used by any other application
        """


class PrefixedTrackingCodeStrategy(TrackingCodeStrategy):
    """
    Readable codes: CR-{creator[:8]}-{offer[:8]}.

    Automatic approvals always carry a millisecond suffix; a manual code
    that is already taken gets one too.

    Pros: Support staff can read creator/offer straight off a link
    Cons: Needs a uniqueness query
    """

    PREFIX = "CR"

    def generate(self, application: Application, db_session: Session, automatic: bool = False) -> str:
        code = f"{self.PREFIX}-{application.creator_id[:8]}-{application.offer_id[:8]}"

        if automatic or self._is_taken(code, application.id, db_session):
            code = f"{code}-{int(time.time() * 1000)}"

        return code

    def _is_taken(self, code: str, application_id: str, db_session: Session) -> bool:
        return db_session.query(Application.id).filter(
            Application.tracking_code == code,
            Application.id != application_id,
        ).first() is not None


class Base62TrackingCodeStrategy(TrackingCodeStrategy):
    """
    Base62 encoding of the application UUID with salt obfuscation.

    Pros: No collisions, no DB queries
    Cons: Opaque, up to 22 characters
    """

    BASE62_CHARS = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"

    def __init__(self, salt: int = 1000, max_length: int = 64):
        self.salt = salt
        self.max_length = max_length

    def generate(self, application: Application, db_session: Session, automatic: bool = False) -> str:
        obfuscated_id = uuid.UUID(application.id).int + self.salt
        encoded = self._base62_encode(obfuscated_id)

        # Truncating would create duplicates
        if len(encoded) > self.max_length:
            raise ValueError(
                f"Generated code '{encoded}' exceeds max length {self.max_length}"
            )

        return encoded

    def _base62_encode(self, number: int) -> str:
        if number == 0:
            return self.BASE62_CHARS[0]

        result = ""
        while number > 0:
            result = self.BASE62_CHARS[number % 62] + result
            number //= 62

        return result
