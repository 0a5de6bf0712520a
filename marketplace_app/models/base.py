import uuid
from datetime import datetime, timezone


def new_id() -> str:
    """Primary keys are UUID4 strings"""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
