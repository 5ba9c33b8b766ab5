import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_identity_id() -> str:
    """Opaque identifier for a new identity. Unique across all variants."""
    return uuid.uuid4().hex
