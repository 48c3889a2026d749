"""Services for registration persistence."""
from .registration_store import (
    CLAIM_MARKER_PREFIX,
    ReadConsistency,
    RegistrationStore,
    RegistrationUpdate,
    is_claim_marker,
)

__all__ = [
    "CLAIM_MARKER_PREFIX",
    "ReadConsistency",
    "RegistrationStore",
    "RegistrationUpdate",
    "is_claim_marker",
]
