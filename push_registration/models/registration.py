"""Registration model - push token registrations per auth identity."""
from sqlalchemy import Column, DateTime, Index, String, UniqueConstraint, text

from ..database import Base

# Partial ("sparse") index predicate: only rows that reported device info
DEVICE_PRESENT = text("device_os IS NOT NULL")


class Registration(Base):
    """A push token registered by a caller, with optional device info.

    ``endpoint`` is NULL until the resolver assigns a delivery endpoint. While a
    resolution batch holds the row it contains a claim marker instead.
    """

    __tablename__ = "registrations"

    id = Column(String(32), primary_key=True)
    token = Column(String, nullable=False)
    auth_id = Column(String, nullable=False)
    device_os = Column(String, nullable=True)  # android, ios, windows, unknown
    device_os_version = Column(String, nullable=True)
    device_app_version = Column(String, nullable=True)
    device_model = Column(String, nullable=True)
    endpoint = Column(String, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    created = Column(DateTime, nullable=False)
    updated = Column(DateTime, nullable=False)

    __table_args__ = (
        # Conflict target for the upsert; concurrent inserts merge instead of failing
        UniqueConstraint("token", "auth_id", name="uq_registrations_token_auth_id"),
        Index("ix_registrations_token", "token"),
        Index("ix_registrations_updated", "updated"),
        Index("ix_registrations_auth_id", "auth_id"),
        Index(
            "ix_registrations_device_os",
            "device_os",
            postgresql_where=DEVICE_PRESENT,
            sqlite_where=DEVICE_PRESENT,
        ),
        Index(
            "ix_registrations_device_app_version",
            "device_app_version",
            postgresql_where=DEVICE_PRESENT,
            sqlite_where=DEVICE_PRESENT,
        ),
        Index(
            "ix_registrations_device_model",
            "device_model",
            postgresql_where=DEVICE_PRESENT,
            sqlite_where=DEVICE_PRESENT,
        ),
    )

    def __repr__(self) -> str:
        return f"<Registration(id={self.id}, token={self.token[:16]}..., auth_id={self.auth_id})>"
