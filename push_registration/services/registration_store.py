"""Registration store - persistence of push token registrations.

Registrations are keyed by (token, auth_id). All coordination between
concurrent callers happens inside single SQL statements:

- ``save`` is one ``INSERT ... ON CONFLICT DO UPDATE``, so two concurrent saves
  for the same pair merge into one row.
- ``find_incomplete_registrations`` claims rows with one multi-row ``UPDATE``
  that writes a batch marker into ``endpoint``. Concurrent batches therefore
  partition the incomplete rows; a row is handed to at most one batch.

A claimed row keeps its marker until the resolver calls ``save_endpoint``.
Without a claim lease such a row is never offered again.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, List, Optional

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..database import Base, Database
from ..errors import InvalidOperation
from ..models.registration import Registration
from ..schemas.registration import Device, PushRegistration, RegistrationRecord
from ..utils.db_utils import storage_errors

logger = logging.getLogger(__name__)

CLAIM_MARKER_PREFIX = "_RESOLVING_"

_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_claim_marker() -> str:
    return f"{CLAIM_MARKER_PREFIX}{uuid.uuid4()}_"


def is_claim_marker(endpoint: Optional[str]) -> bool:
    """True when an endpoint value is a batch marker rather than a real endpoint."""
    return bool(endpoint) and endpoint.startswith(CLAIM_MARKER_PREFIX)


class ReadConsistency(str, Enum):
    """Where read operations are served from."""
    PRIMARY = "primary"
    # Replica when configured; may miss the caller's own recent writes
    EVENTUAL = "eventual"


@dataclass
class RegistrationUpdate:
    """Result of a save: the stored registration and whether it was created."""
    record: RegistrationRecord
    inserted: bool

    @property
    def updated(self) -> bool:
        return not self.inserted


def _device_columns(device: Device) -> dict:
    return {
        "device_os": device.os.value,
        "device_os_version": device.os_version,
        "device_app_version": device.app_version,
        "device_model": device.model,
    }


class RegistrationStore:
    """Store for push registrations over an injected ``Database`` handle."""

    def __init__(
        self,
        database: Database,
        clock: Callable[[], datetime] = utcnow,
        claim_lease: Optional[timedelta] = None,
    ):
        self._db = database
        self._clock = clock
        self._claim_lease = claim_lease

    @property
    def claim_lease(self) -> Optional[timedelta]:
        return self._claim_lease

    async def ensure_indexes(self) -> List[str]:
        """Create the registrations table and its indexes if missing.

        Returns:
            Names of the indexes declared on the table
        """
        table = Registration.__table__

        def _create(sync_conn):
            Base.metadata.create_all(sync_conn, tables=[table])
            for index in table.indexes:
                index.create(sync_conn, checkfirst=True)

        async with storage_errors("ensure_indexes"):
            async with self._db.engine.begin() as conn:
                await conn.run_sync(_create)

        names = sorted(index.name for index in table.indexes)
        logger.info(f"Registration indexes ensured: {', '.join(names)}")
        return names

    async def save(self, registration: PushRegistration, auth_id: str) -> RegistrationUpdate:
        """Insert or merge the registration for (token, auth_id).

        On insert, token, auth_id and created are set. On every call updated is
        refreshed and, when the registration carries a device, all device
        fields are replaced.

        Raises:
            InvalidOperation: If the registration already carries an endpoint
            StorageUnavailable: If the database cannot be reached
        """
        if registration.endpoint is not None:
            raise InvalidOperation(
                "You must not create a push registration with endpoint, use save_endpoint() instead!"
            )

        now = self._clock()
        new_id = uuid.uuid4().hex
        values = {
            "id": new_id,
            "token": registration.token,
            "auth_id": auth_id,
            "created": now,
            "updated": now,
        }
        changes = {"updated": now}
        if registration.device is not None:
            device = _device_columns(registration.device)
            values.update(device)
            changes.update(device)

        insert = _INSERTS[self._db.dialect_name]
        stmt = (
            insert(Registration)
            .values(**values)
            .on_conflict_do_update(index_elements=["token", "auth_id"], set_=changes)
            .returning(Registration)
        )

        async with storage_errors("save"):
            async with self._db.session() as session:
                async with session.begin():
                    result = await session.scalars(
                        stmt, execution_options={"populate_existing": True}
                    )
                    row = result.one()
                    record = RegistrationRecord.from_row(row)

        inserted = record.id == new_id
        logger.info(
            f"Registration {'created' if inserted else 'updated'}: "
            f"{registration.token[:16]}... (auth_id={auth_id})"
        )
        return RegistrationUpdate(record=record, inserted=inserted)

    async def save_endpoint(self, token: str, endpoint: str) -> bool:
        """Set the delivery endpoint on one registration matching token.

        Returns:
            False when no registration has this token
        """
        target = (
            select(Registration.id)
            .where(Registration.token == token)
            .limit(1)
            .scalar_subquery()
        )
        stmt = (
            update(Registration)
            .where(Registration.id == target)
            .values(endpoint=endpoint, claimed_at=None)
            .execution_options(synchronize_session=False)
        )

        async with storage_errors("save_endpoint"):
            async with self._db.session() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    saved = result.rowcount > 0

        if saved:
            logger.info(f"Endpoint saved for {token[:16]}...")
        else:
            logger.info(f"No registration for {token[:16]}..., endpoint not saved")
        return saved

    async def find_by_auth_id(
        self,
        auth_id: str,
        consistency: ReadConsistency = ReadConsistency.EVENTUAL,
    ) -> List[RegistrationRecord]:
        """All registrations for auth_id, most recently updated first.

        With ``EVENTUAL`` consistency the read goes to the replica when one is
        configured, so a registration saved moments ago may be missing.
        """
        if consistency == ReadConsistency.EVENTUAL:
            session_factory = self._db.replica_session
        else:
            session_factory = self._db.session

        stmt = (
            select(Registration)
            .where(Registration.auth_id == auth_id)
            .order_by(Registration.updated.desc())
        )
        async with storage_errors("find_by_auth_id"):
            async with session_factory() as session:
                result = await session.scalars(stmt)
                return [RegistrationRecord.from_row(row) for row in result.all()]

    async def find_incomplete_registrations(self) -> List[RegistrationRecord]:
        """Claim every unresolved registration with device info and return them.

        Returned records carry the batch marker as their endpoint. Callers treat
        it as unset and replace it through ``save_endpoint``.
        """
        marker = new_claim_marker()
        now = self._clock()

        has_device = Registration.device_os.isnot(None)
        claimable = and_(Registration.endpoint.is_(None), has_device)
        if self._claim_lease is not None:
            expired = and_(
                has_device,
                Registration.endpoint.startswith(CLAIM_MARKER_PREFIX, autoescape=True),
                Registration.claimed_at < now - self._claim_lease,
            )
            claimable = or_(claimable, expired)

        claim = (
            update(Registration)
            .where(claimable)
            .values(endpoint=marker, claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        fetch = (
            select(Registration)
            .where(Registration.endpoint == marker)
            .order_by(Registration.updated.desc())
        )

        async with storage_errors("find_incomplete_registrations"):
            async with self._db.session() as session:
                async with session.begin():
                    claimed = (await session.execute(claim)).rowcount
                    result = await session.scalars(fetch)
                    records = [RegistrationRecord.from_row(row) for row in result.all()]

        logger.info(f"Claimed {claimed} incomplete registrations (batch {marker})")
        return records

    async def remove_token(self, token: str) -> bool:
        """Delete one registration matching token.

        When several auth identities registered the same token only one of
        them, chosen by the database, is removed.
        """
        target = (
            select(Registration.id)
            .where(Registration.token == token)
            .limit(1)
            .scalar_subquery()
        )
        stmt = (
            delete(Registration)
            .where(Registration.id == target)
            .execution_options(synchronize_session=False)
        )

        async with storage_errors("remove_token"):
            async with self._db.session() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    removed = result.rowcount > 0

        if removed:
            logger.info(f"Registration removed: {token[:16]}...")
        return removed
