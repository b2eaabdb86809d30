"""Record store: upsert/read access to the vulnerabilities table."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cvevault.core.database import check_db_connected
from cvevault.core.exceptions import StorageError
from cvevault.models import Base, Vulnerability
from cvevault.schemas.records import VulnerabilityRecord
from cvevault.schemas.sync import RecordError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

# Columns replaced when an existing external_id is written again (last write wins).
_UPDATABLE_COLUMNS = (
    "description",
    "severity",
    "score",
    "published_at",
    "modified_at",
    "raw",
)


@dataclass
class BatchResult:
    """Tally of a batch upsert; inserted_count + len(errors) equals the input size."""

    inserted_count: int = 0
    errors: list[RecordError] = field(default_factory=list)


def _upsert_statement(record: VulnerabilityRecord):
    """INSERT ... ON CONFLICT(external_id) DO UPDATE for one record; keeps the row id."""
    values = {
        "external_id": record.external_id,
        "description": record.description,
        "severity": record.severity,
        "score": record.score,
        "published_at": record.published_at,
        "modified_at": record.modified_at,
        "raw": record.raw,
    }
    stmt = sqlite_insert(Vulnerability).values(**values)
    update_set = {name: stmt.excluded[name] for name in _UPDATABLE_COLUMNS}
    update_set["updated_at"] = func.now()
    return stmt.on_conflict_do_update(
        index_elements=["external_id"],
        set_=update_set,
    )


class RecordStore:
    """
    Durable store of vulnerability records over a SQLAlchemy session factory.

    Every method opens its own session and commits before returning, so calls
    are safe to run from worker threads. Database failures surface as StorageError.
    """

    def __init__(self, session_factory: sessionmaker | None) -> None:
        self._session_factory = session_factory

    def _open_session(self) -> Session:
        if self._session_factory is None:
            raise StorageError("Record store is not initialized (no database session factory).")
        return self._session_factory()

    def init_schema(self) -> None:
        """Create the vulnerabilities table if it does not exist yet."""
        session = self._open_session()
        try:
            Base.metadata.create_all(bind=session.get_bind())
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to initialize database schema: {e}", cause=e) from e
        finally:
            session.close()

    def upsert(self, record: VulnerabilityRecord) -> int:
        """Insert or replace a record by external_id; return its surrogate id."""
        session = self._open_session()
        try:
            session.execute(_upsert_statement(record))
            record_id = (
                session.query(Vulnerability.id)
                .filter(Vulnerability.external_id == record.external_id)
                .scalar()
            )
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(
                f"Failed to store {record.external_id}: {e}", cause=e
            ) from e
        finally:
            session.close()
        logger.debug("Stored record id=%s external_id=%s", record_id, record.external_id)
        return record_id

    def _write_chunk(self, records: Sequence[VulnerabilityRecord]) -> None:
        """Write all records in one transaction; nothing is committed if any row fails."""
        session = self._open_session()
        try:
            for record in records:
                session.execute(_upsert_statement(record))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Batch write failed: {e}", cause=e) from e
        finally:
            session.close()

    def upsert_batch(
        self,
        records: Sequence[VulnerabilityRecord],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> BatchResult:
        """
        Upsert records in transactional chunks of batch_size.

        When a chunk's transaction fails it is rolled back and replayed one row
        per transaction, so valid sibling rows still commit and only failing
        rows are reported in errors.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        result = BatchResult()
        for start in range(0, len(records), batch_size):
            chunk = records[start : start + batch_size]
            try:
                self._write_chunk(chunk)
                result.inserted_count += len(chunk)
                continue
            except StorageError as e:
                logger.warning(
                    "Batch write failed; replaying rows individually",
                    extra={"batch_start": start, "batch_size": len(chunk), "reason": e.message[:200]},
                )
            for record in chunk:
                try:
                    self.upsert(record)
                    result.inserted_count += 1
                except StorageError as e:
                    logger.error("Failed to store %s: %s", record.external_id, e.message)
                    result.errors.append(
                        RecordError(external_id=record.external_id, message=e.message)
                    )
        return result

    def get_all(self) -> list[VulnerabilityRecord]:
        """Return every record, newest publish date first."""
        session = self._open_session()
        try:
            rows = (
                session.query(Vulnerability)
                .order_by(Vulnerability.published_at.desc(), Vulnerability.id.desc())
                .all()
            )
            return [VulnerabilityRecord.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read records: {e}", cause=e) from e
        finally:
            session.close()

    def get_by_external_id(self, external_id: str) -> VulnerabilityRecord | None:
        """Return the record with this upstream identifier, or None."""
        session = self._open_session()
        try:
            row = (
                session.query(Vulnerability)
                .filter(Vulnerability.external_id == external_id)
                .first()
            )
            return VulnerabilityRecord.model_validate(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read {external_id}: {e}", cause=e) from e
        finally:
            session.close()

    def count(self) -> int:
        """Number of stored records."""
        session = self._open_session()
        try:
            return session.query(func.count(Vulnerability.id)).scalar() or 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count records: {e}", cause=e) from e
        finally:
            session.close()

    def health(self) -> bool:
        """False when no session factory is configured or a trivial query fails."""
        if self._session_factory is None:
            return False
        try:
            session = self._session_factory()
        except SQLAlchemyError:
            return False
        try:
            return check_db_connected(session)
        finally:
            session.close()
