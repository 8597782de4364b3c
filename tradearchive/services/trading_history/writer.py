import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from tradearchive.core.config import settings
from tradearchive.core.database import AsyncSessionLocal, dialect_insert
from tradearchive.core.exceptions import RecordWriteError
from tradearchive.core.metrics import MetricsEmitter, metrics as default_metrics
from tradearchive.models.stock_record import NATURAL_KEY, StockRecord
from tradearchive.services.trading_history.resolver import TradingRecord

logger = logging.getLogger(__name__)


class StockRecordWriter:
    """
    Upsert trading records on (business_date, symbol, security_name).

    A conflicting row has every other column overwritten, so writing the same
    report twice leaves the table as if it had been written once. Writes for the
    same natural key are serialized through one of lock_partitions locks;
    unrelated keys usually land on different locks and proceed in parallel.
    With lock_partitions=0 the store's upsert atomicity is relied on alone.
    """

    def __init__(
        self,
        session_factory=AsyncSessionLocal,
        lock_partitions: int | None = None,
        metrics_emitter: MetricsEmitter | None = None,
    ):
        self.session_factory = session_factory
        partitions = settings.WRITE_LOCK_PARTITIONS if lock_partitions is None else lock_partitions
        self._locks: List[asyncio.Lock] = [asyncio.Lock() for _ in range(max(partitions, 0))]
        self.metrics = metrics_emitter or default_metrics

    async def write(self, record: TradingRecord) -> bool:
        """Upsert one record; failures are logged and reported as False."""
        try:
            await self.upsert(record)
        except RecordWriteError as exc:
            logger.error(
                "Failed to write %s %r: %s",
                record.business_date, record.security_name, exc,
            )
            self.metrics.row_write_failed(str(record.business_date), record.security_name, str(exc))
            return False

        logger.debug(
            "Wrote %s %s (%r)", record.business_date, record.symbol or "-", record.security_name
        )
        return True

    async def upsert(self, record: TradingRecord) -> None:
        """Upsert one record, raising RecordWriteError on failure."""
        lock = self._lock_for(record)
        if lock is None:
            await self._execute(record)
            return
        async with lock:
            await self._execute(record)

    def _lock_for(self, record: TradingRecord) -> Optional[asyncio.Lock]:
        if not self._locks:
            return None
        return self._locks[hash(record.natural_key) % len(self._locks)]

    async def _execute(self, record: TradingRecord) -> None:
        async with self.session_factory() as session:
            try:
                insert = dialect_insert(session)
                stmt = insert(StockRecord).values(**record.to_row())
                stmt = stmt.on_conflict_do_update(
                    index_elements=list(NATURAL_KEY),
                    set_=self._build_update_map(stmt),
                )
                await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise RecordWriteError(
                    f"Upsert failed: {exc}",
                    {"natural_key": [str(part) for part in record.natural_key]},
                ) from exc

    def _build_update_map(self, stmt: Any) -> Dict[str, Any]:
        excluded = stmt.excluded
        skip = {"id", "created_at", "updated_at", *NATURAL_KEY}
        update_map = {
            column.name: getattr(excluded, column.name)
            for column in StockRecord.__table__.columns
            if column.name not in skip
        }
        update_map["updated_at"] = excluded.created_at
        return update_map
