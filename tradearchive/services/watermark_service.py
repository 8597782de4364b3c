import logging
from datetime import date, timedelta
from typing import Iterable, Optional, Tuple

from sqlalchemy import select

from tradearchive.core.database import AsyncSessionLocal, dialect_insert
from tradearchive.models.ingest_watermark import IngestWatermark

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def contiguous_completed(run_start: date, completed: Iterable[date]) -> Optional[date]:
    """Oldest date reachable from run_start going backward through completed days only."""
    done = set(completed)
    last = None
    day = run_start
    while day in done:
        last = day
        day -= ONE_DAY
    return last


class IngestWatermarkService:
    """Track how far back a backfill anchored at a given date has got."""

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def get(self, job_name: str) -> Optional[IngestWatermark]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(IngestWatermark).where(IngestWatermark.job_name == job_name)
            )
            return result.scalar_one_or_none()

    async def resume_window(self, job_name: str, start_date: date, day_count: int) -> Tuple[date, int]:
        """
        Narrow a (start_date, day_count) backfill to the days not yet covered by
        a previous run with the same anchor.
        """
        watermark = await self.get(job_name)
        if (
            watermark is None
            or watermark.anchor_date != start_date
            or watermark.last_completed_date is None
        ):
            return start_date, day_count

        done = (start_date - watermark.last_completed_date).days + 1
        remaining = max(day_count - done, 0)
        resume_from = watermark.last_completed_date - ONE_DAY
        logger.info(
            "Resuming %s from %s: %s of %s days already complete",
            job_name, resume_from, min(done, day_count), day_count,
        )
        return resume_from, remaining

    async def record_run(
        self,
        job_name: str,
        anchor_date: date,
        run_start: date,
        completed: Iterable[date],
    ) -> Optional[date]:
        """Advance the watermark with a finished run and return the stored value."""
        existing = await self.get(job_name)
        same_anchor = existing is not None and existing.anchor_date == anchor_date
        previous = existing.last_completed_date if same_anchor else None

        continues_previous = previous is not None and run_start == previous - ONE_DAY
        if run_start != anchor_date and not continues_previous:
            logger.warning(
                "Run starting %s does not continue watermark %s for %s; leaving it unchanged",
                run_start, previous, job_name,
            )
            return previous

        progress = contiguous_completed(run_start, completed)
        candidates = [d for d in (previous, progress) if d is not None]
        last_completed = min(candidates) if candidates else None

        async with self.session_factory() as session:
            insert = dialect_insert(session)
            stmt = insert(IngestWatermark).values(
                job_name=job_name,
                anchor_date=anchor_date,
                last_completed_date=last_completed,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[IngestWatermark.job_name],
                set_={
                    "anchor_date": stmt.excluded.anchor_date,
                    "last_completed_date": stmt.excluded.last_completed_date,
                    "updated_at": stmt.excluded.created_at,
                },
            )
            await session.execute(stmt)
            await session.commit()

        logger.info("Watermark for %s: anchor %s, complete back to %s", job_name, anchor_date, last_completed)
        return last_completed
