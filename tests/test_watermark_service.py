from datetime import date, timedelta

import pytest

from tradearchive.services.watermark_service import IngestWatermarkService, contiguous_completed

JOB = "trading_history_backfill"
ANCHOR = date(2021, 6, 24)


def _days(start, count):
    return [start - timedelta(days=i) for i in range(count)]


def test_contiguous_completed_stops_at_first_gap():
    done = _days(ANCHOR, 3) + [ANCHOR - timedelta(days=5)]
    assert contiguous_completed(ANCHOR, done) == date(2021, 6, 22)
    assert contiguous_completed(ANCHOR, []) is None
    assert contiguous_completed(ANCHOR, [date(2021, 6, 23)]) is None


@pytest.mark.asyncio
async def test_record_and_resume(session_factory):
    service = IngestWatermarkService(session_factory=session_factory)

    assert await service.resume_window(JOB, ANCHOR, 10) == (ANCHOR, 10)

    stored = await service.record_run(JOB, ANCHOR, ANCHOR, _days(ANCHOR, 4))
    assert stored == date(2021, 6, 21)

    start, remaining = await service.resume_window(JOB, ANCHOR, 10)
    assert (start, remaining) == (date(2021, 6, 20), 6)

    stored = await service.record_run(JOB, ANCHOR, start, _days(start, remaining))
    assert stored == date(2021, 6, 15)
    assert await service.resume_window(JOB, ANCHOR, 10) == (date(2021, 6, 14), 0)


@pytest.mark.asyncio
async def test_rerun_from_anchor_never_moves_watermark_forward(session_factory):
    service = IngestWatermarkService(session_factory=session_factory)
    await service.record_run(JOB, ANCHOR, ANCHOR, _days(ANCHOR, 6))

    stored = await service.record_run(JOB, ANCHOR, ANCHOR, _days(ANCHOR, 2))
    assert stored == date(2021, 6, 19)


@pytest.mark.asyncio
async def test_disconnected_run_is_ignored(session_factory):
    service = IngestWatermarkService(session_factory=session_factory)
    await service.record_run(JOB, ANCHOR, ANCHOR, _days(ANCHOR, 2))

    stray_start = date(2021, 6, 1)
    assert await service.record_run(JOB, ANCHOR, stray_start, _days(stray_start, 3)) == date(2021, 6, 23)

    watermark = await service.get(JOB)
    assert watermark.last_completed_date == date(2021, 6, 23)


@pytest.mark.asyncio
async def test_new_anchor_replaces_previous_backfill(session_factory):
    service = IngestWatermarkService(session_factory=session_factory)
    await service.record_run(JOB, ANCHOR, ANCHOR, _days(ANCHOR, 2))

    new_anchor = date(2021, 7, 1)
    assert await service.record_run(JOB, new_anchor, new_anchor, _days(new_anchor, 1)) == new_anchor
    assert await service.resume_window(JOB, ANCHOR, 5) == (ANCHOR, 5)
