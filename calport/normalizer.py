from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from calport.models import CanonicalEvent, SourceEvent, Transparency, is_pure_date


ONE_DAY = timedelta(days=1)
ZERO_SECONDS = timedelta(0)


def _span(start: date | datetime, end: date | datetime) -> timedelta:
    if is_pure_date(start) and is_pure_date(end):
        return end - start
    start_dt = start if isinstance(start, datetime) else datetime.combine(start, datetime.min.time())
    end_dt = end if isinstance(end, datetime) else datetime.combine(end, datetime.min.time())
    if (start_dt.tzinfo is None) != (end_dt.tzinfo is None):
        start_dt = start_dt if start_dt.tzinfo else start_dt.replace(tzinfo=timezone.utc)
        end_dt = end_dt if end_dt.tzinfo else end_dt.replace(tzinfo=timezone.utc)
    return end_dt - start_dt


def normalize_event(event: SourceEvent) -> CanonicalEvent:
    """Reduce a source event to the shape the target store accepts.

    A pure-date start makes the event all-day: midnight to midnight UTC, one
    day long, any end dropped. A timed event with neither end nor duration
    lasts no time and is always free. Recurring events keep a duration only;
    everything else keeps an end only. The source event is left untouched.
    """
    start = event.start
    end = event.end
    duration = event.duration
    transparency = event.transparency
    all_day = False

    if is_pure_date(start):
        all_day = True
        duration = ONE_DAY
        end = None

    if end is None and duration is None:
        duration = ZERO_SECONDS
        transparency = Transparency.TRANSPARENT

    if event.is_recurring:
        if duration is None:
            duration = _span(start, end)
        end = None
    else:
        if end is None:
            end = start + duration
        duration = None

    return CanonicalEvent(
        source=event,
        start=start,
        all_day=all_day,
        end=end,
        duration=duration,
        transparency=transparency,
    )
