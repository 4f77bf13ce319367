from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable

from calport.models import Alarm, AlarmAction, date_to_datetime


logger = logging.getLogger(__name__)

SUPPORTED_ACTIONS = {AlarmAction.AUDIO, AlarmAction.DISPLAY}
ONE_MINUTE = timedelta(minutes=1)


def _minutes(delta: timedelta) -> int:
    # Truncates toward zero, so a sub-minute lead time counts as 0.
    return int(delta / ONE_MINUTE)


def _alarm_offset(
    alarm: Alarm,
    start: datetime | None,
    end: datetime | None,
) -> int | None:
    trigger = alarm.trigger
    if trigger is None:
        return None
    if trigger.absolute is not None:
        if start is None:
            return None
        return _minutes(start - date_to_datetime(trigger.absolute))
    if trigger.relative is not None and trigger.relative < timedelta(0):
        anchor = end if trigger.related_end else start
        if anchor is None:
            return None
        fire_at = anchor + trigger.relative
        return _minutes(anchor - fire_at)
    return None


def extract_reminders(
    alarms: Iterable[Alarm],
    start: date | datetime | None,
    end: date | datetime | None,
) -> list[int]:
    """Reminder offsets, in minutes before the event, for an event's alarms.

    Only audible and display alarms count. Absolute triggers are measured
    against the start; negative relative triggers against the start or, with
    ``RELATED=END``, the end. Everything else is ignored. The result holds
    distinct non-negative values in alarm order.
    """
    start_dt = date_to_datetime(start)
    end_dt = date_to_datetime(end)
    reminders: list[int] = []
    for alarm in alarms:
        if alarm.action not in SUPPORTED_ACTIONS:
            logger.debug("Ignoring alarm with unsupported action %s", alarm.action)
            continue
        offset = _alarm_offset(alarm, start_dt, end_dt)
        if offset is None:
            logger.debug("Ignoring alarm with unsupported trigger %s", alarm.trigger)
            continue
        if offset >= 0 and offset not in reminders:
            reminders.append(offset)
    return reminders
