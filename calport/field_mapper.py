from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from calport import schema
from calport.models import (
    AccessClass,
    AccessLevel,
    Availability,
    CanonicalEvent,
    EventStatus,
    FreeBusyType,
    RecordStatus,
    Transparency,
    date_to_datetime,
    format_duration,
    is_pure_date,
)


STATUS_MAP: dict[EventStatus, RecordStatus] = {
    EventStatus.TENTATIVE: RecordStatus.TENTATIVE,
    EventStatus.CONFIRMED: RecordStatus.CONFIRMED,
    EventStatus.CANCELLED: RecordStatus.CANCELED,
}

ACCESS_MAP: dict[AccessClass, AccessLevel] = {
    AccessClass.CONFIDENTIAL: AccessLevel.CONFIDENTIAL,
    AccessClass.PRIVATE: AccessLevel.PRIVATE,
    AccessClass.PUBLIC: AccessLevel.PUBLIC,
    AccessClass.OTHER: AccessLevel.DEFAULT,
}

FREE_BUSY_MAP: dict[FreeBusyType, Availability] = {
    FreeBusyType.FREE: Availability.FREE,
    FreeBusyType.BUSY: Availability.BUSY,
    FreeBusyType.BUSY_UNAVAILABLE: Availability.BUSY,
    FreeBusyType.BUSY_TENTATIVE: Availability.TENTATIVE,
}


def timezone_name(value: date | datetime) -> str:
    if is_pure_date(value) or value.tzinfo is None:
        return "UTC"
    tzinfo = value.tzinfo
    if tzinfo is timezone.utc:
        return "UTC"
    name = getattr(tzinfo, "key", None) or getattr(tzinfo, "zone", None)
    if name:
        return str(name)
    return value.tzname() or "UTC"


def _store_datetime(value: date | datetime) -> datetime:
    if is_pure_date(value):
        return date_to_datetime(value)
    return value


def resolve_availability(event: CanonicalEvent) -> Availability:
    # TRANSP wins over the FREEBUSY hint when both are present.
    if event.transparency is not None:
        if event.transparency == Transparency.TRANSPARENT:
            return Availability.FREE
        return Availability.BUSY
    free_busy = event.source.free_busy
    if free_busy is not None:
        return FREE_BUSY_MAP[free_busy]
    return Availability.BUSY


def _copy_text(values: dict[str, Any], key: str, value: str | None) -> None:
    if value is not None:
        values[key] = value


def map_event(
    event: CanonicalEvent,
    calendar_id: str,
    reminders: list[int],
    supports_availability: bool = True,
) -> dict[str, Any]:
    """Build the store record for a canonical event.

    ``reminders`` is the effective reminder set already chosen for the event;
    it only decides the has-alarm flag here.
    """
    source = event.source
    values: dict[str, Any] = {schema.CALENDAR_ID: calendar_id}

    _copy_text(values, schema.TITLE, source.summary)
    _copy_text(values, schema.DESCRIPTION, source.description)
    if source.organizer is not None:
        values[schema.ORGANIZER] = source.organizer
        # The importing account is not the organiser but must stay able to edit.
        values[schema.GUESTS_CAN_MODIFY] = True
    _copy_text(values, schema.LOCATION, source.location)

    if source.status is not None:
        values[schema.STATUS] = STATUS_MAP[source.status]

    if event.duration is not None:
        values[schema.DURATION] = format_duration(event.duration)
    if event.all_day:
        values[schema.ALL_DAY] = True

    values[schema.DTSTART] = _store_datetime(event.start)
    values[schema.EVENT_TIMEZONE] = timezone_name(event.start)
    if event.end is not None:
        values[schema.DTEND] = _store_datetime(event.end)
        values[schema.EVENT_END_TIMEZONE] = timezone_name(event.end)

    if source.access_class is not None:
        values[schema.ACCESS_LEVEL] = ACCESS_MAP[source.access_class]

    if supports_availability:
        values[schema.AVAILABILITY] = resolve_availability(event)

    _copy_text(values, schema.RRULE, source.rrule)
    if source.rdates:
        values[schema.RDATE] = list(source.rdates)
    _copy_text(values, schema.EXRULE, source.exrule)
    if source.exdates:
        values[schema.EXDATE] = list(source.exdates)
    _copy_text(values, schema.CUSTOM_APP_URI, source.url)

    uid = (source.uid or "").strip()
    if uid:
        values[schema.UID] = uid

    if reminders:
        values[schema.HAS_ALARM] = True
    return values
