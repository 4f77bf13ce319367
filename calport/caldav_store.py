from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any

import caldav
from caldav.lib.error import DAVError, NotFoundError
from icalendar import Alarm as ICAlarm
from icalendar import Calendar as ICalendar
from icalendar import Event as ICEvent
from icalendar import vDuration, vRecur

from calport import schema
from calport.models import (
    AccessLevel,
    Availability,
    CalDAVConfig,
    CalendarInfo,
    EventMatch,
    ExistingRecord,
    RecordKind,
    RecordStatus,
    date_to_datetime,
)


logger = logging.getLogger(__name__)

PRODID = "-//calport//ICS Import//EN"
SEARCH_SLACK = timedelta(minutes=1)
# HTTP transport failures subclass OSError.
STORE_ERRORS = (DAVError, OSError)

ICAL_STATUS = {
    RecordStatus.TENTATIVE: "TENTATIVE",
    RecordStatus.CONFIRMED: "CONFIRMED",
    RecordStatus.CANCELED: "CANCELLED",
}

ICAL_CLASS = {
    AccessLevel.CONFIDENTIAL: "CONFIDENTIAL",
    AccessLevel.PRIVATE: "PRIVATE",
    AccessLevel.PUBLIC: "PUBLIC",
}

ICAL_TRANSP = {
    Availability.FREE: "TRANSPARENT",
    Availability.BUSY: "OPAQUE",
    Availability.TENTATIVE: "OPAQUE",
}


def _normalize_calendar_id(value: str) -> str:
    return str(value or "").strip().rstrip("/")


def _decode_raw_ical(raw_data: Any) -> str:
    if isinstance(raw_data, bytes):
        return raw_data.decode("utf-8", errors="replace")
    return str(raw_data)


def _first_vevent(calendar_obj: ICalendar) -> ICEvent | None:
    for component in calendar_obj.walk():
        if component.name == "VEVENT":
            return component
    return None


def _event_date(value: datetime, all_day: bool) -> date | datetime:
    if all_day:
        return value.date()
    return value


def build_ical(values: dict[str, Any]) -> str:
    """Render an event record as a single-VEVENT iCalendar resource."""
    calendar_obj = ICalendar()
    calendar_obj.add("PRODID", PRODID)
    calendar_obj.add("VERSION", "2.0")
    vevent = ICEvent()
    vevent.add("UID", values[schema.UID])
    all_day = bool(values.get(schema.ALL_DAY))

    if values.get(schema.TITLE) is not None:
        vevent.add("SUMMARY", values[schema.TITLE])
    if values.get(schema.DESCRIPTION) is not None:
        vevent.add("DESCRIPTION", values[schema.DESCRIPTION])
    if values.get(schema.LOCATION) is not None:
        vevent.add("LOCATION", values[schema.LOCATION])
    if values.get(schema.ORGANIZER) is not None:
        vevent.add("ORGANIZER", values[schema.ORGANIZER])

    vevent.add("DTSTART", _event_date(values[schema.DTSTART], all_day))
    if values.get(schema.DTEND) is not None:
        vevent.add("DTEND", _event_date(values[schema.DTEND], all_day))
    if values.get(schema.DURATION):
        vevent.add("DURATION", vDuration.from_ical(values[schema.DURATION]))

    status = values.get(schema.STATUS)
    if status in ICAL_STATUS:
        vevent.add("STATUS", ICAL_STATUS[status])
    access = values.get(schema.ACCESS_LEVEL)
    if access in ICAL_CLASS:
        vevent.add("CLASS", ICAL_CLASS[access])
    availability = values.get(schema.AVAILABILITY)
    if availability in ICAL_TRANSP:
        vevent.add("TRANSP", ICAL_TRANSP[availability])

    if values.get(schema.RRULE):
        vevent.add("RRULE", vRecur.from_ical(values[schema.RRULE]))
    if values.get(schema.EXRULE):
        vevent.add("EXRULE", vRecur.from_ical(values[schema.EXRULE]))
    if values.get(schema.RDATE):
        vevent.add("RDATE", list(values[schema.RDATE]))
    if values.get(schema.EXDATE):
        vevent.add("EXDATE", list(values[schema.EXDATE]))
    if values.get(schema.CUSTOM_APP_URI):
        vevent.add("URL", values[schema.CUSTOM_APP_URI])

    calendar_obj.add_component(vevent)
    return calendar_obj.to_ical().decode("utf-8")


def build_alarm(minutes: int) -> ICAlarm:
    alarm = ICAlarm()
    alarm.add("ACTION", "DISPLAY")
    alarm.add("DESCRIPTION", "Reminder")
    alarm.add("TRIGGER", timedelta(minutes=-int(minutes)))
    return alarm


class CalDAVStore:
    """Calendar store backed by a CalDAV server; record ids are resource URLs."""

    supports_availability = True

    def __init__(self, config: CalDAVConfig) -> None:
        self.config = config
        self._client: Any = None
        self._principal: Any = None
        self._calendar_cache: dict[str, Any] = {}

    def _connect(self) -> None:
        if self._principal is not None:
            return
        if not self.config.base_url or not self.config.username:
            raise RuntimeError("CalDAV config is incomplete.")
        self._client = caldav.DAVClient(
            url=self.config.base_url,
            username=self.config.username,
            password=self.config.password,
        )
        self._principal = self._client.principal()

    def list_calendars(self, count_entries: bool = False) -> list[CalendarInfo]:
        self._connect()
        self._calendar_cache = {}
        calendars: list[CalendarInfo] = []
        for calendar in self._principal.calendars():
            calendar_id = str(calendar.url)
            name = getattr(calendar, "name", "") or calendar_id
            self._calendar_cache[calendar_id] = calendar
            num_entries = len(calendar.events()) if count_entries else 0
            calendars.append(
                CalendarInfo(calendar_id=calendar_id, name=name, url=calendar_id, num_entries=num_entries)
            )
        return calendars

    def _get_calendar(self, calendar_id: str) -> Any:
        self._connect()
        if calendar_id in self._calendar_cache:
            return self._calendar_cache[calendar_id]
        wanted = _normalize_calendar_id(calendar_id)
        for calendar in self._principal.calendars():
            cid = str(calendar.url)
            self._calendar_cache[cid] = calendar
            if _normalize_calendar_id(cid) == wanted:
                self._calendar_cache[calendar_id] = calendar
        if calendar_id not in self._calendar_cache:
            raise RuntimeError(f"Calendar not found: {calendar_id}")
        return self._calendar_cache[calendar_id]

    def get_calendar(self, calendar_id: str) -> CalendarInfo:
        """Look a calendar up by any spelling of its URL.

        The returned id is the server's URL, the same id query results carry.
        """
        calendar = self._get_calendar(calendar_id)
        canonical_id = str(calendar.url)
        return CalendarInfo(
            calendar_id=canonical_id,
            name=getattr(calendar, "name", "") or canonical_id,
            url=canonical_id,
            num_entries=len(calendar.events()),
        )

    def _calendar_ids(self, calendar_id: str | None) -> list[str]:
        if calendar_id is not None:
            return [calendar_id]
        return [info.calendar_id for info in self.list_calendars()]

    def _query_uid(self, calendar_id: str, uid: str) -> list[ExistingRecord]:
        calendar = self._get_calendar(calendar_id)
        try:
            resource = calendar.event_by_uid(uid)
        except NotFoundError:
            return []
        except STORE_ERRORS:
            logger.warning("UID lookup for %s failed in %s; treating as no match", uid, calendar_id, exc_info=True)
            return []
        if isinstance(resource, list):
            return [ExistingRecord(str(calendar.url), str(item.url)) for item in resource]
        return [ExistingRecord(str(calendar.url), str(resource.url))]

    def _query_start(self, calendar_id: str, start: datetime, title: str | None) -> list[ExistingRecord]:
        calendar = self._get_calendar(calendar_id)
        wanted_start = date_to_datetime(start)
        try:
            resources = calendar.search(
                event=True,
                start=wanted_start,
                end=wanted_start + SEARCH_SLACK,
                expand=False,
            )
        except STORE_ERRORS:
            logger.warning("Search at %s failed in %s; treating as no match", wanted_start, calendar_id, exc_info=True)
            return []
        records: list[ExistingRecord] = []
        for resource in resources:
            vevent = _first_vevent(ICalendar.from_ical(_decode_raw_ical(resource.data)))
            if vevent is None or vevent.get("DTSTART") is None:
                continue
            if date_to_datetime(vevent.decoded("DTSTART")) != wanted_start:
                continue
            summary = vevent.get("SUMMARY")
            existing_title = str(summary) if summary is not None else None
            if existing_title != title:
                continue
            records.append(ExistingRecord(str(calendar.url), str(resource.url)))
        return records

    def query(self, calendar_id: str | None, match: EventMatch) -> list[ExistingRecord]:
        records: list[ExistingRecord] = []
        for cid in self._calendar_ids(calendar_id):
            if match.uid:
                records.extend(self._query_uid(cid, match.uid))
            elif match.start is not None:
                records.extend(self._query_start(cid, match.start, match.title))
        return records

    def _resource(self, record_id: str) -> Any:
        self._connect()
        return caldav.Event(client=self._client, url=record_id)

    def _insert_event(self, values: dict[str, Any]) -> str | None:
        calendar = self._get_calendar(str(values[schema.CALENDAR_ID]))
        try:
            resource = calendar.save_event(build_ical(values))
        except STORE_ERRORS:
            logger.exception("Could not insert event %s", values.get(schema.UID))
            return None
        return str(resource.url)

    def _insert_reminder(self, values: dict[str, Any]) -> str | None:
        event_id = str(values[schema.REMINDER_EVENT_ID])
        minutes = int(values[schema.REMINDER_MINUTES])
        try:
            resource = self._resource(event_id)
            resource.load()
            calendar_obj = ICalendar.from_ical(_decode_raw_ical(resource.data))
            vevent = _first_vevent(calendar_obj)
            if vevent is None:
                return None
            vevent.add_component(build_alarm(minutes))
            resource.data = calendar_obj.to_ical().decode("utf-8")
            resource.save()
        except STORE_ERRORS:
            logger.exception("Could not add reminder to %s", event_id)
            return None
        return f"{event_id}#alarm-{minutes}"

    def insert(self, kind: RecordKind, values: dict[str, Any]) -> str | None:
        if kind == RecordKind.EVENT:
            return self._insert_event(values)
        return self._insert_reminder(values)

    def _delete_reminders(self, event_id: str) -> int:
        try:
            resource = self._resource(event_id)
            resource.load()
        except STORE_ERRORS:
            return 0
        calendar_obj = ICalendar.from_ical(_decode_raw_ical(resource.data))
        vevent = _first_vevent(calendar_obj)
        if vevent is None:
            return 0
        kept = [sub for sub in vevent.subcomponents if sub.name != "VALARM"]
        removed = len(vevent.subcomponents) - len(kept)
        if removed:
            vevent.subcomponents = kept
            resource.data = calendar_obj.to_ical().decode("utf-8")
            resource.save()
        return removed

    def delete(self, kind: RecordKind, record_id: str) -> int:
        if kind == RecordKind.REMINDER:
            return self._delete_reminders(record_id)
        try:
            self._resource(record_id).delete()
        except STORE_ERRORS:
            logger.debug("Event %s already gone", record_id)
            return 0
        return 1
