from __future__ import annotations

import logging
import os
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Iterator

from icalendar import Calendar as ICalendar

from calport.models import (
    AccessClass,
    Alarm,
    AlarmAction,
    AlarmTrigger,
    EventStatus,
    FreeBusyType,
    SourceEvent,
    Transparency,
)


logger = logging.getLogger(__name__)


class IcsParseError(ValueError):
    """Raised when a document is not a readable iCalendar stream."""


def _decode_raw_ical(raw_data: Any) -> str:
    if isinstance(raw_data, bytes):
        return raw_data.decode("utf-8", errors="replace")
    return str(raw_data)


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _text(component: Any, name: str) -> str | None:
    value = _first(component.get(name))
    if value is None:
        return None
    return str(value)


def _recur_text(component: Any, name: str) -> str | None:
    value = _first(component.get(name))
    if value is None:
        return None
    text = value.to_ical()
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    return text or None


def _date_list(component: Any, name: str) -> tuple[date | datetime, ...]:
    value = component.get(name)
    if value is None:
        return ()
    items = value if isinstance(value, list) else [value]
    dates: list[date | datetime] = []
    for item in items:
        for entry in getattr(item, "dts", []):
            # PERIOD values carry a (start, end) tuple; only dates are kept.
            if isinstance(entry.dt, date):
                dates.append(entry.dt)
    return tuple(dates)


def _decoded(component: Any, name: str) -> Any:
    if component.get(name) is None:
        return None
    return component.decoded(name)


def _free_busy(component: Any) -> FreeBusyType | None:
    prop = _first(component.get("FREEBUSY"))
    if prop is None:
        return None
    params = getattr(prop, "params", {}) or {}
    return FreeBusyType.parse(params.get("FBTYPE"))


def _parse_trigger(alarm: Any) -> AlarmTrigger | None:
    prop = alarm.get("TRIGGER")
    if prop is None:
        return None
    value = getattr(prop, "dt", None)
    related = str((getattr(prop, "params", {}) or {}).get("RELATED", "")).upper()
    if isinstance(value, timedelta):
        return AlarmTrigger(relative=value, related_end=related == "END")
    if isinstance(value, date):
        return AlarmTrigger(absolute=value)
    return None


def _parse_alarms(component: Any) -> tuple[Alarm, ...]:
    alarms: list[Alarm] = []
    for sub in component.subcomponents:
        if sub.name != "VALARM":
            continue
        alarms.append(
            Alarm(
                action=AlarmAction.parse(sub.get("ACTION")),
                trigger=_parse_trigger(sub),
            )
        )
    return tuple(alarms)


def parse_vevent(component: Any) -> SourceEvent:
    start = _decoded(component, "DTSTART")
    if start is None:
        raise IcsParseError("VEVENT without DTSTART.")
    return SourceEvent(
        start=start,
        end=_decoded(component, "DTEND"),
        duration=_decoded(component, "DURATION"),
        uid=(_text(component, "UID") or "").strip(),
        summary=_text(component, "SUMMARY"),
        description=_text(component, "DESCRIPTION"),
        location=_text(component, "LOCATION"),
        organizer=_text(component, "ORGANIZER"),
        url=_text(component, "URL"),
        rrule=_recur_text(component, "RRULE"),
        rdates=_date_list(component, "RDATE"),
        exrule=_recur_text(component, "EXRULE"),
        exdates=_date_list(component, "EXDATE"),
        status=EventStatus.parse(component.get("STATUS")),
        access_class=AccessClass.parse(component.get("CLASS")),
        transparency=Transparency.parse(component.get("TRANSP")),
        free_busy=_free_busy(component),
        alarms=_parse_alarms(component),
        recurrence_id=_decoded(component, "RECURRENCE-ID"),
    )


class IcsDocument:
    """A parsed iCalendar document yielding its VEVENTs in document order.

    Iteration can be repeated; each pass starts from the first event.
    """

    def __init__(self, calendar_obj: ICalendar) -> None:
        self._calendar = calendar_obj

    @classmethod
    def from_ical(cls, raw_data: str | bytes) -> "IcsDocument":
        try:
            calendar_obj = ICalendar.from_ical(_decode_raw_ical(raw_data))
        except ValueError as exc:
            raise IcsParseError(f"Invalid iCalendar document: {exc}") from exc
        return cls(calendar_obj)

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> "IcsDocument":
        return cls.from_ical(Path(path).read_bytes())

    def _components(self) -> list[Any]:
        return [component for component in self._calendar.walk() if component.name == "VEVENT"]

    def __len__(self) -> int:
        # Matches what iteration yields: events without DTSTART are skipped there.
        return sum(1 for component in self._components() if component.get("DTSTART") is not None)

    def __iter__(self) -> Iterator[SourceEvent]:
        for component in self._components():
            try:
                yield parse_vevent(component)
            except IcsParseError as exc:
                logger.warning("Skipping unreadable VEVENT %s: %s", component.get("UID"), exc)
