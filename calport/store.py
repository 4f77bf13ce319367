from __future__ import annotations

from typing import Any, Protocol

from calport.models import EventMatch, ExistingRecord, RecordKind


class CalendarStore(Protocol):
    """Boundary of the calendar store an import writes into.

    ``delete(RecordKind.REMINDER, event_id)`` removes the reminders owned by
    that event; every other call addresses a record by its own id.
    """

    supports_availability: bool

    def query(self, calendar_id: str | None, match: EventMatch) -> list[ExistingRecord]:
        ...

    def insert(self, kind: RecordKind, values: dict[str, Any]) -> str | None:
        ...

    def delete(self, kind: RecordKind, record_id: str) -> int:
        ...
