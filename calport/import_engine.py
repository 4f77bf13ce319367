from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from calport import schema
from calport.field_mapper import map_event
from calport.models import (
    CalendarInfo,
    DuplicateHandling,
    EventOutcome,
    EventReport,
    ImportConfig,
    ImportCounters,
    ImportResult,
    RecordKind,
    ReminderMethod,
    RunMode,
    SourceEvent,
    serialize_datetime,
)
from calport.normalizer import normalize_event
from calport.reconciler import resolve_duplicates
from calport.reminders import extract_reminders
from calport.store import CalendarStore


logger = logging.getLogger(__name__)

UID_DOMAIN = "calport"


def _hash_text(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()  # nosec B324


def generate_uid(values: dict[str, Any], occurrence: int = 0) -> str:
    """A UID derived from the record content, stable across repeated imports.

    ``occurrence`` tells apart identical records within one document.
    """
    parts = [
        str(values.get(schema.TITLE) or ""),
        str(values.get(schema.DESCRIPTION) or ""),
        str(values.get(schema.LOCATION) or ""),
        str(values.get(schema.ORGANIZER) or ""),
        str(values.get(schema.CUSTOM_APP_URI) or ""),
        str(values.get(schema.STATUS) or ""),
        str(serialize_datetime(values.get(schema.DTSTART)) or ""),
        str(serialize_datetime(values.get(schema.DTEND)) or ""),
        str(values.get(schema.DURATION) or ""),
        str(values.get(schema.RRULE) or ""),
        ",".join(str(serialize_datetime(value)) for value in values.get(schema.RDATE) or []),
        ",".join(str(serialize_datetime(value)) for value in values.get(schema.EXDATE) or []),
    ]
    if occurrence:
        parts.append(str(occurrence))
    return f"{_hash_text('|'.join(parts))}@{UID_DOMAIN}"


class ImportEngine:
    def __init__(self, store: CalendarStore, options: ImportConfig) -> None:
        self.store = store
        self.options = options
        # Running totals of the current batch, readable after a failure.
        self.counters = ImportCounters()
        self._generated_uids: dict[str, int] = {}

    def _generate_uid(self, values: dict[str, Any]) -> str:
        base = generate_uid(values)
        occurrence = self._generated_uids.get(base, 0)
        self._generated_uids[base] = occurrence + 1
        if occurrence:
            return generate_uid(values, occurrence)
        return base

    def _delete(self, delete_ids: list[str]) -> int:
        deleted = 0
        for record_id in delete_ids:
            deleted += self.store.delete(RecordKind.EVENT, record_id)
            self.store.delete(RecordKind.REMINDER, record_id)
        return deleted

    def _insert(self, values: dict[str, Any], reminders: list[int]) -> str | None:
        logger.debug("Inserting event values: %s", values)
        event_id = self.store.insert(RecordKind.EVENT, values)
        if not event_id:
            logger.warning("Could not insert event %s", values.get(schema.UID))
            return None
        for minutes in reminders:
            reminder = {
                schema.REMINDER_EVENT_ID: event_id,
                schema.REMINDER_MINUTES: minutes,
                schema.REMINDER_METHOD: ReminderMethod.ALERT,
            }
            if not self.store.insert(RecordKind.REMINDER, reminder):
                logger.warning("Could not insert %s minute reminder for %s", minutes, event_id)
        return event_id

    def process_event(self, event: SourceEvent, calendar_id: str, mode: RunMode) -> EventReport:
        if event.is_recurrence_instance:
            logger.info("Ignoring edited instance of recurring event %s", event.uid)
            return EventReport(
                uid=event.uid,
                outcome=EventOutcome.RECURRENCE_INSTANCE_SKIPPED,
                calendar_id=calendar_id,
            )

        canonical = normalize_event(event)
        event_reminders = extract_reminders(event.alarms, canonical.start, canonical.effective_end)
        reminders = self.options.effective_reminders(event_reminders)
        values = map_event(
            canonical,
            calendar_id,
            reminders,
            supports_availability=self.store.supports_availability,
        )

        inserting = mode == RunMode.INSERT
        decision = resolve_duplicates(
            store=self.store,
            values=values,
            options=self.options,
            inserting=inserting,
        )
        if decision.skip:
            return EventReport(
                uid=event.uid,
                outcome=EventOutcome.DUPLICATE_SKIPPED,
                calendar_id=calendar_id,
                counters=ImportCounters(duplicates=1),
            )

        deleted = self._delete(decision.delete_ids)
        if not inserting:
            return EventReport(
                uid=event.uid,
                outcome=EventOutcome.DELETED,
                calendar_id=calendar_id,
                counters=ImportCounters(deleted=deleted),
            )

        if not values.get(schema.UID):
            values[schema.UID] = self._generate_uid(values)
        values[schema.CALENDAR_ID] = decision.insert_calendar_id
        event_id = self._insert(values, reminders)
        if event_id is None:
            return EventReport(
                uid=values[schema.UID],
                outcome=EventOutcome.INSERT_FAILED,
                calendar_id=decision.insert_calendar_id,
                counters=ImportCounters(deleted=deleted),
            )
        return EventReport(
            uid=values[schema.UID],
            outcome=EventOutcome.INSERTED,
            calendar_id=decision.insert_calendar_id,
            counters=ImportCounters(inserted=1, deleted=deleted),
        )

    def run(
        self,
        events: Iterable[SourceEvent],
        calendar: CalendarInfo,
        mode: RunMode = RunMode.INSERT,
        progress: Callable[[int], None] | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ) -> ImportResult:
        started_at = datetime.now(timezone.utc)
        logger.info(
            "%s for calendar %s, duplicate handling %s",
            "Insert" if mode == RunMode.INSERT else "Delete",
            calendar.calendar_id,
            self.options.duplicate_handling.value,
        )
        self.counters = ImportCounters()
        self._generated_uids = {}
        reports: list[EventReport] = []
        cancelled = False
        for index, event in enumerate(events, start=1):
            if should_cancel is not None and should_cancel():
                cancelled = True
                break
            try:
                report = self.process_event(event, calendar.calendar_id, mode)
            except Exception:
                logger.exception("Could not process event %s; continuing with the next one", event.uid)
                report = EventReport(uid=event.uid, outcome=EventOutcome.FAILED, calendar_id=calendar.calendar_id)
            reports.append(report)
            self.counters = self.counters.merge(report.counters)
            if progress is not None:
                progress(index)

        counters = self.counters
        calendar.num_entries += counters.inserted - counters.deleted
        duration_ms = int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)
        result = ImportResult(
            status="cancelled" if cancelled else "success",
            message="",
            mode=mode,
            calendar_id=calendar.calendar_id,
            duplicate_handling=self.options.duplicate_handling,
            counters=counters,
            reports=reports,
            duration_ms=duration_ms,
            run_at=started_at,
        )
        result.message = summary_message(result)
        return result


def summary_message(result: ImportResult) -> str:
    processed = result.processed
    noun = "entry" if processed == 1 else "entries"
    message = f"Processed {processed} {noun}."
    if result.mode == RunMode.INSERT:
        if result.duplicate_handling == DuplicateHandling.DONT_CHECK:
            message += " Did not check for duplicates."
        else:
            found = result.counters.duplicates
            message += f" Found {found} duplicate{'' if found == 1 else 's'}."
    if result.status == "cancelled":
        message += " Cancelled before the end of the document."
    return message
