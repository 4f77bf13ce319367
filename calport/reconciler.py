from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from calport import schema
from calport.models import DuplicateHandling, EventMatch, ExistingRecord, ImportConfig
from calport.store import CalendarStore


logger = logging.getLogger(__name__)


@dataclass
class DuplicateDecision:
    skip: bool
    insert_calendar_id: str
    delete_ids: list[str] = field(default_factory=list)


def build_match(
    values: dict[str, Any],
    options: ImportConfig,
) -> tuple[str | None, EventMatch] | None:
    """Calendar filter and predicate for finding existing copies of a record.

    With UIDs kept, the UID alone identifies a copy, globally or within the
    record's calendar. Otherwise start time and title within the calendar are
    the best available guess, which can report false duplicates. ``None``
    means the record lacks the fields needed to look anything up.
    """
    uid = values.get(schema.UID)
    if options.keep_uids and uid:
        calendar_filter = None if options.global_uids else values.get(schema.CALENDAR_ID)
        return calendar_filter, EventMatch(uid=uid)

    calendar_id = values.get(schema.CALENDAR_ID)
    start = values.get(schema.DTSTART)
    if not calendar_id or start is None:
        return None
    return calendar_id, EventMatch(start=start, title=values.get(schema.TITLE))


def find_matches(
    store: CalendarStore,
    values: dict[str, Any],
    options: ImportConfig,
) -> list[ExistingRecord]:
    query = build_match(values, options)
    if query is None:
        return []
    calendar_filter, match = query
    return list(store.query(calendar_filter, match))


def resolve_duplicates(
    *,
    store: CalendarStore,
    values: dict[str, Any],
    options: ImportConfig,
    inserting: bool = True,
) -> DuplicateDecision:
    """Decide which existing records to remove and where the new one goes."""
    policy = options.duplicate_handling
    destination = str(values.get(schema.CALENDAR_ID, ""))
    decision = DuplicateDecision(skip=False, insert_calendar_id=destination)

    if inserting and policy == DuplicateHandling.DONT_CHECK:
        return decision

    matches = find_matches(store, values, options)
    if policy == DuplicateHandling.REPLACE:
        candidates = [row for row in matches if row.calendar_id == destination]
        for row in matches:
            if row.calendar_id != destination:
                logger.debug("Leaving duplicate in calendar %s untouched", row.calendar_id)
    else:
        candidates = matches

    if inserting and not candidates:
        return decision

    if inserting and policy == DuplicateHandling.IGNORE:
        logger.debug("Avoiding inserting a duplicate event")
        decision.skip = True
        return decision

    for row in candidates:
        decision.delete_ids.append(row.record_id)
        if inserting and policy == DuplicateHandling.REPLACE_ANY and row.calendar_id != destination:
            logger.debug(
                "Changing insert calendar from %s to %s",
                decision.insert_calendar_id,
                row.calendar_id,
            )
            decision.insert_calendar_id = row.calendar_id
    return decision
