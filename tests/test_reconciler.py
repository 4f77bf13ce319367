import unittest
from datetime import datetime, timezone

from calport import schema
from calport.models import DuplicateHandling, EventMatch, ExistingRecord, ImportConfig
from calport.reconciler import build_match, resolve_duplicates


START = datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)


class _FakeStore:
    supports_availability = True

    def __init__(self, rows: list[ExistingRecord]) -> None:
        self.rows = rows
        self.queries: list[tuple[str | None, EventMatch]] = []

    def query(self, calendar_id: str | None, match: EventMatch) -> list[ExistingRecord]:
        self.queries.append((calendar_id, match))
        return [row for row in self.rows if calendar_id is None or row.calendar_id == calendar_id]


def _values(**extra: object) -> dict:
    values = {schema.CALENDAR_ID: "cal-a", schema.DTSTART: START, schema.TITLE: "Standup"}
    values.update(extra)
    return values


class BuildMatchTests(unittest.TestCase):
    def test_uid_match_scoped_to_calendar(self) -> None:
        calendar_id, match = build_match(_values(**{schema.UID: "u1"}), ImportConfig(keep_uids=True))
        self.assertEqual(calendar_id, "cal-a")
        self.assertEqual(match, EventMatch(uid="u1"))

    def test_uid_match_global(self) -> None:
        options = ImportConfig(keep_uids=True, global_uids=True)
        calendar_id, match = build_match(_values(**{schema.UID: "u1"}), options)
        self.assertIsNone(calendar_id)
        self.assertEqual(match.uid, "u1")

    def test_start_and_title_match_without_uid_matching(self) -> None:
        calendar_id, match = build_match(_values(**{schema.UID: "u1"}), ImportConfig(keep_uids=False))
        self.assertEqual(calendar_id, "cal-a")
        self.assertEqual(match, EventMatch(start=START, title="Standup"))

    def test_missing_title_matches_untitled(self) -> None:
        values = _values()
        del values[schema.TITLE]
        _, match = build_match(values, ImportConfig())
        self.assertIsNone(match.title)
        self.assertEqual(match.start, START)

    def test_missing_start_skips_query(self) -> None:
        values = _values()
        del values[schema.DTSTART]
        self.assertIsNone(build_match(values, ImportConfig()))


class ResolveDuplicatesTests(unittest.TestCase):
    rows = [ExistingRecord("cal-a", "a-1"), ExistingRecord("cal-b", "b-1")]

    def _resolve(self, policy: DuplicateHandling, rows=None, inserting: bool = True):
        store = _FakeStore(self.rows if rows is None else rows)
        options = ImportConfig(duplicate_handling=policy, keep_uids=True, global_uids=True)
        decision = resolve_duplicates(
            store=store,
            values=_values(**{schema.UID: "u1"}),
            options=options,
            inserting=inserting,
        )
        return decision, store

    def test_dont_check_never_queries(self) -> None:
        decision, store = self._resolve(DuplicateHandling.DONT_CHECK)
        self.assertFalse(decision.skip)
        self.assertEqual(decision.delete_ids, [])
        self.assertEqual(decision.insert_calendar_id, "cal-a")
        self.assertEqual(store.queries, [])

    def test_ignore_skips_when_any_match(self) -> None:
        decision, _ = self._resolve(DuplicateHandling.IGNORE, rows=[ExistingRecord("cal-b", "b-1")])
        self.assertTrue(decision.skip)
        self.assertEqual(decision.delete_ids, [])

    def test_ignore_without_match_inserts(self) -> None:
        decision, _ = self._resolve(DuplicateHandling.IGNORE, rows=[])
        self.assertFalse(decision.skip)

    def test_replace_only_deletes_in_destination(self) -> None:
        decision, _ = self._resolve(DuplicateHandling.REPLACE)
        self.assertFalse(decision.skip)
        self.assertEqual(decision.delete_ids, ["a-1"])
        self.assertEqual(decision.insert_calendar_id, "cal-a")

    def test_replace_leaves_other_calendars_alone(self) -> None:
        decision, _ = self._resolve(DuplicateHandling.REPLACE, rows=[ExistingRecord("cal-b", "b-1")])
        self.assertEqual(decision.delete_ids, [])
        self.assertEqual(decision.insert_calendar_id, "cal-a")

    def test_replace_any_deletes_everywhere_and_redirects(self) -> None:
        decision, _ = self._resolve(DuplicateHandling.REPLACE_ANY)
        self.assertEqual(decision.delete_ids, ["a-1", "b-1"])
        self.assertEqual(decision.insert_calendar_id, "cal-b")

    def test_replace_any_last_foreign_match_wins(self) -> None:
        rows = [ExistingRecord("cal-b", "b-1"), ExistingRecord("cal-c", "c-1"), ExistingRecord("cal-a", "a-1")]
        decision, _ = self._resolve(DuplicateHandling.REPLACE_ANY, rows=rows)
        self.assertEqual(decision.insert_calendar_id, "cal-c")

    def test_delete_mode_removes_all_matches(self) -> None:
        for policy in (DuplicateHandling.DONT_CHECK, DuplicateHandling.IGNORE, DuplicateHandling.REPLACE_ANY):
            decision, _ = self._resolve(policy, inserting=False)
            self.assertFalse(decision.skip)
            self.assertEqual(decision.delete_ids, ["a-1", "b-1"])
            self.assertEqual(decision.insert_calendar_id, "cal-a")

    def test_delete_mode_replace_keeps_calendar_filter(self) -> None:
        decision, _ = self._resolve(DuplicateHandling.REPLACE, inserting=False)
        self.assertEqual(decision.delete_ids, ["a-1"])

    def test_record_without_lookup_fields_is_not_a_duplicate(self) -> None:
        store = _FakeStore(self.rows)
        decision = resolve_duplicates(
            store=store,
            values={schema.CALENDAR_ID: "cal-a"},
            options=ImportConfig(duplicate_handling=DuplicateHandling.IGNORE),
        )
        self.assertFalse(decision.skip)
        self.assertEqual(store.queries, [])


if __name__ == "__main__":
    unittest.main()
