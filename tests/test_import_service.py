from unittest import TestCase, mock

from calport import schema
from calport.ics_source import IcsDocument
from calport.import_service import ImportService
from calport.models import AppConfig, CalendarInfo, EventMatch, ExistingRecord, RecordKind, RunMode


SAMPLE_ICS = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Example//Tests//EN
BEGIN:VEVENT
UID:evt-1
DTSTART:20240310T090000Z
DTEND:20240310T100000Z
SUMMARY:Standup
END:VEVENT
BEGIN:VEVENT
UID:evt-1
RECURRENCE-ID:20240311T090000Z
DTSTART:20240311T100000Z
DTEND:20240311T110000Z
SUMMARY:Standup (moved)
END:VEVENT
END:VCALENDAR
"""


class _Store:
    supports_availability = True

    def __init__(self) -> None:
        self.inserted: list[dict] = []

    def get_calendar(self, calendar_id: str) -> CalendarInfo:
        return CalendarInfo(calendar_id=calendar_id, name="Work", url=calendar_id, num_entries=4)

    def query(self, calendar_id: str | None, match: EventMatch) -> list[ExistingRecord]:
        return []

    def insert(self, kind: RecordKind, values: dict) -> str | None:
        if kind == RecordKind.EVENT:
            self.inserted.append(values)
            return f"evt-{len(self.inserted)}"
        return "reminder"

    def delete(self, kind: RecordKind, record_id: str) -> int:
        return 0


def _config(**importer: object) -> AppConfig:
    return AppConfig.from_dict(
        {
            "caldav": {"base_url": "https://dav.example.com", "username": "tester", "password": "secret"},
            "importer": {"default_calendar_id": "cal-a", **importer},
        }
    )


class ImportServiceTests(TestCase):
    def setUp(self) -> None:
        self.config_manager = mock.Mock()
        self.state_store = mock.Mock()
        self.state_store.start_import_run.return_value = 7

    def test_runs_import_and_records_history(self) -> None:
        self.config_manager.load.return_value = _config()
        store = _Store()
        with mock.patch("calport.import_service.CalDAVStore", return_value=store):
            service = ImportService(self.config_manager, self.state_store)
            result = service.run_import(IcsDocument.from_ical(SAMPLE_ICS), trigger="api")

        self.assertEqual(result.status, "success")
        self.assertEqual(result.calendar_id, "cal-a")
        self.assertEqual(result.counters.inserted, 1)
        self.assertEqual(store.inserted[0][schema.CALENDAR_ID], "cal-a")
        self.state_store.start_import_run.assert_called_once_with(trigger="api", mode="insert", calendar_id="cal-a")
        finish_kwargs = self.state_store.finish_import_run.call_args.kwargs
        self.assertEqual(finish_kwargs["run_id"], 7)
        self.assertEqual(finish_kwargs["inserted"], 1)
        actions = [call.kwargs["action"] for call in self.state_store.record_audit_event.call_args_list]
        self.assertEqual(actions, ["insert_event", "skip_recurrence_instance"])

    def test_skipped_without_caldav_config(self) -> None:
        self.config_manager.load.return_value = AppConfig()
        with mock.patch("calport.import_service.CalDAVStore") as store_cls:
            service = ImportService(self.config_manager, self.state_store)
            result = service.run_import(IcsDocument.from_ical(SAMPLE_ICS), calendar_id="cal-a")
        self.assertEqual(result.status, "skipped")
        store_cls.assert_not_called()
        self.assertEqual(self.state_store.finish_import_run.call_args.kwargs["status"], "skipped")

    def test_store_error_is_reported(self) -> None:
        self.config_manager.load.return_value = _config()
        store = mock.Mock()
        store.get_calendar.side_effect = RuntimeError("Calendar not found: cal-x")
        with mock.patch("calport.import_service.CalDAVStore", return_value=store):
            service = ImportService(self.config_manager, self.state_store)
            result = service.run_import(
                IcsDocument.from_ical(SAMPLE_ICS),
                calendar_id="cal-x",
                mode=RunMode.DELETE,
            )
        self.assertEqual(result.status, "error")
        self.assertIn("Calendar not found", result.message)
        self.assertEqual(self.state_store.finish_import_run.call_args.kwargs["status"], "error")
        self.assertEqual(self.state_store.record_audit_event.call_args.kwargs["action"], "run_error")

    def test_aborted_run_records_work_already_done(self) -> None:
        self.config_manager.load.return_value = _config(default_reminders=[])
        store = _Store()
        should_cancel = mock.Mock(side_effect=[False, RuntimeError("cancel hook failed")])
        with mock.patch("calport.import_service.CalDAVStore", return_value=store):
            service = ImportService(self.config_manager, self.state_store)
            result = service.run_import(IcsDocument.from_ical(SAMPLE_ICS), should_cancel=should_cancel)

        self.assertEqual(result.status, "error")
        self.assertEqual(result.counters.inserted, 1)
        self.assertEqual(len(store.inserted), 1)
        finish_kwargs = self.state_store.finish_import_run.call_args.kwargs
        self.assertEqual(finish_kwargs["status"], "error")
        self.assertEqual(finish_kwargs["inserted"], 1)

    def test_failed_event_is_audited(self) -> None:
        self.config_manager.load.return_value = _config()
        store = _Store()
        store.query = mock.Mock(side_effect=ConnectionError("connection reset"))
        with mock.patch("calport.import_service.CalDAVStore", return_value=store):
            service = ImportService(self.config_manager, self.state_store)
            result = service.run_import(IcsDocument.from_ical(SAMPLE_ICS))

        self.assertEqual(result.status, "success")
        actions = [call.kwargs["action"] for call in self.state_store.record_audit_event.call_args_list]
        self.assertEqual(actions, ["event_failed", "skip_recurrence_instance"])


if __name__ == "__main__":
    import unittest

    unittest.main()
