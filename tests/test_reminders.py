import unittest
from datetime import date, datetime, timedelta, timezone

from calport.models import Alarm, AlarmAction, AlarmTrigger
from calport.reminders import extract_reminders


START = datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)
END = datetime(2024, 3, 10, 10, 0, tzinfo=timezone.utc)


def _relative(minutes: int, action: AlarmAction = AlarmAction.DISPLAY, related_end: bool = False) -> Alarm:
    return Alarm(
        action=action,
        trigger=AlarmTrigger(relative=timedelta(minutes=minutes), related_end=related_end),
    )


class ReminderExtractionTests(unittest.TestCase):
    def test_relative_trigger_before_start(self) -> None:
        self.assertEqual(extract_reminders([_relative(-15)], START, END), [15])

    def test_relative_trigger_related_to_end(self) -> None:
        alarm = _relative(-30, related_end=True)
        self.assertEqual(extract_reminders([alarm], START, END), [30])

    def test_related_end_without_end_is_ignored(self) -> None:
        alarm = _relative(-30, related_end=True)
        self.assertEqual(extract_reminders([alarm], START, None), [])

    def test_absolute_trigger(self) -> None:
        alarm = Alarm(
            action=AlarmAction.AUDIO,
            trigger=AlarmTrigger(absolute=datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)),
        )
        self.assertEqual(extract_reminders([alarm], START, END), [60])

    def test_absolute_trigger_after_start_is_dropped(self) -> None:
        alarm = Alarm(
            action=AlarmAction.DISPLAY,
            trigger=AlarmTrigger(absolute=datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)),
        )
        self.assertEqual(extract_reminders([alarm], START, END), [])

    def test_non_negative_relative_trigger_is_ignored(self) -> None:
        self.assertEqual(extract_reminders([_relative(0), _relative(10)], START, END), [])

    def test_unsupported_actions_are_ignored(self) -> None:
        alarms = [
            _relative(-5, action=AlarmAction.EMAIL),
            _relative(-6, action=AlarmAction.PROCEDURE),
            Alarm(action=None, trigger=AlarmTrigger(relative=timedelta(minutes=-7))),
            _relative(-8, action=AlarmAction.AUDIO),
        ]
        self.assertEqual(extract_reminders(alarms, START, END), [8])

    def test_missing_trigger_is_ignored(self) -> None:
        alarm = Alarm(action=AlarmAction.DISPLAY, trigger=None)
        self.assertEqual(extract_reminders([alarm], START, END), [])

    def test_duplicates_removed_in_alarm_order(self) -> None:
        alarms = [_relative(-30), _relative(-10), _relative(-30), _relative(-60, related_end=True)]
        self.assertEqual(extract_reminders(alarms, START, END), [30, 10, 60])

    def test_all_day_start_anchors_at_utc_midnight(self) -> None:
        alarm = Alarm(
            action=AlarmAction.DISPLAY,
            trigger=AlarmTrigger(absolute=datetime(2024, 3, 9, 23, 0, tzinfo=timezone.utc)),
        )
        self.assertEqual(extract_reminders([alarm], date(2024, 3, 10), date(2024, 3, 11)), [60])

    def test_week_long_lead_time(self) -> None:
        alarm = Alarm(action=AlarmAction.DISPLAY, trigger=AlarmTrigger(relative=-timedelta(weeks=1)))
        self.assertEqual(extract_reminders([alarm], START, END), [7 * 24 * 60])


if __name__ == "__main__":
    unittest.main()
