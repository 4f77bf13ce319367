from __future__ import annotations

# Event record fields.
CALENDAR_ID = "calendar_id"
TITLE = "title"
DESCRIPTION = "description"
ORGANIZER = "organizer"
GUESTS_CAN_MODIFY = "guests_can_modify"
LOCATION = "event_location"
STATUS = "status"
DURATION = "duration"
ALL_DAY = "all_day"
DTSTART = "dtstart"
EVENT_TIMEZONE = "event_timezone"
DTEND = "dtend"
EVENT_END_TIMEZONE = "event_end_timezone"
ACCESS_LEVEL = "access_level"
AVAILABILITY = "availability"
RRULE = "rrule"
RDATE = "rdate"
EXRULE = "exrule"
EXDATE = "exdate"
CUSTOM_APP_URI = "custom_app_uri"
UID = "uid_2445"
HAS_ALARM = "has_alarm"

EVENT_FIELDS = (
    CALENDAR_ID,
    TITLE,
    DESCRIPTION,
    ORGANIZER,
    GUESTS_CAN_MODIFY,
    LOCATION,
    STATUS,
    DURATION,
    ALL_DAY,
    DTSTART,
    EVENT_TIMEZONE,
    DTEND,
    EVENT_END_TIMEZONE,
    ACCESS_LEVEL,
    AVAILABILITY,
    RRULE,
    RDATE,
    EXRULE,
    EXDATE,
    CUSTOM_APP_URI,
    UID,
    HAS_ALARM,
)

# Reminder record fields.
REMINDER_EVENT_ID = "event_id"
REMINDER_MINUTES = "minutes"
REMINDER_METHOD = "method"
