from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Optional


DEFAULT_REMINDERS = [15]


def _ensure_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def serialize_datetime(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value).isoformat()
    return value.isoformat()


def date_to_datetime(value: datetime | date | None) -> datetime | None:
    """Anchor a value on the UTC time line; pure dates become UTC midnight."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def is_pure_date(value: Any) -> bool:
    return isinstance(value, date) and not isinstance(value, datetime)


def format_duration(value: timedelta) -> str:
    """Render a timedelta as an RFC 5545 duration, e.g. ``PT1H`` or ``P1D``."""
    sign = ""
    if value < timedelta(0):
        sign = "-"
        value = -value
    if value == timedelta(0):
        return "PT0S"
    days = value.days
    hours, remainder = divmod(value.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    text = f"{sign}P"
    if days:
        text += f"{days}D"
    if hours or minutes or seconds:
        text += "T"
        if hours:
            text += f"{hours}H"
        if minutes:
            text += f"{minutes}M"
        if seconds:
            text += f"{seconds}S"
    return text


def clean_reminders(values: Any) -> list[int]:
    cleaned: list[int] = []
    for item in values or []:
        try:
            minutes = int(item)
        except (TypeError, ValueError):
            continue
        if minutes >= 0 and minutes not in cleaned:
            cleaned.append(minutes)
    return cleaned


class EventStatus(str, Enum):
    TENTATIVE = "TENTATIVE"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: Any) -> Optional["EventStatus"]:
        text = str(value or "").strip().upper()
        for member in cls:
            if member.value == text:
                return member
        return None


class AccessClass(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"
    CONFIDENTIAL = "CONFIDENTIAL"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Any) -> Optional["AccessClass"]:
        text = str(value or "").strip().upper()
        if not text:
            return None
        for member in (cls.PUBLIC, cls.PRIVATE, cls.CONFIDENTIAL):
            if member.value == text:
                return member
        return cls.OTHER


class Transparency(str, Enum):
    OPAQUE = "OPAQUE"
    TRANSPARENT = "TRANSPARENT"

    @classmethod
    def parse(cls, value: Any) -> Optional["Transparency"]:
        text = str(value or "").strip().upper()
        for member in cls:
            if member.value == text:
                return member
        return None


class FreeBusyType(str, Enum):
    FREE = "FREE"
    BUSY = "BUSY"
    BUSY_UNAVAILABLE = "BUSY-UNAVAILABLE"
    BUSY_TENTATIVE = "BUSY-TENTATIVE"

    @classmethod
    def parse(cls, value: Any) -> Optional["FreeBusyType"]:
        text = str(value or "").strip().upper()
        for member in cls:
            if member.value == text:
                return member
        return None


class AlarmAction(str, Enum):
    AUDIO = "AUDIO"
    DISPLAY = "DISPLAY"
    EMAIL = "EMAIL"
    PROCEDURE = "PROCEDURE"

    @classmethod
    def parse(cls, value: Any) -> Optional["AlarmAction"]:
        text = str(value or "").strip().upper()
        for member in cls:
            if member.value == text:
                return member
        return None


class RecordStatus(str, Enum):
    TENTATIVE = "tentative"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"


class AccessLevel(str, Enum):
    DEFAULT = "default"
    CONFIDENTIAL = "confidential"
    PRIVATE = "private"
    PUBLIC = "public"


class Availability(str, Enum):
    BUSY = "busy"
    FREE = "free"
    TENTATIVE = "tentative"


class ReminderMethod(str, Enum):
    ALERT = "alert"


class RecordKind(str, Enum):
    EVENT = "event"
    REMINDER = "reminder"


class DuplicateHandling(str, Enum):
    DONT_CHECK = "dont_check"
    IGNORE = "ignore"
    REPLACE = "replace"
    REPLACE_ANY = "replace_any"

    @classmethod
    def parse(cls, value: Any, default: "DuplicateHandling") -> "DuplicateHandling":
        text = str(value or "").strip().lower()
        for member in cls:
            if text in {member.value, member.name.lower()}:
                return member
        return default


class RunMode(str, Enum):
    INSERT = "insert"
    DELETE = "delete"


class EventOutcome(str, Enum):
    INSERTED = "inserted"
    DELETED = "deleted"
    DUPLICATE_SKIPPED = "duplicate_skipped"
    INSERT_FAILED = "insert_failed"
    RECURRENCE_INSTANCE_SKIPPED = "recurrence_instance_skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class AlarmTrigger:
    absolute: datetime | None = None
    relative: timedelta | None = None
    related_end: bool = False


@dataclass(frozen=True)
class Alarm:
    action: AlarmAction | None
    trigger: AlarmTrigger | None


@dataclass(frozen=True)
class SourceEvent:
    start: date | datetime
    end: date | datetime | None = None
    duration: timedelta | None = None
    uid: str = ""
    summary: str | None = None
    description: str | None = None
    location: str | None = None
    organizer: str | None = None
    url: str | None = None
    rrule: str | None = None
    rdates: tuple[date | datetime, ...] = ()
    exrule: str | None = None
    exdates: tuple[date | datetime, ...] = ()
    status: EventStatus | None = None
    access_class: AccessClass | None = None
    transparency: Transparency | None = None
    free_busy: FreeBusyType | None = None
    alarms: tuple[Alarm, ...] = ()
    recurrence_id: date | datetime | None = None

    @property
    def is_recurrence_instance(self) -> bool:
        return self.recurrence_id is not None

    @property
    def is_recurring(self) -> bool:
        return bool(self.rrule) or bool(self.rdates)


@dataclass(frozen=True)
class CanonicalEvent:
    """A source event reduced to a shape the target store accepts.

    Exactly one of ``end`` and ``duration`` is set: ``duration`` for recurring
    events, ``end`` for everything else.
    """

    source: SourceEvent
    start: date | datetime
    all_day: bool
    end: date | datetime | None
    duration: timedelta | None
    transparency: Transparency | None

    @property
    def is_recurring(self) -> bool:
        return self.source.is_recurring

    @property
    def effective_end(self) -> date | datetime | None:
        if self.end is not None:
            return self.end
        if self.duration is not None:
            return self.start + self.duration
        return None


@dataclass(frozen=True)
class ExistingRecord:
    calendar_id: str
    record_id: str


@dataclass(frozen=True)
class EventMatch:
    """Predicate for a duplicate query: by UID, or by start time and title."""

    uid: str | None = None
    start: datetime | None = None
    title: str | None = None


@dataclass
class CalDAVConfig:
    base_url: str = ""
    username: str = ""
    password: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CalDAVConfig":
        data = data or {}
        return cls(
            base_url=str(data.get("base_url", "")).strip(),
            username=str(data.get("username", "")).strip(),
            password=str(data.get("password", "")).strip(),
        )


@dataclass
class ImportConfig:
    duplicate_handling: DuplicateHandling = DuplicateHandling.REPLACE
    keep_uids: bool = True
    global_uids: bool = False
    import_reminders: bool = True
    default_reminders: list[int] = field(default_factory=lambda: list(DEFAULT_REMINDERS))
    default_calendar_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ImportConfig":
        data = data or {}
        reminders = data.get("default_reminders", DEFAULT_REMINDERS)
        if not isinstance(reminders, list):
            reminders = DEFAULT_REMINDERS
        return cls(
            duplicate_handling=DuplicateHandling.parse(
                data.get("duplicate_handling"), DuplicateHandling.REPLACE
            ),
            keep_uids=bool(data.get("keep_uids", True)),
            global_uids=bool(data.get("global_uids", False)),
            import_reminders=bool(data.get("import_reminders", True)),
            default_reminders=clean_reminders(reminders),
            default_calendar_id=str(data.get("default_calendar_id", "")).strip(),
        )

    def effective_reminders(self, event_reminders: list[int]) -> list[int]:
        """The event's own reminders when importing them, else the defaults. Never both."""
        if event_reminders and self.import_reminders:
            return list(event_reminders)
        return list(self.default_reminders)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["duplicate_handling"] = self.duplicate_handling.value
        return payload


@dataclass
class AppConfig:
    caldav: CalDAVConfig = field(default_factory=CalDAVConfig)
    importer: ImportConfig = field(default_factory=ImportConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            caldav=CalDAVConfig.from_dict(data.get("caldav")),
            importer=ImportConfig.from_dict(data.get("importer")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "caldav": asdict(self.caldav),
            "importer": self.importer.to_dict(),
        }


@dataclass
class CalendarInfo:
    calendar_id: str
    name: str
    url: str
    num_entries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ImportCounters:
    inserted: int = 0
    deleted: int = 0
    duplicates: int = 0

    def merge(self, other: "ImportCounters") -> "ImportCounters":
        return ImportCounters(
            inserted=self.inserted + other.inserted,
            deleted=self.deleted + other.deleted,
            duplicates=self.duplicates + other.duplicates,
        )

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class EventReport:
    uid: str
    outcome: EventOutcome
    calendar_id: str
    counters: ImportCounters = field(default_factory=ImportCounters)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "outcome": self.outcome.value,
            "calendar_id": self.calendar_id,
            **self.counters.to_dict(),
        }


@dataclass
class ImportResult:
    status: str
    message: str
    mode: RunMode
    calendar_id: str
    duplicate_handling: DuplicateHandling
    counters: ImportCounters = field(default_factory=ImportCounters)
    reports: list[EventReport] = field(default_factory=list)
    duration_ms: int = 0
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def processed(self) -> int:
        return self.counters.inserted if self.mode == RunMode.INSERT else self.counters.deleted

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "mode": self.mode.value,
            "calendar_id": self.calendar_id,
            "duplicate_handling": self.duplicate_handling.value,
            "counters": self.counters.to_dict(),
            "events": [report.to_dict() for report in self.reports],
            "duration_ms": self.duration_ms,
            "run_at": serialize_datetime(self.run_at),
        }


def default_app_config() -> AppConfig:
    return AppConfig()
