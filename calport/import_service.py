from __future__ import annotations

import logging
import traceback
from datetime import datetime, timezone
from typing import Callable

from calport.caldav_store import CalDAVStore
from calport.config_manager import ConfigManager
from calport.import_engine import ImportEngine
from calport.ics_source import IcsDocument
from calport.models import EventOutcome, ImportCounters, ImportResult, RunMode
from calport.state_store import StateStore


logger = logging.getLogger(__name__)


class ImportService:
    """Runs one import against the configured CalDAV server and records it."""

    def __init__(self, config_manager: ConfigManager, state_store: StateStore) -> None:
        self.config_manager = config_manager
        self.state_store = state_store

    def _record_reports(self, run_id: int, result: ImportResult, trigger: str) -> None:
        for report in result.reports:
            if report.outcome == EventOutcome.RECURRENCE_INSTANCE_SKIPPED:
                action = "skip_recurrence_instance"
            elif report.outcome == EventOutcome.DUPLICATE_SKIPPED:
                action = "skip_duplicate"
            elif report.outcome == EventOutcome.INSERT_FAILED:
                action = "insert_failed"
            elif report.outcome == EventOutcome.FAILED:
                action = "event_failed"
            elif report.outcome == EventOutcome.DELETED:
                action = "delete_event"
            else:
                action = "insert_event"
            self.state_store.record_audit_event(
                run_id=run_id,
                calendar_id=report.calendar_id,
                uid=report.uid or "unknown",
                action=action,
                details={"trigger": trigger, **report.counters.to_dict()},
            )

    def run_import(
        self,
        document: IcsDocument,
        *,
        calendar_id: str = "",
        mode: RunMode = RunMode.INSERT,
        trigger: str = "manual",
        should_cancel: Callable[[], bool] | None = None,
    ) -> ImportResult:
        started_at = datetime.now(timezone.utc)
        config = self.config_manager.load()
        options = config.importer
        target_id = calendar_id or options.default_calendar_id
        run_id = self.state_store.start_import_run(trigger=trigger, mode=mode.value, calendar_id=target_id)

        if not config.caldav.base_url or not config.caldav.username or not target_id:
            duration_ms = int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)
            message = "CalDAV config or target calendar missing. Import skipped."
            self.state_store.finish_import_run(
                run_id=run_id,
                status="skipped",
                message=message,
                duration_ms=duration_ms,
                inserted=0,
                deleted=0,
                duplicates=0,
            )
            return ImportResult(
                status="skipped",
                message=message,
                mode=mode,
                calendar_id=target_id,
                duplicate_handling=options.duplicate_handling,
                duration_ms=duration_ms,
            )

        engine: ImportEngine | None = None
        try:
            store = CalDAVStore(config.caldav)
            calendar = store.get_calendar(target_id)
            engine = ImportEngine(store, options)
            result = engine.run(document, calendar, mode=mode, should_cancel=should_cancel)
        except Exception as exc:
            duration_ms = int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)
            error_message = f"{type(exc).__name__}: {exc}"
            counters = engine.counters if engine is not None else ImportCounters()
            logger.exception("Import run %s failed", run_id)
            self.state_store.finish_import_run(
                run_id=run_id,
                status="error",
                message=error_message,
                duration_ms=duration_ms,
                inserted=counters.inserted,
                deleted=counters.deleted,
                duplicates=counters.duplicates,
            )
            self.state_store.record_audit_event(
                run_id=run_id,
                calendar_id=target_id,
                uid="import",
                action="run_error",
                details={
                    "trigger": trigger,
                    "error": error_message,
                    "traceback": traceback.format_exc(limit=5),
                },
            )
            return ImportResult(
                status="error",
                message=error_message,
                mode=mode,
                calendar_id=target_id,
                duplicate_handling=options.duplicate_handling,
                counters=counters,
                duration_ms=duration_ms,
            )

        self._record_reports(run_id, result, trigger)
        self.state_store.finish_import_run(
            run_id=run_id,
            status=result.status,
            message=result.message,
            duration_ms=result.duration_ms,
            inserted=result.counters.inserted,
            deleted=result.counters.deleted,
            duplicates=result.counters.duplicates,
            calendar_id=result.calendar_id,
        )
        logger.info("Import run %s: %s", run_id, result.message)
        return result
