from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from calport.caldav_store import CalDAVStore
from calport.config_manager import ConfigManager
from calport.ics_source import IcsDocument, IcsParseError
from calport.import_service import ImportService
from calport.models import RunMode
from calport.state_store import StateStore


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class ImportRequest(BaseModel):
    ics: str = Field(min_length=1)
    calendar_id: str = ""
    mode: RunMode = RunMode.INSERT


class AppContext:
    def __init__(self, config_manager: ConfigManager, state_store: StateStore) -> None:
        self.config_manager = config_manager
        self.state_store = state_store
        self.import_service = ImportService(self.config_manager, self.state_store)


def create_app() -> FastAPI:
    state_path = os.getenv("CALPORT_STATE_PATH", "data/state.db")
    context = AppContext(ConfigManager.from_env(), StateStore(state_path))

    app = FastAPI(title="calport Admin", version="0.1.0")
    app.state.context = context

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.masked()

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        config_manager = app.state.context.config_manager
        updated = config_manager.update(request.payload)
        return {"message": "config updated", "config": config_manager.masked(updated)}

    @app.get("/api/calendars")
    def list_calendars() -> dict[str, Any]:
        config = app.state.context.config_manager.load()
        try:
            calendars = CalDAVStore(config.caldav).list_calendars(count_entries=True)
        except Exception as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        output = []
        for cal in calendars:
            item = cal.to_dict()
            item["is_default"] = cal.calendar_id.rstrip("/") == config.importer.default_calendar_id.rstrip("/")
            output.append(item)
        return {"calendars": output}

    @app.post("/api/import")
    def run_import(request: ImportRequest) -> dict[str, Any]:
        try:
            document = IcsDocument.from_ical(request.ics)
        except IcsParseError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        result = app.state.context.import_service.run_import(
            document,
            calendar_id=request.calendar_id.strip(),
            mode=request.mode,
            trigger="api",
        )
        return {"message": result.message, "result": result.to_dict()}

    @app.get("/api/runs")
    def recent_runs(limit: int = 20) -> dict[str, Any]:
        return {"runs": app.state.context.state_store.recent_import_runs(limit=limit)}

    @app.get("/api/audit")
    def recent_audit(limit: int = 100, run_id: int | None = None) -> dict[str, Any]:
        return {"events": app.state.context.state_store.recent_audit_events(limit=limit, run_id=run_id)}

    return app


app = create_app()
