"""HTTP API for tasks, provider sync, live changes and calendar queries."""

import asyncio
import json
import logging
from datetime import date, timedelta
from typing import Any, AsyncIterator, Awaitable, Callable
from zoneinfo import ZoneInfo

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from .adapters.ics_calendar import IcsCalendarAdapter
from .broadcast import ChangeBroadcaster
from .core.errors import (
    DuplicateTitle,
    MalformedRecord,
    NotFound,
    PersistenceFailure,
    ProviderUnavailable,
    TaskExists,
)
from .core.tasks import Task, TaskRecord
from .workflows import OperationResult, TaskService, UnknownProvider, day_availability

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0


class TaskCreate(BaseModel):
    title: str
    priority: str = "medium"
    category: str = "Other"
    deadline: date | None = None


class TaskUpdate(BaseModel):
    title: str | None = None
    priority: str | None = None
    category: str | None = None
    deadline: date | None = None
    completed: bool | None = None


class RestoreRequest(BaseModel):
    task: dict[str, Any] = Field(default_factory=dict)


async def change_events(
    broadcaster: ChangeBroadcaster,
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """
    Server-Sent Events frames for every broadcast message.

    The listener is registered for exactly as long as the stream runs. A
    comment line goes out whenever `keepalive` seconds pass without a message.
    """
    with broadcaster.subscribe(loop=asyncio.get_running_loop()) as subscription:
        while not await is_disconnected():
            message = await subscription.next(keepalive)
            if message is None:
                yield ": keep-alive\n\n"
            else:
                yield f"data: {json.dumps(message)}\n\n"


def _operation_payload(service: TaskService, result: OperationResult) -> dict:
    return {
        "success": True,
        "task": result.task.to_dict(),
        "providerErrors": result.provider_errors,
        "tasks": [t.to_dict() for t in service.list_tasks()],
    }


def create_app(service: TaskService, calendar: IcsCalendarAdapter | None = None) -> FastAPI:
    """Build the API around an already wired TaskService."""
    app = FastAPI(title="pmassist API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    config = service.config
    tz = ZoneInfo(config.timezone)

    @app.exception_handler(NotFound)
    async def not_found(request: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse({"success": False, "error": str(exc)}, status_code=404)

    @app.exception_handler(DuplicateTitle)
    async def duplicate_title(request: Request, exc: DuplicateTitle) -> JSONResponse:
        return JSONResponse({"success": False, "error": str(exc)}, status_code=409)

    @app.exception_handler(ProviderUnavailable)
    async def provider_unavailable(request: Request, exc: ProviderUnavailable) -> JSONResponse:
        return JSONResponse(
            {"success": False, "error": f"Failed to reach {exc.provider}", "details": str(exc)},
            status_code=502,
        )

    @app.exception_handler(PersistenceFailure)
    async def persistence_failure(request: Request, exc: PersistenceFailure) -> JSONResponse:
        logger.error(f"Change accepted but not saved: {exc}")
        return JSONResponse(
            {"success": False, "error": "Change applied but could not be saved", "details": str(exc)},
            status_code=500,
        )

    @app.exception_handler(TaskExists)
    async def task_exists(request: Request, exc: TaskExists) -> JSONResponse:
        return JSONResponse({"success": False, "error": str(exc)}, status_code=409)

    @app.exception_handler(UnknownProvider)
    async def unknown_provider(request: Request, exc: UnknownProvider) -> JSONResponse:
        return JSONResponse({"success": False, "error": str(exc)}, status_code=404)

    # ---- tasks ----

    @app.get("/api/tasks")
    def list_tasks() -> dict:
        return {"tasks": [t.to_dict() for t in service.list_tasks()]}

    @app.post("/api/tasks", status_code=201)
    def create_task(body: TaskCreate) -> dict:
        if not body.title.strip():
            raise HTTPException(status_code=422, detail="Task title must not be empty")
        task = service.add_task(body.title, body.priority, body.category, body.deadline)
        return {"success": True, "task": task.to_dict()}

    @app.put("/api/tasks/{task_id}")
    def update_task(task_id: str, body: TaskUpdate) -> dict:
        changes = TaskRecord.from_dict(body.model_dump(exclude_none=True))
        result = service.update_task(task_id, changes)
        return _operation_payload(service, result)

    @app.delete("/api/tasks/{task_id}")
    def delete_task(task_id: str) -> dict:
        result = service.delete_task(task_id)
        return _operation_payload(service, result)

    @app.post("/api/tasks/restore")
    def restore_task(body: RestoreRequest) -> dict:
        try:
            task = Task.from_dict(body.task)
        except (MalformedRecord, ValueError) as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        result = service.restore_task(task)
        return _operation_payload(service, result)

    # ---- provider sync ----

    @app.post("/api/sync/{provider}")
    def sync_provider(provider: str) -> dict:
        outcome = service.sync_provider(provider)
        return {
            "success": True,
            "tasks": [t.to_dict() for t in outcome.tasks],
            "syncDetails": outcome.summary(),
        }

    @app.post("/api/sync/{provider}/live")
    def start_live_sync(provider: str) -> dict:
        poller = service.start_live_sync(provider)
        return {"success": True, "interval": poller.interval}

    @app.get("/api/sync/{provider}/status")
    def sync_status(provider: str) -> dict:
        status = service.sync_status(provider)
        if status is None:
            return {"running": False, "lastSync": None, "inProgress": False, "errors": []}
        return status.to_dict()

    @app.get("/api/events")
    async def change_stream(request: Request) -> StreamingResponse:
        return StreamingResponse(
            change_events(service.broadcaster, request.is_disconnected),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    # ---- calendar ----

    def _calendar() -> IcsCalendarAdapter:
        if calendar is None:
            raise HTTPException(status_code=404, detail="No calendar configured")
        return calendar

    @app.get("/api/calendar/status")
    def calendar_status() -> dict:
        return {"loaded": calendar is not None and calendar.is_loaded}

    @app.post("/api/calendar/reload")
    def calendar_reload() -> dict:
        if not _calendar().load():
            raise HTTPException(status_code=400, detail="Failed to load calendar")
        return {"success": True}

    @app.get("/api/calendar/today")
    def calendar_today() -> dict:
        if calendar is None or not calendar.is_loaded:
            return {"events": []}
        return {"events": [e.to_dict() for e in calendar.get_events_for_date(date.today())]}

    @app.get("/api/calendar/events")
    def calendar_events(start: date | None = None, end: date | None = None) -> dict:
        if calendar is None or not calendar.is_loaded:
            return {"events": []}
        if start and end:
            events = calendar.get_events_for_range(start, end)
        elif start:
            events = calendar.get_events_for_date(start)
        else:
            today = date.today()
            events = calendar.get_events_for_range(today, today + timedelta(days=7))
        return {"events": [e.to_dict() for e in events]}

    @app.get("/api/calendar/free-slots")
    def calendar_free_slots(
        day: date | None = Query(None, alias="date"),
        min_minutes: int = 0,
    ) -> dict:
        _, blocks = day_availability(
            _calendar(),
            day or date.today(),
            config.work_hours,
            tz=tz,
            min_minutes=min_minutes,
        )
        return {"freeSlots": [b.to_dict() for b in blocks]}

    return app


def run_server(service: TaskService, calendar: IcsCalendarAdapter | None = None) -> None:
    """Serve the API with hypercorn until interrupted."""
    from hypercorn.asyncio import serve
    from hypercorn.config import Config as HypercornConfig

    app = create_app(service, calendar)
    hypercorn_config = HypercornConfig()
    hypercorn_config.bind = [f"{service.config.http_host}:{service.config.http_port}"]
    logger.info(f"Serving pmassist API on {hypercorn_config.bind[0]}")
    try:
        asyncio.run(serve(app, hypercorn_config))
    finally:
        service.stop_live_sync()
