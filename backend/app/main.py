"""Site audit API: start and stop runs, stream progress over SSE, manage baselines."""

import asyncio
import json
import logging
import os

import httpx
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from auditor.config import AuditConfig
from auditor.core.baselines import BaselineService
from auditor.core.figma import FigmaClient
from auditor.core.runner import RunOrchestrator
from auditor.errors import BaselineError, BaselineNotFound, InvalidRunState, RunNotFound
from auditor.models.types import BaselineType, Site
from auditor.storage.files import FileStore
from auditor.storage.store import MemoryStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Site Audit API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("AUDIT_CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

config = AuditConfig.from_env()
store = MemoryStore()
files = FileStore(config.storage_dir)
# Per-run event queues for SSE streaming
_event_queues: dict[str, list[asyncio.Queue]] = {}

TERMINAL_EVENTS = ("run_completed", "run_failed", "run_stopped")


def _broadcast_event(event_type: str, data: dict):
    """Push an SSE event to all connected clients for the event's run."""
    event = {"type": event_type, **data}
    for q in _event_queues.get(data.get("run_id", ""), []):
        try:
            q.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Dropping %s event for a slow SSE client", event_type)


orchestrator = RunOrchestrator(store, config, files=files, on_progress=_broadcast_event)


class RunRequest(BaseModel):
    site_id: str | None = None
    base_url: str | None = None
    name: str | None = None
    project_id: str = ""


class CustomRunRequest(RunRequest):
    custom_pages: list[str] = Field(min_length=1)


class ScreenshotBaselineRequest(BaseModel):
    site_id: str
    page_url: str
    screenshot_path: str
    viewport_width: int = Field(gt=0)
    viewport_height: int = Field(gt=0)
    baseline_type: BaselineType = BaselineType.SCREENSHOT


class FigmaBaselineRequest(BaseModel):
    site_id: str
    page_url: str
    figma_file_key: str = Field(min_length=1)
    figma_node_id: str = Field(min_length=1)
    figma_access_token: str = Field(min_length=1)
    viewport_width: int = Field(gt=0)
    viewport_height: int = Field(gt=0)


class FigmaTokenRequest(BaseModel):
    figma_access_token: str = Field(min_length=1)


class FigmaFramesRequest(BaseModel):
    file_key: str = Field(min_length=1)
    access_token: str = Field(min_length=1)


@app.exception_handler(RunNotFound)
async def _run_not_found(request: Request, exc: RunNotFound):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(BaselineNotFound)
async def _baseline_not_found(request: Request, exc: BaselineNotFound):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(InvalidRunState)
async def _invalid_run_state(request: Request, exc: InvalidRunState):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(BaselineError)
async def _baseline_error(request: Request, exc: BaselineError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.get("/health")
def health():
    return {"status": "ok", "service": "site-audit-api", "version": "0.1.0"}


@app.post("/api/v1/runs", status_code=201)
async def start_run(req: RunRequest, background_tasks: BackgroundTasks):
    site = _resolve_site(req)
    run = orchestrator.create_run(site)
    _event_queues[run.id] = []
    background_tasks.add_task(run_audit, run.id, site)
    return {"run": run.to_dict(), "site_id": site.id}


@app.post("/api/v1/runs/custom", status_code=201)
async def start_custom_run(req: CustomRunRequest, background_tasks: BackgroundTasks):
    if any(not p.strip() for p in req.custom_pages):
        raise HTTPException(status_code=400, detail="Page URLs cannot be empty")
    site = _resolve_site(req)
    run = orchestrator.create_run(site)
    _event_queues[run.id] = []
    background_tasks.add_task(run_audit, run.id, site, req.custom_pages)
    return {"run": run.to_dict(), "site_id": site.id}


@app.patch("/api/v1/runs/{run_id}/stop")
async def stop_run(run_id: str):
    run = orchestrator.stop_run(run_id)
    _close_streams(run_id)
    return {"run": run.to_dict()}


@app.get("/api/v1/runs/{run_id}")
async def get_run(run_id: str):
    run = store.get_run(run_id)
    pages = store.list_pages(run_id)
    issues = store.list_issues(run_id)
    return {
        "run": run.to_dict(),
        "pages": [p.to_dict() for p in pages],
        "issues": [i.to_dict() for i in issues],
        "issue_summary": {
            "total": len(issues),
            "by_type": _count_by(issues, "type"),
            "by_severity": _count_by(issues, "severity"),
        },
    }


@app.get("/api/v1/runs/{run_id}/stream")
async def run_stream(run_id: str, request: Request):
    """SSE endpoint that streams live progress events during a run."""
    run = store.get_run(run_id)

    queue: asyncio.Queue = asyncio.Queue()
    if run.status.terminal:
        queue.put_nowait(None)
    else:
        _event_queues.setdefault(run_id, []).append(queue)

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    break

                try:
                    event = await asyncio.wait_for(queue.get(), timeout=30.0)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue

                if event is None:
                    break

                event_type = event.get("type", "update")
                yield f"event: {event_type}\ndata: {json.dumps(event)}\n\n"

                if event_type in TERMINAL_EVENTS:
                    break
        finally:
            if queue in _event_queues.get(run_id, []):
                _event_queues[run_id].remove(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.get("/api/v1/runs/{run_id}/visual-diffs")
async def get_visual_diffs(run_id: str):
    store.get_run(run_id)
    return {"visual_diffs": [d.to_dict() for d in store.list_visual_diffs(run_id)]}


@app.get("/api/v1/sites/{site_id}/baselines")
async def get_baselines(site_id: str, page_url: str | None = None):
    baselines = BaselineService(store, files).list_for_site(site_id, page_url)
    return {"baselines": [b.to_dict() for b in baselines]}


@app.post("/api/v1/baselines/screenshot", status_code=201)
async def create_screenshot_baseline(req: ScreenshotBaselineRequest):
    baseline = BaselineService(store, files).create_from_screenshot(
        req.site_id, req.page_url, req.screenshot_path,
        req.viewport_width, req.viewport_height, baseline_type=req.baseline_type,
    )
    return baseline.to_dict()


@app.post("/api/v1/baselines/figma", status_code=201)
async def create_figma_baseline(req: FigmaBaselineRequest):
    async with httpx.AsyncClient() as http:
        service = BaselineService(store, files, FigmaClient(http))
        baseline = await service.create_from_figma(
            req.site_id, req.page_url, req.figma_file_key, req.figma_node_id,
            req.figma_access_token, req.viewport_width, req.viewport_height,
        )
    return baseline.to_dict()


@app.post("/api/v1/baselines/{baseline_id}/refresh")
async def refresh_figma_baseline(baseline_id: str, req: FigmaTokenRequest):
    async with httpx.AsyncClient() as http:
        service = BaselineService(store, files, FigmaClient(http))
        baseline = await service.refresh_figma(baseline_id, req.figma_access_token)
    return baseline.to_dict()


@app.post("/api/v1/figma/frames")
async def list_figma_frames(req: FigmaFramesRequest):
    async with httpx.AsyncClient() as http:
        frames = await FigmaClient(http).list_frames(req.file_key, req.access_token)
    return {"frames": frames}


@app.patch("/api/v1/baselines/{baseline_id}/activate")
async def activate_baseline(baseline_id: str):
    return BaselineService(store, files).activate(baseline_id).to_dict()


@app.patch("/api/v1/baselines/{baseline_id}/deactivate")
async def deactivate_baseline(baseline_id: str):
    return BaselineService(store, files).deactivate(baseline_id).to_dict()


async def run_audit(run_id: str, site: Site, pages: list[str] | None = None):
    if pages is None:
        await orchestrator.execute_run(run_id, site)
    else:
        await orchestrator.execute_custom_run(run_id, site, pages)
    _close_streams(run_id)


def _resolve_site(req: RunRequest) -> Site:
    if req.site_id:
        site = store.get_site(req.site_id)
        if site is None:
            raise HTTPException(status_code=404, detail="Site not found")
        return site
    if not req.base_url:
        raise HTTPException(status_code=400, detail="Either site_id or base_url is required")
    url = req.base_url.strip()
    if not url.startswith("http"):
        url = f"https://{url}"
    return store.create_site(Site(name=req.name or url, base_url=url, project_id=req.project_id))


def _close_streams(run_id: str):
    """Signal end to all SSE listeners of a run and forget them."""
    for q in _event_queues.pop(run_id, []):
        try:
            q.put_nowait(None)
        except asyncio.QueueFull:
            logger.warning("Could not close a slow SSE client for run %s", run_id)


def _count_by(issues, attr: str) -> dict[str, int]:
    counts: dict[str, int] = {}
    for issue in issues:
        val = getattr(issue, attr).value
        counts[val] = counts.get(val, 0) + 1
    return counts
