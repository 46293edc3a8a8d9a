"""
Docflow web server.

A FastAPI server for the upload → configure → monitor → result flow:
upload a document, pick a model, start the agent workflow, follow it over
Server-Sent Events, stop or retry it, and download the Markdown result.

Usage:
    docflow web                    # Start server on localhost:8000
    docflow web -p 3000            # Custom port
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import webbrowser
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncGenerator, Iterator

from fastapi import Depends, FastAPI, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, Field

from docflow.errors import ExtractionError, PreconditionError, classify_error
from docflow.extract import extract_document
from docflow.runtime import get_global_config
from docflow.storage import (
    IntegrityError,
    NotFoundError,
    delete_agent,
    delete_model_config,
    get_agent,
    get_all_agents,
    get_all_artifacts,
    get_all_model_configs,
    get_artifact,
    get_core_agents,
    get_model_config,
    init_db,
    insert_agent,
    insert_model_config,
    reorder_agents,
    save_artifact,
    seed_default_agents,
    update_agent,
)
from docflow.workflow import PipelineRunner, ProgressEvent, RunStatus

logger = logging.getLogger(__name__)


# =============================================================================
# State Management
# =============================================================================


@dataclass
class AppState:
    """Global application state."""

    # Uploaded document
    filename: str | None = None
    extracted_text: str = ""
    page_count: int | None = None
    doc_metadata: dict[str, str] = field(default_factory=dict)

    # Current (or last) run
    runner: PipelineRunner | None = None
    run_task: asyncio.Task | None = None
    last_event: dict[str, Any] | None = None

    # SSE subscribers
    subscribers: list[asyncio.Queue] = field(default_factory=list)

    db_path: Path | None = None

    @property
    def is_running(self) -> bool:
        return self.run_task is not None and not self.run_task.done()

    def get_connection(self) -> sqlite3.Connection:
        """Open a new database connection (usable from worker threads)."""
        path = self.db_path or get_global_config().resolved_db_path
        return init_db(path, check_same_thread=False)

    def clear_document(self):
        """Forget the uploaded document and the last run."""
        self.filename = None
        self.extracted_text = ""
        self.page_count = None
        self.doc_metadata = {}
        self.runner = None
        self.run_task = None
        self.last_event = None


# Global state instance
state = AppState()


def status_payload() -> dict[str, Any]:
    """Current server status as sent to clients."""
    run = None
    if state.runner is not None and state.runner.state is not None:
        run = state.runner.state.to_dict()
    return {
        "document": {
            "filename": state.filename,
            "char_count": len(state.extracted_text),
            "page_count": state.page_count,
            "metadata": state.doc_metadata,
        },
        "running": state.is_running,
        "run": run,
        "progress": state.last_event,
    }


def broadcast(data: dict[str, Any]) -> None:
    """Queue data for every SSE subscriber."""
    for queue in state.subscribers:
        queue.put_nowait(data)


def on_progress(event: ProgressEvent) -> None:
    """Runner observer: remember the latest event and fan it out."""
    current = state.runner
    if current is None or current.state is None or current.state.run_id != event.run_id:
        logger.debug("Ignoring progress from stale run %s", event.run_id[:8])
        return
    state.last_event = event.to_dict()
    broadcast(state.last_event)


def get_db() -> Iterator[sqlite3.Connection]:
    conn = state.get_connection()
    try:
        yield conn
    finally:
        conn.close()


# =============================================================================
# Pydantic Models
# =============================================================================


class StartRequest(BaseModel):
    """Request to start the agent workflow."""

    model_id: str


class AgentModel(BaseModel):
    id: int
    name: str
    kind: str
    description: str
    temperature: float
    prompt_template: str
    sort_order: int


class AgentCreate(BaseModel):
    name: str
    prompt_template: str
    kind: str = "optional"
    description: str = ""
    temperature: float = Field(default=0.2, ge=0.0, le=1.0)
    sort_order: int | None = None


class AgentUpdate(BaseModel):
    name: str | None = None
    prompt_template: str | None = None
    kind: str | None = None
    description: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=1.0)
    sort_order: int | None = None


class ReorderRequest(BaseModel):
    agent_ids: list[int]


class ModelConfigCreate(BaseModel):
    provider: str
    model_name: str
    api_key: str = ""
    display_name: str | None = None
    id: str | None = None


class ModelConfigModel(BaseModel):
    """A model configuration as returned to clients (no API key)."""

    id: str
    provider: str
    model: str
    display_name: str
    has_api_key: bool


class UploadResponse(BaseModel):
    filename: str
    char_count: int
    page_count: int | None
    preview: str


class ArtifactSummary(BaseModel):
    id: int
    run_id: str | None
    name: str
    created_at: str


# =============================================================================
# Workflow Runner
# =============================================================================


async def run_workflow(runner: PipelineRunner) -> None:
    """Run the pipeline and store the result of a completed run."""
    run_state = await runner.run()

    if run_state.status is RunStatus.COMPLETED and run_state.final_artifact is not None:
        name = Path(state.filename or "document").stem + ".md"
        conn = state.get_connection()
        try:
            save_artifact(conn, name, run_state.final_artifact, run_id=run_state.run_id)
        finally:
            conn.close()

    broadcast(status_payload())


def start_runner(runner: PipelineRunner) -> dict[str, Any]:
    runner.subscribe(on_progress)
    state.runner = runner
    state.last_event = None
    state.run_task = asyncio.create_task(run_workflow(runner))
    return {"status": "started", "agents": [a.name for a in runner.agents]}


async def stop_current_run() -> None:
    """Cancel the active run and wait until it has finished."""
    if state.runner is not None:
        state.runner.cancel()
    task = state.run_task
    if task is not None and not task.done():
        await task


# =============================================================================
# FastAPI App
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """App lifespan handler for startup/shutdown."""
    conn = state.get_connection()
    try:
        seeded = seed_default_agents(conn)
        if seeded:
            logger.info("Seeded %d default agents", seeded)
    finally:
        conn.close()
    logger.info("Docflow server starting...")
    yield
    logger.info("Shutting down...")
    await stop_current_run()


app = FastAPI(
    title="Docflow",
    description="Turn documents into structured Markdown with a chain of LLM agents",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Document & Workflow API
# =============================================================================


@app.get("/api/status")
async def get_status():
    """Get current server status."""
    return status_payload()


@app.post("/api/upload", response_model=UploadResponse)
async def upload_file(file: UploadFile):
    """Upload one document and extract its text."""
    if state.is_running:
        raise HTTPException(status_code=409, detail="A workflow is running. Stop it first.")
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    content = await file.read()
    logger.info("Received %s (%d bytes)", file.filename, len(content))

    try:
        doc = await asyncio.to_thread(extract_document, content, Path(file.filename).suffix)
    except ExtractionError as e:
        raise HTTPException(
            status_code=400,
            detail=classify_error(e, "File processing").model_dump(mode="json"),
        )

    state.clear_document()
    state.filename = file.filename
    state.extracted_text = doc.text
    state.page_count = doc.page_count
    state.doc_metadata = doc.metadata

    return UploadResponse(
        filename=file.filename,
        char_count=len(doc.text),
        page_count=doc.page_count,
        preview=doc.text[:500],
    )


@app.delete("/api/upload")
async def clear_upload():
    """Stop any run and forget the uploaded document."""
    await stop_current_run()
    state.clear_document()
    broadcast(status_payload())
    return {"status": "cleared"}


@app.post("/api/workflow/start")
async def start_workflow(request: StartRequest, conn: sqlite3.Connection = Depends(get_db)):
    """Start the core-agent workflow over the uploaded document."""
    if state.is_running:
        raise HTTPException(status_code=409, detail="Workflow already in progress")

    try:
        target = get_model_config(conn, request.model_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    try:
        runner = PipelineRunner(
            get_core_agents(conn),
            state.extracted_text,
            target,
            config=get_global_config(),
        )
    except PreconditionError as e:
        raise HTTPException(
            status_code=400,
            detail=classify_error(e, "AI workflow").model_dump(mode="json"),
        )

    return start_runner(runner)


@app.post("/api/workflow/stop")
async def stop_workflow():
    """Request cancellation of the running workflow."""
    if not state.is_running or state.runner is None:
        raise HTTPException(status_code=400, detail="No workflow is running")
    state.runner.cancel()
    return {"status": "stopping"}


@app.post("/api/workflow/retry")
async def retry_workflow():
    """Restart a failed workflow from the original extracted text."""
    if state.is_running:
        raise HTTPException(status_code=409, detail="Workflow already in progress")
    runner = state.runner
    if runner is None or runner.state is None or runner.state.status is not RunStatus.FAILED:
        raise HTTPException(status_code=400, detail="No failed workflow to retry")
    return start_runner(runner.retry())


@app.get("/api/result", response_class=PlainTextResponse)
async def get_result():
    """Final Markdown of the last completed run."""
    runner = state.runner
    if runner is None or runner.state is None or runner.state.final_artifact is None:
        raise HTTPException(status_code=404, detail="No completed workflow result")
    return PlainTextResponse(runner.state.final_artifact, media_type="text/markdown")


@app.get("/api/events")
async def sse_events():
    """Server-Sent Events endpoint for real-time progress."""

    async def event_generator() -> AsyncGenerator[str, None]:
        queue: asyncio.Queue = asyncio.Queue()
        state.subscribers.append(queue)

        try:
            yield f"data: {json.dumps(status_payload())}\n\n"

            while True:
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=30.0)
                    yield f"data: {json.dumps(data)}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            state.subscribers.remove(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# =============================================================================
# Configuration API
# =============================================================================


@app.get("/api/agents", response_model=list[AgentModel])
async def list_agents(conn: sqlite3.Connection = Depends(get_db)):
    return [a.to_dict() for a in get_all_agents(conn)]


@app.post("/api/agents", response_model=AgentModel, status_code=201)
async def create_agent(request: AgentCreate, conn: sqlite3.Connection = Depends(get_db)):
    try:
        agent = insert_agent(
            conn,
            request.name,
            request.prompt_template,
            kind=request.kind,
            description=request.description,
            temperature=request.temperature,
            sort_order=request.sort_order,
        )
    except (ValueError, IntegrityError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return agent.to_dict()


@app.put("/api/agents/order", response_model=list[AgentModel])
async def set_agent_order(request: ReorderRequest, conn: sqlite3.Connection = Depends(get_db)):
    try:
        agents = reorder_agents(conn, request.agent_ids)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [a.to_dict() for a in agents]


@app.get("/api/agents/{agent_id}", response_model=AgentModel)
async def read_agent(agent_id: int, conn: sqlite3.Connection = Depends(get_db)):
    try:
        return get_agent(conn, agent_id).to_dict()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.put("/api/agents/{agent_id}", response_model=AgentModel)
async def edit_agent(
    agent_id: int, request: AgentUpdate, conn: sqlite3.Connection = Depends(get_db)
):
    try:
        agent = update_agent(conn, agent_id, **request.model_dump(exclude_none=True))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ValueError, IntegrityError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return agent.to_dict()


@app.delete("/api/agents/{agent_id}")
async def remove_agent(agent_id: int, conn: sqlite3.Connection = Depends(get_db)):
    if not delete_agent(conn, agent_id):
        raise HTTPException(status_code=404, detail=f"Agent {agent_id} not found")
    return {"status": "removed", "id": agent_id}


def _model_response(target) -> ModelConfigModel:
    return ModelConfigModel(
        id=target.id,
        provider=target.provider,
        model=target.model,
        display_name=target.display_name,
        has_api_key=bool(target.api_key),
    )


@app.get("/api/models", response_model=list[ModelConfigModel])
async def list_models(conn: sqlite3.Connection = Depends(get_db)):
    return [_model_response(t) for t in get_all_model_configs(conn)]


@app.post("/api/models", response_model=ModelConfigModel, status_code=201)
async def create_model(request: ModelConfigCreate, conn: sqlite3.Connection = Depends(get_db)):
    try:
        target = insert_model_config(
            conn,
            request.provider,
            request.model_name,
            request.api_key,
            display_name=request.display_name,
            config_id=request.id,
        )
    except IntegrityError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _model_response(target)


@app.delete("/api/models/{config_id}")
async def remove_model(config_id: str, conn: sqlite3.Connection = Depends(get_db)):
    if not delete_model_config(conn, config_id):
        raise HTTPException(status_code=404, detail=f"Model config '{config_id}' not found")
    return {"status": "removed", "id": config_id}


@app.get("/api/artifacts", response_model=list[ArtifactSummary])
async def list_artifacts(conn: sqlite3.Connection = Depends(get_db)):
    return [
        ArtifactSummary(id=a.id, run_id=a.run_id, name=a.name, created_at=a.created_at)
        for a in get_all_artifacts(conn)
    ]


@app.get("/api/artifacts/{artifact_id}", response_class=PlainTextResponse)
async def read_artifact(artifact_id: int, conn: sqlite3.Connection = Depends(get_db)):
    try:
        artifact = get_artifact(conn, artifact_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return PlainTextResponse(artifact.content, media_type=artifact.content_type or "text/plain")


# =============================================================================
# Server Runner
# =============================================================================


def run_server(
    host: str = "127.0.0.1",
    port: int = 8000,
    open_browser: bool = True,
):
    """
    Run the Docflow web server.

    Args:
        host: Host to bind to
        port: Port to bind to
        open_browser: Open the API docs in a browser on startup
    """
    import uvicorn

    if open_browser:
        def open_browser_delayed():
            import time
            time.sleep(1)
            webbrowser.open(f"http://{host}:{port}/docs")

        import threading
        threading.Thread(target=open_browser_delayed, daemon=True).start()

    print(f"Docflow server running at http://{host}:{port}")
    print("Press Ctrl+C to stop")

    uvicorn.run(app, host=host, port=port, log_level="warning")
