# FastAPI layer for Regroup
# pip install fastapi uvicorn pydantic sqlite-vec fastembed numpy

from __future__ import annotations
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
import threading, time
import logging
import os

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cluster_engine import EngineConfig, OrganizerWorkflow, WorkflowState
from cluster_engine.errors import ConfigError, ReconciliationMiss
from cluster_engine.models import (
    AnalysisOptions,
    CamelModel,
    ExecutionRequest,
    ExecutionResult,
    FileEmbeddingRecord,
    OrganizationActivity,
    OrganizationSuggestion,
)
from cluster_theming_agent import ThemingAgentGenerator, build_agent
from organizer_utils import DEFAULT_CONFIG_PATH
from organizer_utils.organizer_vector_db import OrganizerVectorDB
from regroup.insights import generate_insights
from regroup.storage import LocalShortcutStorage

logger = logging.getLogger(__name__)

CONFIG_ENV = "REGROUP_CONFIG"
DEFAULT_USER = "default"

# ---------- App + CORS ----------
app = FastAPI(title="Regroup API", version="0.1")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten for prod
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

db = OrganizerVectorDB(os.environ.get(CONFIG_ENV, str(DEFAULT_CONFIG_PATH)))


# ---------- Per-user execution guard ----------
class ExecutionGuard:
    """Allow one execution per user at a time and remember the last state."""

    def __init__(self):
        self._lock = threading.Lock()
        self.running: Dict[str, float] = {}
        self.states: Dict[str, WorkflowState] = {}
        self.errors: Dict[str, Optional[str]] = {}

    def start(self, user_id: str):
        with self._lock:
            if user_id in self.running:
                raise RuntimeError(f"An organization is already running for user '{user_id}'.")
            self.running[user_id] = time.time()

    def stop(self, user_id: str):
        with self._lock:
            self.running.pop(user_id, None)

    def record(self, user_id: str, workflow: OrganizerWorkflow):
        with self._lock:
            self.states[user_id] = workflow.state
            self.errors[user_id] = workflow.last_error

guard = ExecutionGuard()


# ---------- Schemas ----------
class ConfigOut(BaseModel):
    ok: bool = True
    config: Dict[str, Any]
    base_dir: str
    target_dir: Optional[str] = None

class ConfigUpdate(BaseModel):
    base_dir: Optional[str] = None
    target_dir: Optional[str] = None

class ResetPayload(BaseModel):
    base_dir: str

class EmbeddingPayload(FileEmbeddingRecord):
    user_id: str = DEFAULT_USER

class IndexPayload(CamelModel):
    user_id: str = DEFAULT_USER
    file_id: str
    file_name: str
    text: str
    folder_path: Optional[str] = None
    metadata: Dict[str, Any] = {}

class AnalyzePayload(AnalysisOptions):
    user_id: str = DEFAULT_USER

class ExecutePayload(ExecutionRequest):
    user_id: str = DEFAULT_USER

class HistoryOut(CamelModel):
    ok: bool = True
    history: List[OrganizationActivity]
    stats: Dict[str, Any]
    insights: List[str]

class StatusOut(BaseModel):
    ok: bool = True
    user_id: str
    state: str
    running: bool
    started_at: Optional[str] = None
    last_error: Optional[str] = None

class SimilarOut(BaseModel):
    ok: bool = True
    results: List[Dict[str, Any]]


# ---------- Helpers ----------

def _unwrap(result: Dict[str, Any], status_code: int = 400) -> Dict[str, Any]:
    """Turn a ``{"ok": False}`` store reply into an HTTP error."""
    if not result.get("ok", False):
        raise HTTPException(status_code=status_code, detail=result.get("error", "request failed"))
    return result

def _refiner():
    agent_cfg = dict(db.config.get("cluster_theming_agent", {}))
    if not agent_cfg.get("enabled"):
        return None
    agent_cfg.setdefault("api_key", db.config.get("api_key", ""))
    return ThemingAgentGenerator(agent=build_agent(config=agent_cfg))

def _storage() -> LocalShortcutStorage:
    base_dir = db.config.get("base_dir")
    target_dir = db.config.get("target_dir")
    if not base_dir or not target_dir:
        raise HTTPException(status_code=400, detail="base_dir and target_dir must be set")
    return LocalShortcutStorage(base_dir, target_dir)

def _workflow(storage: Optional[LocalShortcutStorage] = None) -> OrganizerWorkflow:
    # One workflow per request; nothing but the db is shared between users
    return OrganizerWorkflow(
        source=db,
        storage=storage,
        activity_log=db,
        snapshots=db,
        refiner=_refiner(),
        config=EngineConfig(**db.config.get("cluster_engine", {})),
    )

def _config_out() -> Dict[str, Any]:
    base = _unwrap(db.get_base_dir(), status_code=500)
    return {
        "ok": True,
        "config": db.config,
        "base_dir": base["base_dir"],
        "target_dir": db.config.get("target_dir") or None,
    }


# ---------- Errors ----------
@app.exception_handler(ReconciliationMiss)
def reconciliation_miss_handler(_: Request, exc: ReconciliationMiss):
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error": str(exc),
            "results": [r.model_dump(by_alias=True, mode="json") for r in exc.results],
            "availableClusters": exc.available,
        },
    )

@app.exception_handler(ConfigError)
def config_error_handler(_: Request, exc: ConfigError):
    return JSONResponse(status_code=400, content={"ok": False, "error": str(exc)})


# ---------- Config ----------
@app.get("/api/config", response_model=ConfigOut)
def get_config():
    return _config_out()

@app.put("/api/config", response_model=ConfigOut)
def put_config(payload: ConfigUpdate):
    if payload.base_dir:
        _unwrap(db.save_config(base_dir=payload.base_dir))
    if payload.target_dir:
        _unwrap(db.save_config(target_dir=payload.target_dir))
    return _config_out()

@app.post("/api/reset", response_model=Dict[str, Any])
def reset(payload: ResetPayload):
    """Wipe embeddings, history and snapshots and start over from ``base_dir``."""
    return _unwrap(db.reset_db(payload.base_dir))


# ---------- Embeddings ----------
@app.post("/api/embeddings", response_model=Dict[str, Any])
def upsert_embedding(payload: EmbeddingPayload):
    record = FileEmbeddingRecord(**payload.model_dump(exclude={"user_id"}))
    return _unwrap(db.upsert_embedding(payload.user_id, record))

@app.post("/api/embeddings/index", response_model=Dict[str, Any])
def index_text(payload: IndexPayload):
    return _unwrap(
        db.index_text(
            payload.user_id,
            payload.file_id,
            payload.file_name,
            payload.text,
            folder_path=payload.folder_path,
            metadata=payload.metadata,
        )
    )

@app.get("/api/embeddings/{file_id}/similar", response_model=SimilarOut)
def similar(file_id: str, user_id: str = DEFAULT_USER, top_k: int = 10):
    return _unwrap(db.find_similar_files(user_id, file_id, top_k=top_k), status_code=404)


# ---------- Organize ----------
@app.post("/api/organize/analyze", response_model=OrganizationSuggestion)
def analyze(payload: AnalyzePayload):
    workflow = _workflow()
    try:
        options = AnalysisOptions(**payload.model_dump(exclude={"user_id"}))
        return workflow.analyze(payload.user_id, options)
    finally:
        guard.record(payload.user_id, workflow)

@app.post("/api/organize/execute", response_model=ExecutionResult)
def execute(payload: ExecutePayload):
    storage = _storage()
    try:
        guard.start(payload.user_id)
    except RuntimeError as e:
        raise HTTPException(status_code=409, detail=str(e))

    workflow = _workflow(storage)
    try:
        request = ExecutionRequest(**payload.model_dump(exclude={"user_id"}))
        return workflow.execute(payload.user_id, request)
    finally:
        guard.record(payload.user_id, workflow)
        guard.stop(payload.user_id)

@app.get("/api/organize/history", response_model=HistoryOut)
def history(user_id: str = DEFAULT_USER):
    activities = db.get_activity_history(user_id)
    stats = db.get_activity_stats(user_id)
    return {
        "ok": True,
        "history": activities,
        "stats": stats,
        "insights": generate_insights(activities, stats),
    }


# ---------- Status ----------
@app.get("/api/status", response_model=StatusOut)
def status(user_id: str = DEFAULT_USER):
    started_at = guard.running.get(user_id)
    state = guard.states.get(user_id, WorkflowState.IDLE)
    return {
        "ok": True,
        "user_id": user_id,
        "state": state.value,
        "running": started_at is not None,
        "started_at": datetime.fromtimestamp(started_at, timezone.utc).isoformat() if started_at else None,
        "last_error": guard.errors.get(user_id),
    }

# ---------- Run ----------
# uvicorn regroup.app:app --host 127.0.0.1 --port 8000 --reload
