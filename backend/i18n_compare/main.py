from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from .config import load_settings, save_settings
from .errors import InvalidBatchError, ProviderError, RunInProgressError
from .providers.ollama import OllamaProvider
from .providers.openai_compat import OpenAICompatProvider
from .schemas import (
    AutoTranslateIn,
    EntriesDeleteIn,
    EntryUpdateIn,
    RunState,
    Settings,
    SettingsOut,
    TranslateBatchIn,
    TranslateIn,
    WorkspaceOut,
)
from .service import TranslationService
from .utils.debug_buffer import recent as debug_recent
from .utils.languages import LANGUAGE_NAMES, language_from_filename, language_name
from .utils.logging_config import setup_logging
from .workspace import TranslationTable, Workspace, WorkspaceStore, parse_json_upload

# -----------------------------------------------------------------------------
# Bootstrap
# -----------------------------------------------------------------------------
load_dotenv()
setup_logging()
log = logging.getLogger("i18n_compare")

app = FastAPI(title="i18n JSON compare & AI translate", version="0.3.0")

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# seconds without a state change before the event stream sends a heartbeat
HEARTBEAT_SECONDS = float(os.getenv("EVENTS_HEARTBEAT_SECONDS", "10"))

EFFECTIVE_SETTINGS: Settings = load_settings()
WORKSPACES = WorkspaceStore()


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _provider_from_settings(s: Settings):
    s = s.normalized()

    if s.provider in ("openai", "openrouter", "openai_compat"):
        cfg = s.openai_compat
        if "api.openai.com" in cfg["base_url"] and not cfg["api_key"]:
            raise HTTPException(status_code=400, detail="OpenAI API key missing")
        return OpenAICompatProvider(
            base_url=cfg["base_url"],
            model=cfg["model"],
            api_key=cfg["api_key"],
            temperature=cfg["temperature"],
            timeout_seconds=cfg["timeout"],
        )

    if s.provider in ("ollama", "local"):
        cfg = s.ollama
        return OllamaProvider(
            host=cfg["host"],
            model=cfg["model"],
            temperature=cfg["temperature"],
            timeout_seconds=cfg["timeout"],
        )

    raise HTTPException(status_code=400, detail=f"Unsupported provider '{s.provider}'")


def _service() -> TranslationService:
    s = EFFECTIVE_SETTINGS
    return TranslationService(
        _provider_from_settings(s),
        max_batch_size=s.max_batch_translations,
        system_prompt=s.system_prompt,
    )


def _workspace_or_404(workspace_id: str) -> Workspace:
    try:
        return WORKSPACES.get(workspace_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Unknown workspace")


def _workspace_out(ws: Workspace, hide_completed: bool = False) -> WorkspaceOut:
    t = ws.table
    return WorkspaceOut(
        id=ws.id,
        source_language=t.source_language,
        languages=t.languages,
        missing=t.missing_count(),
        sections=t.section_stats(),
        rows=t.rows(hide_completed=hide_completed),
        run=ws.run_state,
    )


def _state_line(state: RunState) -> str:
    return json.dumps({"type": "state", **state.model_dump(mode="json")}) + "\n"


# -----------------------------------------------------------------------------
# Settings endpoints
# -----------------------------------------------------------------------------
@app.get("/settings", response_model=SettingsOut)
def get_settings():
    return SettingsOut(ok=True, defaults=EFFECTIVE_SETTINGS.public_copy())


@app.post("/settings", response_model=SettingsOut)
def set_settings(payload: Settings):
    global EFFECTIVE_SETTINGS
    incoming = payload.normalized()
    # the UI only ever sees the redacted key; keep the stored one
    if incoming.openai_compat.get("api_key") == "******":
        incoming.openai_compat["api_key"] = EFFECTIVE_SETTINGS.openai_compat.get("api_key", "")
    EFFECTIVE_SETTINGS = incoming
    save_settings(EFFECTIVE_SETTINGS)
    return SettingsOut(ok=True, defaults=EFFECTIVE_SETTINGS.public_copy())


@app.get("/languages")
def languages():
    return {"ok": True, "languages": LANGUAGE_NAMES}


# -----------------------------------------------------------------------------
# Translate service
# -----------------------------------------------------------------------------
@app.post("/api/translate", response_class=PlainTextResponse)
async def translate(payload: TranslateIn):
    service = _service()
    try:
        return await service.translate_text(
            payload.text,
            language_name(payload.source_language),
            language_name(payload.target_language),
        )
    except InvalidBatchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        log.error("translate failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to translate text")


@app.post("/api/translate-batch")
async def translate_batch(payload: TranslateBatchIn):
    service = _service()
    try:
        results = await service.translate_batch(
            payload.items,
            language_name(payload.source_language),
            language_name(payload.target_language),
        )
    except InvalidBatchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        log.error("translate-batch failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e) or "An error occurred during translation")
    return [r.model_dump(by_alias=True) for r in results]


# -----------------------------------------------------------------------------
# Workspaces: upload, compare, edit, export
# -----------------------------------------------------------------------------
@app.post("/workspaces", response_model=WorkspaceOut)
async def create_workspace(
    source: UploadFile = File(...),
    targets: Optional[List[UploadFile]] = File(None),
    sourceLanguage: Optional[str] = Form(None),
):
    files = []
    for upload in [source, *(targets or [])]:
        name = upload.filename or "upload.json"
        if not name.lower().endswith(".json"):
            raise HTTPException(status_code=400, detail=f"Only .json files are accepted ({name})")
        try:
            content = parse_json_upload(name, await upload.read())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        files.append((language_from_filename(name), content))

    source_file, target_files = files[0], files[1:]
    if sourceLanguage:
        source_file = (sourceLanguage.strip().lower(), source_file[1])

    try:
        table = TranslationTable.from_files(source_file, target_files)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    ws = WORKSPACES.create(table)
    log.info("workspace %s: %d keys, languages=%s", ws.id, len(table), ",".join(table.languages))
    return _workspace_out(ws)


@app.get("/workspaces/{workspace_id}", response_model=WorkspaceOut)
def get_workspace(workspace_id: str, hide_completed: bool = False):
    return _workspace_out(_workspace_or_404(workspace_id), hide_completed=hide_completed)


@app.delete("/workspaces/{workspace_id}")
async def delete_workspace(workspace_id: str):
    _workspace_or_404(workspace_id)
    WORKSPACES.remove(workspace_id)
    return {"ok": True}


@app.post("/workspaces/{workspace_id}/entries")
def update_entry(workspace_id: str, payload: EntryUpdateIn):
    ws = _workspace_or_404(workspace_id)
    try:
        ws.table.update(payload.key, payload.language, payload.value)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=e.args[0])
    return {"ok": True, "missing": ws.table.missing_count()}


@app.post("/workspaces/{workspace_id}/entries/delete")
def delete_entries(workspace_id: str, payload: EntriesDeleteIn):
    ws = _workspace_or_404(workspace_id)
    deleted = ws.table.delete(payload.keys)
    return {"ok": True, "deleted": deleted, "missing": ws.table.missing_count()}


@app.get("/workspaces/{workspace_id}/export/{language}")
def export_language(workspace_id: str, language: str):
    ws = _workspace_or_404(workspace_id)
    try:
        data = ws.table.export(language)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=e.args[0])
    return JSONResponse(
        data,
        headers={"Content-Disposition": f'attachment; filename="{language}.json"'},
    )


# -----------------------------------------------------------------------------
# Auto-translate runs
# -----------------------------------------------------------------------------
@app.post("/workspaces/{workspace_id}/auto-translate", status_code=202)
async def start_auto_translate(workspace_id: str, payload: AutoTranslateIn):
    ws = _workspace_or_404(workspace_id)
    service = _service()
    try:
        await ws.start_auto_translate(service, payload.target_languages, payload.keys)
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=e.args[0] if e.args else str(e))
    return {"ok": True, "run": ws.run_state.model_dump(mode="json")}


@app.get("/workspaces/{workspace_id}/auto-translate")
def auto_translate_state(workspace_id: str):
    ws = _workspace_or_404(workspace_id)
    return {"ok": True, "active": ws.run_active, "run": ws.run_state.model_dump(mode="json")}


@app.post("/workspaces/{workspace_id}/auto-translate/pause")
async def auto_translate_pause(workspace_id: str):
    ws = _workspace_or_404(workspace_id)
    ws.controller.pause()
    return {"ok": True, "run": ws.run_state.model_dump(mode="json")}


@app.post("/workspaces/{workspace_id}/auto-translate/resume")
async def auto_translate_resume(workspace_id: str):
    ws = _workspace_or_404(workspace_id)
    ws.controller.resume()
    return {"ok": True, "run": ws.run_state.model_dump(mode="json")}


@app.post("/workspaces/{workspace_id}/auto-translate/stop")
async def auto_translate_stop(workspace_id: str):
    ws = _workspace_or_404(workspace_id)
    ws.controller.stop()
    return {"ok": True, "run": ws.run_state.model_dump(mode="json")}


@app.get("/workspaces/{workspace_id}/auto-translate/events")
async def auto_translate_events(workspace_id: str):
    """
    NDJSON stream: one {"type": "state", ...} line per run state transition,
    {"type": "heartbeat"} while nothing changes. Ends when the run is over.
    """
    ws = _workspace_or_404(workspace_id)
    queue, unsubscribe = ws.subscribe_queue()

    async def generator():
        try:
            yield _state_line(ws.run_state)
            while ws.run_active or not queue.empty():
                try:
                    state = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
                    yield _state_line(state)
                except asyncio.TimeoutError:
                    yield json.dumps({"type": "heartbeat"}) + "\n"
        finally:
            unsubscribe()

    return StreamingResponse(generator(), media_type="application/x-ndjson")


# -----------------------------------------------------------------------------
# Debug helpers
# -----------------------------------------------------------------------------
@app.get("/debug/provider/recent")
def provider_recent(n: int = 5):
    """Peek at the last few provider exchanges (no secrets, truncated)."""
    return {"ok": True, "items": debug_recent(n)}
