"""
Script analysis API endpoints.

Thin HTTP layer over PineScriptEngine. The engine itself lives in the
application state (``request.app.state.engine``); this module holds no
engine of its own.

Error mapping:
- unsupported version / malformed history id -> 400
- unknown history id or index -> 404
- validation timeout -> 504 (detail carries the timeout diagnostic)
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..engine import PineScriptEngine
from ..errors import ValidationTimeoutError
from ..models.autofix import FixResult
from ..models.diagnostics import ValidationResult
from ..models.formatting import FormatOptions, FormatResult
from ..models.history import ScriptVersionRecord
from ..models.script import ScriptVersion

router = APIRouter()
logger = logging.getLogger(__name__)


class ScriptRequest(BaseModel):
    """Request body carrying a single script."""
    script: str


class ValidateRequest(ScriptRequest):
    version: Optional[str] = Field(default=None, description="Declared version (e.g. 'v5' or '5')")
    max_time: Optional[float] = Field(default=None, gt=0, description="Time budget in seconds")


class FormatRequest(ScriptRequest):
    options: Optional[FormatOptions] = None


class ConvertRequest(ScriptRequest):
    target_version: str


class ConvertResponse(BaseModel):
    script: str
    source_version: ScriptVersion
    target_version: ScriptVersion


class SaveVersionRequest(ScriptRequest):
    notes: Optional[str] = None


class SaveVersionResponse(BaseModel):
    id: str


class CompareRequest(BaseModel):
    old: str
    new: str


class CompareResponse(BaseModel):
    diff: List[str]


def get_engine(request: Request) -> PineScriptEngine:
    return request.app.state.engine


def _parse_version(value: str) -> ScriptVersion:
    try:
        return ScriptVersion.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/validate", response_model=ValidationResult)
def validate_script(body: ValidateRequest, request: Request):
    """Validate a script and return its diagnostics."""
    engine = get_engine(request)
    version = _parse_version(body.version) if body.version else None
    try:
        return engine.validate(body.script, version, budget=body.max_time)
    except ValidationTimeoutError as e:
        logger.warning(f"⏱️ Validation timed out after {e.elapsed:.1f}s")
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=e.diagnostic.model_dump(mode="json"),
        )


@router.post("/fix", response_model=FixResult)
def fix_script(body: ScriptRequest, request: Request):
    """Apply the safe automatic repairs."""
    return get_engine(request).fix(body.script)


@router.post("/format", response_model=FormatResult)
def format_script(body: FormatRequest, request: Request):
    """Return the canonical formatting of a script."""
    return get_engine(request).format(body.script, body.options)


@router.post("/convert", response_model=ConvertResponse)
def convert_script(body: ConvertRequest, request: Request):
    """Rewrite a script for another language version."""
    engine = get_engine(request)
    target = _parse_version(body.target_version)
    source = engine.detect_version(body.script)
    return ConvertResponse(
        script=engine.convert_version(body.script, target),
        source_version=source,
        target_version=target,
    )


@router.post("/compare", response_model=CompareResponse)
def compare_scripts(body: CompareRequest, request: Request):
    """Positional line diff between two scripts."""
    return CompareResponse(diff=get_engine(request).compare_versions(body.old, body.new))


@router.post("/versions", response_model=SaveVersionResponse, status_code=status.HTTP_201_CREATED)
def save_version(body: SaveVersionRequest, request: Request):
    """Persist a snapshot of a script."""
    engine = get_engine(request)
    try:
        return SaveVersionResponse(id=engine.save_version(body.script, body.notes))
    except OSError as e:
        logger.error(f"Failed to save script version: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to save script version: {str(e)}",
        )


def _history(engine: PineScriptEngine, script_id: str) -> List[ScriptVersionRecord]:
    try:
        history = engine.get_history(script_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not history:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No history for script {script_id}")
    return history


@router.get("/versions/{script_id}", response_model=List[ScriptVersionRecord])
def get_history(script_id: str, request: Request):
    """All saved snapshots of a script, oldest first."""
    return _history(get_engine(request), script_id)


@router.get("/versions/{script_id}/latest", response_model=ScriptVersionRecord)
def get_latest_version(script_id: str, request: Request):
    """Most recent snapshot of a script."""
    return _history(get_engine(request), script_id)[-1]


@router.get("/versions/{script_id}/{index}", response_model=ScriptVersionRecord)
def get_version(script_id: str, index: int, request: Request):
    """Snapshot at a position in the history (negative counts from the end)."""
    engine = get_engine(request)
    _history(engine, script_id)
    record = engine.get_version(script_id, index)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Script {script_id} has no version at index {index}",
        )
    return record
