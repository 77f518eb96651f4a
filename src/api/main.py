"""
Signature bridge HTTP API.

POST /signature/upload   - store a captured signature, return its reference
POST /signature/process  - upload a stored signature to HubSpot and link it
GET  /health             - configuration and storage status
"""

import os

from fastapi import FastAPI, Depends
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .schemas import (
    SignatureUploadRequest,
    SignatureUploadResponse,
    SignatureProcessRequest,
    SignatureProcessResponse,
    ErrorResponse,
    HealthResponse,
)
from ..core.config import VERSION, CORS_ALLOWED_ORIGINS, debug_enabled, is_hubspot_configured, get_storage_dir
from ..core.errors import SignatureError
from ..core.orchestrator import SignatureOrchestrator
from ..core import heartbeat
from util.logging import logger, audit_event

app = FastAPI(
    title="Signature Bridge API",
    version=VERSION,
    description="Stores captured signatures and links them to HubSpot contacts",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

_orchestrator = SignatureOrchestrator()


def get_orchestrator() -> SignatureOrchestrator:
    """Dependency hook; tests override it with an orchestrator using fakes."""
    return _orchestrator


def _error_response(prefix: str, error: SignatureError) -> JSONResponse:
    body = ErrorResponse(data={"message": f"{prefix}: {error.message}"})
    return JSONResponse(status_code=error.status_code, content=body.model_dump())


@app.post(
    "/signature/upload",
    response_model=SignatureUploadResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def upload_signature(request: SignatureUploadRequest, orchestrator: SignatureOrchestrator = Depends(get_orchestrator)):
    """Validate, decode and persist a data-URI signature image."""
    try:
        reference = orchestrator.store(request.signature_base64)
    except SignatureError as e:
        logger.error(f"Upload error: {e.message}")
        return _error_response("Upload failed", e)

    audit_event("signature.uploaded", {"filename": reference.filename, "size": reference.size})
    return SignatureUploadResponse(success=True, data=reference.to_dict())


@app.post(
    "/signature/process",
    response_model=SignatureProcessResponse,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
def process_signature(request: SignatureProcessRequest, orchestrator: SignatureOrchestrator = Depends(get_orchestrator)):
    """Upload a stored signature to the file manager and annotate the contact."""
    try:
        result = orchestrator.finalize(request.form_id, request.signature_path)
    except SignatureError as e:
        logger.error(f"Processing error for form {request.form_id}: {e.message}")
        return _error_response("Processing failed", e)

    logger.info(f"Processing completed for form: {result.form_id}")
    return SignatureProcessResponse(success=True, data=result.to_response())


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check configuration and storage health."""
    storage_dir = get_storage_dir()
    storage_writable = os.access(storage_dir if storage_dir.exists() else storage_dir.parent, os.W_OK)
    configured = is_hubspot_configured()

    return HealthResponse(
        status="healthy" if configured and storage_writable else "degraded",
        version=VERSION,
        hubspot_configured=configured,
        storage_writable=storage_writable,
        housekeeping=heartbeat.get_status(),
    )
