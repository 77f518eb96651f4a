"""
Request and response models for the signature endpoints.
"""

from pydantic import BaseModel, field_validator
from typing import Any, Dict


class SignatureUploadRequest(BaseModel):
    signature_base64: str = ""


class StoredReferenceData(BaseModel):
    file_path: str
    local_path: str
    filename: str
    size: int
    type: str


class SignatureUploadResponse(BaseModel):
    success: bool
    data: StoredReferenceData


class SignatureProcessRequest(BaseModel):
    form_id: str = ""
    signature_path: str = ""

    @field_validator('form_id', 'signature_path')
    @classmethod
    def strip_whitespace(cls, v):
        return (v or "").strip()


class ProcessResultData(BaseModel):
    form_id: str
    hubspot_file_id: str
    hubspot_file_url: str
    contact_updated: bool
    message: str


class SignatureProcessResponse(BaseModel):
    success: bool
    data: ProcessResultData


class ErrorData(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    data: ErrorData


class HealthResponse(BaseModel):
    status: str
    version: str
    hubspot_configured: bool
    storage_writable: bool
    housekeeping: Dict[str, Any]
